from datetime import datetime

from portal.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"

    id = db.Column(db.String(255), primary_key=True)  # provider event ID
    provider = db.Column(db.String(50), nullable=False, default="stripe")
    event_type = db.Column(db.String(100), nullable=False)
    received_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    processed_at = db.Column(db.DateTime, nullable=True)

    @classmethod
    def is_processed(cls, event_id):
        if not event_id:
            return False
        event = db.session.get(cls, event_id)
        return event is not None and event.processed_at is not None

    def __repr__(self):
        return f"<WebhookEvent {self.id} {self.event_type}>"
