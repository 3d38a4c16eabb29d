from datetime import datetime

from portal.extensions import db


class AdminActivityLog(db.Model):
    __tablename__ = "admin_activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    action = db.Column(db.String(100), nullable=False, index=True)
    target_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    admin = db.relationship("User", foreign_keys=[admin_id])
    target_user = db.relationship("User", foreign_keys=[target_user_id])

    @staticmethod
    def _user_summary(user):
        if user is None:
            return None
        return {"id": user.id, "email": user.email, "name": user.name}

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "details": self.details,
            "admin": self._user_summary(self.admin),
            "target_user": self._user_summary(self.target_user),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
