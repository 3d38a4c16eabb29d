from datetime import datetime

from portal.extensions import db


class ApiToken(db.Model):
    """
    Bearer credential for the public API.

    Only a salted hash of the token is stored, plus a short non-secret lookup
    key used to find the row. The plaintext is handed to the caller once at
    creation and cannot be recovered afterwards.
    """

    __tablename__ = "api_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    token_lookup = db.Column(db.String(16), nullable=False, index=True)
    token_hash = db.Column(db.String(255), nullable=False)
    scopes = db.Column(db.JSON, nullable=False, default=list)
    expires_at = db.Column(db.DateTime, nullable=True, index=True)
    last_used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="api_tokens")

    def is_expired(self, now=None):
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.utcnow())

    def to_dict(self):
        # Never expose token_hash or token_lookup
        return {
            "id": self.id,
            "name": self.name,
            "scopes": list(self.scopes or []),
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ApiToken {self.id} user={self.user_id} name={self.name!r}>"
