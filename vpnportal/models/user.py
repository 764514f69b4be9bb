from datetime import datetime

from flask_login import UserMixin

from vpnportal.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Soft delete. Financial records keep pointing at the row.
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    subscriptions = db.relationship("Subscription", back_populates="user", lazy="dynamic")
    payments = db.relationship("Payment", back_populates="user", lazy="dynamic")
    referral = db.relationship("Referral", back_populates="user", uselist=False)

    def __repr__(self) -> str:
        return f"<User id={self.id}>"

    @classmethod
    def active_query(cls):
        """Users that have not been soft-deleted. Ledger queries don't use this."""
        return cls.query.filter(cls.deleted_at.is_(None))

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self):
        self.deleted_at = datetime.utcnow()

    def current_subscription(self):
        from vpnportal.models.subscription import Subscription
        return Subscription.current_for(self).order_by(Subscription.expires_at.desc()).first()
