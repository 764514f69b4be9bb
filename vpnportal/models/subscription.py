import math
from datetime import datetime

from sqlalchemy.orm import validates

from vpnportal.errors import ValidationError
from vpnportal.extensions import db
from vpnportal.models.types import StrEnum, status_enum


class SubscriptionStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("plans.id"), nullable=False)

    status = db.Column(
        status_enum(SubscriptionStatus, "subscription_status"),
        nullable=False,
        default=SubscriptionStatus.PENDING,
        index=True,
    )
    started_at = db.Column(db.DateTime, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    cancelled_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="subscriptions")
    plan = db.relationship("Plan")
    # Payments are never deleted with a subscription; the FK is nulled instead.
    payments = db.relationship("Payment", back_populates="subscription", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} user_id={self.user_id} status={self.status} expires_at={self.expires_at}>"

    @validates("started_at")
    def _validate_started_at(self, key, value):
        if value is not None and self.expires_at is not None and self.expires_at <= value:
            raise ValidationError("expires_at must be after the start date")
        return value

    @validates("expires_at")
    def _validate_expires_at(self, key, value):
        if value is not None and self.started_at is not None and value <= self.started_at:
            raise ValidationError("expires_at must be after the start date")
        return value

    @classmethod
    def current_for(cls, user, now=None):
        now = now or datetime.utcnow()
        return cls.query.filter(
            cls.user_id == user.id,
            cls.status == SubscriptionStatus.ACTIVE,
            cls.expires_at > now,
        )

    @property
    def is_current(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE and self.expires_at > datetime.utcnow()

    def days_remaining(self) -> int:
        if not self.is_current:
            return 0
        return math.ceil((self.expires_at - datetime.utcnow()).total_seconds() / 86400)

    def cancel(self):
        self.status = SubscriptionStatus.CANCELLED
        self.cancelled_at = datetime.utcnow()

    @classmethod
    def expire_lapsed(cls, now=None) -> int:
        """
        Mark active subscriptions past their expires_at as expired.
        Returns the number of distinct users affected.
        """
        now = now or datetime.utcnow()
        lapsed = cls.query.filter(
            cls.status == SubscriptionStatus.ACTIVE,
            cls.expires_at <= now,
        )
        user_ids = {row.user_id for row in lapsed.with_entities(cls.user_id).distinct()}
        if not user_ids:
            return 0

        lapsed.update({cls.status: SubscriptionStatus.EXPIRED}, synchronize_session=False)
        return len(user_ids)
