# vpnportal/models/payment.py
import secrets
import uuid
from datetime import datetime

from sqlalchemy.orm import validates

from vpnportal.errors import ValidationError
from vpnportal.extensions import db
from vpnportal.models.types import StrEnum, status_enum
from vpnportal.utils import money


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"
    EXPIRED = "expired"
    FAILED = "failed"


SUCCESSFUL_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.OVERPAID})

# Processor vocabulary -> payment status. Anything unlisted is a failure.
WEBHOOK_STATUS_MAP = {
    "PAID": PaymentStatus.PAID,
    "PARTIAL": PaymentStatus.PARTIAL,
    "OVERPAID": PaymentStatus.OVERPAID,
    "EXPIRED": PaymentStatus.EXPIRED,
}


def map_webhook_status(raw: str) -> PaymentStatus:
    return WEBHOOK_STATUS_MAP.get((raw or "").strip().upper(), PaymentStatus.FAILED)


class Payment(db.Model):
    """
    One funding attempt for one Plan by one User.

    Payments are the durable financial record: they are never deleted, and
    queries over them never filter out soft-deleted users.
    """
    __tablename__ = "payments"

    # Doubles as the processor's external_id
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("plans.id"), nullable=False, index=True)
    subscription_id = db.Column(
        db.Integer,
        db.ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False)
    status = db.Column(
        status_enum(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )

    # Processor fields
    processor_id = db.Column(db.String(120), unique=True, nullable=True)
    payment_address = db.Column(db.String(255))
    crypto_currency = db.Column(db.String(20))
    crypto_amount = db.Column(db.Numeric(18, 8))
    transaction_id = db.Column(db.String(255))
    webhook_secret = db.Column(db.String(64))
    processor_data = db.Column(db.JSON, default=dict)

    paid_at = db.Column(db.DateTime, index=True)
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="payments")
    plan = db.relationship("Plan")
    subscription = db.relationship("Subscription", back_populates="payments")
    commission = db.relationship("Commission", back_populates="payment", uselist=False)
    webhook_logs = db.relationship("WebhookLog", back_populates="payment", lazy="dynamic")

    def __repr__(self) -> str:
        return f"<Payment id={self.id} amount={self.amount} {self.currency} status={self.status}>"

    @validates("amount")
    def _validate_amount(self, key, value):
        if value is None:
            raise ValidationError("amount can't be blank")
        value = money(value)
        if value <= 0:
            raise ValidationError("amount must be greater than 0")
        return value

    @validates("currency")
    def _validate_currency(self, key, value):
        if not (value or "").strip():
            raise ValidationError("currency can't be blank")
        return value.strip().upper()

    @property
    def successful(self) -> bool:
        return self.status in SUCCESSFUL_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING

    def generate_webhook_secret(self) -> str:
        self.webhook_secret = secrets.token_hex(32)
        return self.webhook_secret
