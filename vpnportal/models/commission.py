# vpnportal/models/commission.py
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import validates

from vpnportal.errors import ValidationError
from vpnportal.extensions import db
from vpnportal.models.types import StrEnum, status_enum
from vpnportal.utils import money


class CommissionStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


# transition -> statuses it may start from
TRANSITIONS = {
    "approve": frozenset({CommissionStatus.PENDING}),
    "cancel": frozenset({CommissionStatus.PENDING, CommissionStatus.APPROVED}),
    "mark_paid": frozenset({CommissionStatus.APPROVED}),
}


class Commission(db.Model):
    """
    An affiliate's share of one successful Payment.

    Lifecycle: pending -> approved -> paid, and pending/approved -> cancelled.
    Each transition method returns True when it changed the row and False
    when the commission was not in a state that allows it (repeat clicks,
    retried admin actions). Every transition recomputes the affiliate's
    derived balances in the same session; the caller commits.
    """
    __tablename__ = "commissions"
    __table_args__ = (
        db.Index("ix_commissions_affiliate_status", "affiliate_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey("affiliates.id"), nullable=False)
    # One commission per payment
    payment_id = db.Column(db.String(36), db.ForeignKey("payments.id"), nullable=False, unique=True)
    referral_id = db.Column(db.Integer, db.ForeignKey("referrals.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="USD")
    # Snapshot of the affiliate's rate at creation; never recomputed
    commission_rate = db.Column(db.Numeric(5, 2), nullable=False)

    status = db.Column(
        status_enum(CommissionStatus, "commission_status"),
        nullable=False,
        default=CommissionStatus.PENDING,
        index=True,
    )
    approved_at = db.Column(db.DateTime)
    paid_at = db.Column(db.DateTime, index=True)
    payout_transaction_id = db.Column(db.String(120))
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    affiliate = db.relationship("Affiliate", back_populates="commissions")
    payment = db.relationship("Payment", back_populates="commission")
    referral = db.relationship("Referral", back_populates="commissions")

    def __init__(self, **kwargs):
        if kwargs.get("commission_rate") is None and kwargs.get("affiliate") is not None:
            kwargs["commission_rate"] = kwargs["affiliate"].commission_rate
        kwargs.setdefault("status", CommissionStatus.PENDING)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Commission id={self.id} affiliate_id={self.affiliate_id} amount={self.amount} status={self.status}>"

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

    @validates("commission_rate")
    def _validate_rate(self, key, value):
        if value is None:
            raise ValidationError("commission_rate can't be blank")
        value = Decimal(str(value))
        if not (Decimal("0") <= value <= Decimal("100")):
            raise ValidationError("commission_rate must be in 0..100")
        return value

    @classmethod
    def payable(cls):
        return cls.query.filter(cls.status == CommissionStatus.APPROVED, cls.paid_at.is_(None))

    def can(self, transition: str) -> bool:
        return self.status in TRANSITIONS[transition]

    def _append_notes(self, text):
        if text:
            self.notes = "\n".join(part for part in (self.notes, text) if part)

    def approve(self, notes=None) -> bool:
        if not self.can("approve"):
            return False

        self.status = CommissionStatus.APPROVED
        self.approved_at = datetime.utcnow()
        self._append_notes(notes)
        self.affiliate.recalculate_balances()
        return True

    def cancel(self, reason=None) -> bool:
        if not self.can("cancel"):
            return False

        self.status = CommissionStatus.CANCELLED
        self._append_notes(reason)
        self.affiliate.recalculate_balances()
        return True

    def mark_paid(self, payout_transaction_id=None) -> bool:
        if not self.can("mark_paid"):
            return False

        self.status = CommissionStatus.PAID
        self.paid_at = datetime.utcnow()
        self.payout_transaction_id = payout_transaction_id
        self.affiliate.recalculate_balances()
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "affiliate_id": self.affiliate_id,
            "payment_id": self.payment_id,
            "referral_id": self.referral_id,
            "amount": str(money(self.amount)),
            "currency": self.currency,
            "commission_rate": str(self.commission_rate),
            "status": self.status.value,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "payout_transaction_id": self.payout_transaction_id,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
