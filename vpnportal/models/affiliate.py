# vpnportal/models/affiliate.py
from datetime import datetime
from decimal import Decimal

from sqlalchemy import event, func
from sqlalchemy.orm import validates

from vpnportal.errors import ValidationError
from vpnportal.extensions import db
from vpnportal.models.commission import Commission, CommissionStatus
from vpnportal.models.types import StrEnum, status_enum
from vpnportal.utils import ZERO, generate_code, money

PAYOUT_CURRENCIES = {"btc", "eth", "usdt", "ltc", "xmr", "bank", "manual"}


class AffiliateStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"
    PENDING = "pending"


class Affiliate(db.Model):
    __tablename__ = "affiliates"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120))
    email = db.Column(db.String(255), index=True)

    commission_rate = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("20.00"))
    status = db.Column(
        status_enum(AffiliateStatus, "affiliate_status"),
        nullable=False,
        default=AffiliateStatus.ACTIVE,
        index=True,
    )

    payout_currency = db.Column(db.String(10), default="btc")
    payout_address = db.Column(db.String(255))
    minimum_payout_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("100.00"))
    attribution_window_days = db.Column(db.Integer, nullable=False, default=30)

    # Derived from commission rows; only recalculate_balances() writes these.
    pending_balance = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    lifetime_earnings = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    paid_out_total = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)

    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    referrals = db.relationship("Referral", back_populates="affiliate", lazy="dynamic")
    commissions = db.relationship("Commission", back_populates="affiliate", lazy="dynamic")
    clicks = db.relationship("AffiliateClick", back_populates="affiliate", lazy="dynamic")

    def __init__(self, **kwargs):
        if not (kwargs.get("code") or "").strip():
            kwargs["code"] = self.generate_unique_code()
        kwargs.setdefault("status", AffiliateStatus.ACTIVE)
        kwargs.setdefault("payout_currency", "btc")
        kwargs.setdefault("pending_balance", ZERO)
        kwargs.setdefault("lifetime_earnings", ZERO)
        kwargs.setdefault("paid_out_total", ZERO)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Affiliate id={self.id} code={self.code} status={self.status}>"

    @staticmethod
    def generate_unique_code(length=8):
        while True:
            code = generate_code(length)
            if not Affiliate.query.filter_by(code=code).first():
                return code

    @validates("code")
    def _normalize_code(self, key, value):
        value = (value or "").strip().upper()
        if not value:
            raise ValidationError("code can't be blank")
        return value

    @validates("commission_rate")
    def _validate_rate(self, key, value):
        value = Decimal(str(value if value is not None else "20"))
        if not (Decimal("0") <= value <= Decimal("100")):
            raise ValidationError("commission_rate must be in 0..100")
        return value

    @validates("payout_currency")
    def _validate_payout_currency(self, key, value):
        value = (value or "").strip().lower() or None
        if value is not None and value not in PAYOUT_CURRENCIES:
            raise ValidationError(f"payout_currency must be one of {', '.join(sorted(PAYOUT_CURRENCIES))}")
        return value

    @validates("attribution_window_days")
    def _validate_window(self, key, value):
        if value is not None and not (0 < int(value) <= 365):
            raise ValidationError("attribution_window_days must be between 1 and 365")
        return value

    @validates("minimum_payout_amount")
    def _validate_minimum(self, key, value):
        value = money(value)
        if value < 0:
            raise ValidationError("minimum_payout_amount must not be negative")
        return value

    def validate(self):
        if self.payout_currency and not (self.payout_address or "").strip():
            raise ValidationError("payout_address can't be blank")

    # -------------------
    # Derived balances
    # -------------------
    def recalculate_balances(self):
        """
        Rebuild pending_balance, lifetime_earnings and paid_out_total from one
        aggregate over this affiliate's commissions, grouped by status.
        """
        db.session.flush()

        rows = (
            db.session.query(
                Commission.status,
                func.coalesce(func.sum(Commission.amount), 0),
            )
            .filter(Commission.affiliate_id == self.id)
            .group_by(Commission.status)
            .all()
        )
        totals = {CommissionStatus(status): money(total) for status, total in rows}

        approved = totals.get(CommissionStatus.APPROVED, ZERO)
        paid = totals.get(CommissionStatus.PAID, ZERO)

        self.pending_balance = totals.get(CommissionStatus.PENDING, ZERO)
        self.lifetime_earnings = approved + paid
        self.paid_out_total = paid
        return totals

    @property
    def available_balance(self) -> Decimal:
        return money(self.lifetime_earnings) - money(self.paid_out_total)

    @property
    def is_active(self) -> bool:
        return self.status == AffiliateStatus.ACTIVE

    def approved_total(self) -> Decimal:
        total = (
            db.session.query(func.coalesce(func.sum(Commission.amount), 0))
            .filter(
                Commission.affiliate_id == self.id,
                Commission.status == CommissionStatus.APPROVED,
            )
            .scalar()
        )
        return money(total)

    def eligible_for_payout(self) -> bool:
        return self.is_active and money(self.pending_balance) > money(self.minimum_payout_amount)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "email": self.email,
            "status": self.status.value,
            "commission_rate": str(self.commission_rate),
            "payout_currency": self.payout_currency,
            "payout_address": self.payout_address,
            "minimum_payout_amount": str(money(self.minimum_payout_amount)),
            "pending_balance": str(money(self.pending_balance)),
            "lifetime_earnings": str(money(self.lifetime_earnings)),
            "paid_out_total": str(money(self.paid_out_total)),
            "available_balance": str(self.available_balance),
            "conversion_rate": self.conversion_rate(),
        }

    def referral_link(self, base_url=None) -> str:
        from flask import current_app
        base_url = base_url or current_app.config.get("APP_URL", "https://vpn9.com")
        return f"{base_url}?ref={self.code}"

    def conversion_rate(self) -> float:
        from vpnportal.models.referral import Referral, ReferralStatus

        total_clicks = self.clicks.count()
        if total_clicks == 0:
            return 0.0
        converted = self.referrals.filter(Referral.status == ReferralStatus.CONVERTED).count()
        return round(converted / total_clicks * 100, 2)


@event.listens_for(Affiliate, "before_insert")
@event.listens_for(Affiliate, "before_update")
def _validate_affiliate(mapper, connection, target):
    target.validate()
