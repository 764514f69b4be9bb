# vpnportal/models/referral.py
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.orm import validates

from vpnportal.errors import ValidationError
from vpnportal.extensions import db
from vpnportal.models.affiliate_click import AffiliateClick
from vpnportal.models.commission import CommissionStatus
from vpnportal.models.types import StrEnum, status_enum


class ReferralStatus(StrEnum):
    PENDING = "pending"
    CONVERTED = "converted"
    REJECTED = "rejected"


class Referral(db.Model):
    """Attribution of one user to the affiliate whose code they arrived with."""
    __tablename__ = "referrals"

    id = db.Column(db.Integer, primary_key=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey("affiliates.id"), nullable=False, index=True)
    # A user can be referred at most once
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    referral_code = db.Column(db.String(32))
    ip_hash = db.Column(db.String(64), nullable=False)
    landing_page = db.Column(db.Text)

    status = db.Column(
        status_enum(ReferralStatus, "referral_status"),
        nullable=False,
        default=ReferralStatus.PENDING,
        index=True,
    )
    clicked_at = db.Column(db.DateTime)
    converted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    affiliate = db.relationship("Affiliate", back_populates="referrals")
    user = db.relationship("User", back_populates="referral")
    commissions = db.relationship("Commission", back_populates="referral", lazy="dynamic")

    def __init__(self, **kwargs):
        kwargs.setdefault("created_at", datetime.utcnow())
        kwargs.setdefault("clicked_at", kwargs["created_at"])
        kwargs.setdefault("status", ReferralStatus.PENDING)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Referral id={self.id} affiliate_id={self.affiliate_id} user_id={self.user_id} status={self.status}>"

    @validates("ip_hash")
    def _validate_ip_hash(self, key, value):
        if not (value or "").strip():
            raise ValidationError("ip_hash can't be blank")
        return value

    @property
    def is_pending(self) -> bool:
        return self.status == ReferralStatus.PENDING

    def within_attribution_window(self, now=None) -> bool:
        if self.affiliate is None:
            return False
        now = now or datetime.utcnow()
        return self.created_at > now - timedelta(days=self.affiliate.attribution_window_days)

    def days_since_click(self, now=None) -> int:
        now = now or datetime.utcnow()
        return round((now - self.created_at).total_seconds() / 86400)

    def convert(self, now=None) -> bool:
        if self.status == ReferralStatus.CONVERTED:
            return False

        self.status = ReferralStatus.CONVERTED
        self.converted_at = now or datetime.utcnow()

        # Heuristic join: clicks from the same hashed IP shortly before signup
        window = timedelta(minutes=current_app.config.get("REFERRAL_CLICK_WINDOW_MINUTES", 60))
        (
            AffiliateClick.query
            .filter(
                AffiliateClick.affiliate_id == self.affiliate_id,
                AffiliateClick.ip_hash == self.ip_hash,
                AffiliateClick.created_at >= self.created_at - window,
                AffiliateClick.created_at <= self.converted_at,
            )
            .update({AffiliateClick.converted: True}, synchronize_session="fetch")
        )
        return True

    def reject(self, reason=None) -> bool:
        """
        Reject the referral and cancel its pending commissions.
        Approved and paid commissions are left as they are.
        """
        if self.status == ReferralStatus.REJECTED:
            return False

        self.status = ReferralStatus.REJECTED
        for commission in self.commissions.filter_by(status=CommissionStatus.PENDING).all():
            commission.cancel(reason or "Referral rejected")
        return True
