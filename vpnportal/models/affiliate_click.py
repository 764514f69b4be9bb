import hashlib
from datetime import datetime

from flask import current_app
from sqlalchemy.orm import validates

from vpnportal.errors import ValidationError
from vpnportal.extensions import db


class AffiliateClick(db.Model):
    __tablename__ = "affiliate_clicks"

    id = db.Column(db.Integer, primary_key=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey("affiliates.id"), nullable=False, index=True)

    # Only salted hashes; raw IPs and user agents are never stored
    ip_hash = db.Column(db.String(64), nullable=False, index=True)
    user_agent_hash = db.Column(db.String(64))
    landing_page = db.Column(db.Text)
    referrer = db.Column(db.Text)
    converted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    affiliate = db.relationship("Affiliate", back_populates="clicks")

    @validates("ip_hash")
    def _validate_ip_hash(self, key, value):
        if not (value or "").strip():
            raise ValidationError("ip_hash can't be blank")
        return value

    @staticmethod
    def hash_value(value):
        if not value:
            return None
        salt = current_app.config["SECRET_KEY"]
        return hashlib.sha256(f"{value}{salt}".encode("utf-8")).hexdigest()

    @classmethod
    def track(cls, affiliate, ip, user_agent=None, landing_page=None, referrer=None):
        click = cls(
            affiliate=affiliate,
            ip_hash=cls.hash_value(ip),
            user_agent_hash=cls.hash_value(user_agent),
            landing_page=landing_page,
            referrer=referrer,
        )
        db.session.add(click)
        return click
