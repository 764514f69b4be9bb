from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.orm import validates

from vpnportal.errors import ValidationError
from vpnportal.extensions import db
from vpnportal.utils import money


class Plan(db.Model):
    __tablename__ = "plans"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="USD")

    # Null for lifetime plans
    duration_days = db.Column(db.Integer, nullable=True)
    lifetime = db.Column(db.Boolean, nullable=False, default=False)
    device_limit = db.Column(db.Integer, nullable=False, default=5)
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Plan id={self.id} name={self.name!r} price={self.price} {self.currency}>"

    @validates("price")
    def _validate_price(self, key, value):
        value = money(value)
        if value < 0:
            raise ValidationError("price must be greater than or equal to 0")
        return value

    @validates("device_limit")
    def _validate_device_limit(self, key, value):
        if value is not None and not (0 < int(value) <= 100):
            raise ValidationError("device_limit must be between 1 and 100")
        return value

    @validates("duration_days")
    def _validate_duration(self, key, value):
        if value is not None and int(value) <= 0:
            raise ValidationError("duration_days must be greater than 0")
        return value

    def duration(self) -> timedelta:
        if self.lifetime:
            return timedelta(days=current_app.config.get("LIFETIME_PLAN_DAYS", 36_525))
        if not self.duration_days:
            raise ValidationError(f"plan {self.id} has no duration")
        return timedelta(days=self.duration_days)
