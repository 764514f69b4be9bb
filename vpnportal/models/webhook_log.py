from datetime import datetime

from vpnportal.extensions import db


class WebhookLog(db.Model):
    """Append-only record of processor deliveries; one row per (payment, status)."""
    __tablename__ = "webhook_logs"
    __table_args__ = (
        db.UniqueConstraint("payment_id", "status", name="uq_webhook_logs_payment_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.String(36), db.ForeignKey("payments.id"), nullable=False, index=True)

    # Processor vocabulary as received, normalised to upper case
    status = db.Column(db.String(40), nullable=False)
    ip_address = db.Column(db.String(64), nullable=True)
    payload = db.Column(db.JSON, default=dict)

    processed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    payment = db.relationship("Payment", back_populates="webhook_logs")

    def __repr__(self) -> str:
        return f"<WebhookLog payment_id={self.payment_id} status={self.status}>"
