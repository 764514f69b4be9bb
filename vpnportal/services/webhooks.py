# vpnportal/services/webhooks.py
"""
Payment processor webhook ingestion.

The whole pipeline runs in one transaction: auth check, webhook log insert
(the replay guard), status write, subscription completion, commission
creation and the affiliate balance recomputation that follows it.
"""
import hmac
import logging

from sqlalchemy.exc import IntegrityError

from vpnportal.errors import DuplicateWebhook, NotFound, Unauthorized
from vpnportal.extensions import db
from vpnportal.models import Payment, WebhookLog, map_webhook_status
from vpnportal.services.commissions import process_payment_commission
from vpnportal.services.completion import complete_payment

logger = logging.getLogger(__name__)

# Never persisted with the payload
REDACTED_KEYS = {"secret"}


def secret_matches(expected: str | None, supplied: str | None) -> bool:
    """True when no secret is configured, otherwise a constant-time compare."""
    if not (expected or "").strip():
        return True
    return hmac.compare_digest(str(supplied or "").encode("utf-8"), str(expected).encode("utf-8"))


def _lock_payment(external_id):
    # Row lock serialises concurrent deliveries for the same payment until commit
    if not external_id:
        return None
    return (
        db.session.query(Payment)
        .filter(Payment.id == str(external_id))
        .with_for_update()
        .first()
    )


def _already_applied(payment_id, raw_status) -> bool:
    return WebhookLog.query.filter_by(payment_id=payment_id, status=raw_status).first() is not None


def apply_webhook(external_id, status, transaction_id=None, secret=None, source_ip=None, payload=None):
    """
    Apply one processor notification to its Payment.

    Raises NotFound for an unknown payment, Unauthorized when the payment has
    a webhook secret that doesn't match, and DuplicateWebhook when this
    (payment, status) pair was already applied. Nothing is written in any of
    those cases.
    """
    payment = _lock_payment(external_id)
    if payment is None:
        logger.warning("Webhook received for unknown payment: %s", external_id)
        raise NotFound("payment not found")

    if not secret_matches(payment.webhook_secret, secret):
        logger.warning("Webhook secret mismatch for payment %s", payment.id)
        raise Unauthorized()

    raw_status = (status or "").strip().upper()
    data = {k: v for k, v in (payload or {}).items() if k not in REDACTED_KEYS}

    try:
        if _already_applied(payment.id, raw_status):
            raise DuplicateWebhook(f"webhook {raw_status} already applied to payment {payment.id}")

        db.session.add(WebhookLog(
            payment_id=payment.id,
            status=raw_status,
            ip_address=source_ip,
            payload=data,
        ))
        try:
            db.session.flush()
        except IntegrityError as exc:
            # A concurrent delivery inserted the same (payment, status) first
            raise DuplicateWebhook(
                f"webhook {raw_status} already applied to payment {payment.id}"
            ) from exc

        previous = payment.status
        payment.status = map_webhook_status(raw_status)
        payment.transaction_id = transaction_id
        payment.processor_data = data
        db.session.flush()

        # Both steps re-check payment.successful themselves
        complete_payment(payment)
        process_payment_commission(payment)

        db.session.commit()
    except DuplicateWebhook:
        db.session.rollback()
        logger.warning("Duplicate webhook rejected: payment=%s status=%s", payment.id, raw_status)
        raise
    except Exception:
        db.session.rollback()
        logger.exception("Webhook processing failed for payment %s", payment.id)
        raise

    logger.info("Payment %s: %s -> %s (webhook %s)", payment.id, previous, payment.status, raw_status)
    return payment
