# vpnportal/services/processor.py
"""
Thin client for the external payment processor (Bitcart-compatible API).

The ledger only needs two things from it: an invoice for a new Payment and
the current status of an invoice. Everything else about the processor is
opaque.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal

import requests
from flask import current_app

from vpnportal.errors import ProcessorError
from vpnportal.extensions import db
from vpnportal.models import Payment, PaymentStatus

logger = logging.getLogger(__name__)

TIMEOUT = 15

# processor invoice status -> normalised webhook vocabulary
PROCESSOR_STATUS_MAP = {
    "new": "UNPAID",
    "pending": "UNPAID",
    "paid": "PAID",
    "confirmed": "PAID",
    "complete": "PAID",
    "expired": "EXPIRED",
    "invalid": "FAILED",
}


def map_processor_status(status) -> str:
    status = (status or "").strip()
    return PROCESSOR_STATUS_MAP.get(status.lower(), status.upper())


class ProcessorClient:
    def __init__(self, base_url=None, api_key=None, store_id=None):
        cfg = current_app.config
        self.base_url = (base_url or cfg.get("PAYMENT_PROCESSOR_URL") or "").rstrip("/")
        self.api_key = api_key or cfg.get("PAYMENT_PROCESSOR_API_KEY", "")
        self.store_id = store_id or cfg.get("PAYMENT_PROCESSOR_STORE_ID", "")

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=self._headers(), timeout=TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise ProcessorError(f"processor unreachable: {exc}") from exc

        if not response.ok:
            raise ProcessorError(f"processor returned {response.status_code} for {method} {path}")

        try:
            return response.json()
        except ValueError as exc:
            raise ProcessorError("processor returned invalid JSON") from exc

    def available_cryptos(self):
        data = self._request("GET", "/cryptos")
        # Paginated responses wrap the list in "result"
        if isinstance(data, dict) and "result" in data:
            return data["result"]
        return data

    def create_invoice(self, amount, currency, external_id, callback_url, crypto=None):
        payload = {
            "store_id": self.store_id,
            "price": str(amount),
            "currency": currency or "USD",
            "order_id": external_id,
            "notification_url": callback_url,
        }
        if crypto:
            payload["promoted"] = crypto.lower()
        return self._request("POST", "/invoices", json=payload)

    def get_invoice(self, invoice_id):
        return self._request("GET", f"/invoices/{invoice_id}")


def webhook_url(secret) -> str:
    cfg = current_app.config
    return f"{cfg['WEBHOOK_SCHEME']}://{cfg['WEBHOOK_HOST']}/payments/webhook?secret={secret}"


def create_payment(user, plan, crypto, client=None):
    """
    Open a pending Payment for a plan and request its invoice.
    The payment row is committed only when the processor accepted the invoice.
    """
    client = client or ProcessorClient()
    expiry = timedelta(minutes=current_app.config.get("PAYMENT_EXPIRY_MINUTES", 60))

    try:
        payment = Payment(
            user=user,
            plan=plan,
            amount=plan.price,
            currency=plan.currency,
            status=PaymentStatus.PENDING,
            crypto_currency=(crypto or "").lower() or None,
            expires_at=datetime.utcnow() + expiry,
        )
        payment.generate_webhook_secret()
        db.session.add(payment)
        db.session.flush()

        invoice = client.create_invoice(
            amount=payment.amount,
            currency=payment.currency,
            external_id=payment.id,
            callback_url=webhook_url(payment.webhook_secret),
            crypto=crypto,
        )

        payment.processor_id = invoice.get("id")
        method = next(
            (m for m in invoice.get("payments") or []
             if (m.get("currency") or "").lower() == (crypto or "").lower()),
            None,
        )
        if method:
            payment.payment_address = method.get("payment_address")
            if method.get("amount") is not None:
                payment.crypto_amount = Decimal(str(method["amount"]))
        else:
            logger.error("No payment method for %s in processor invoice %s", crypto, invoice.get("id"))

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Payment %s created for plan %s (invoice %s)", payment.id, plan.id, payment.processor_id)
    return payment


def get_payment_status(processor_id, client=None) -> dict:
    client = client or ProcessorClient()
    invoice = client.get_invoice(processor_id)
    return {
        "status": map_processor_status(invoice.get("status")),
        "amount_received": invoice.get("received_amount"),
    }
