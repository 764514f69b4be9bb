from flask import abort, current_app, jsonify, request

from vpnportal.services.webhooks import apply_webhook
from . import payments_bp


def _remote_ip() -> str:
    return request.remote_addr or ""


@payments_bp.before_request
def restrict_webhook_sources():
    allowed = current_app.config.get("WEBHOOK_ALLOWED_IPS") or []
    if request.endpoint == "payments.webhook" and allowed and _remote_ip() not in allowed:
        current_app.logger.warning("Webhook from non-whitelisted address %s", _remote_ip())
        abort(403)


@payments_bp.route("/webhook", methods=["POST"])
def webhook():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()
    if not isinstance(payload, dict):
        payload = {}

    external_id = payload.get("external_id") or payload.get("order_id")
    status = str(payload.get("status") or "").strip()
    if not external_id or not status:
        return jsonify({"error": "bad_request", "message": "external_id and status are required"}), 400

    # Callback URLs carry the secret in the query string
    secret = payload.get("secret") or request.args.get("secret")

    # NotFound / Unauthorized / DuplicateWebhook map to 404 / 401 / 409
    apply_webhook(
        external_id=str(external_id),
        status=status,
        transaction_id=payload.get("transaction_id"),
        secret=secret,
        source_ip=_remote_ip(),
        payload=payload,
    )
    return jsonify({"status": "ok"}), 200
