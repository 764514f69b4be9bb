# vpnportal/admin/payouts.py
from decimal import InvalidOperation

from flask import Response, current_app, jsonify, request
from flask_login import current_user, login_required

from vpnportal.services.payouts import (
    create_payout,
    export_payouts,
    export_range,
    list_eligible_affiliates,
    new_payout,
    payout_stats,
    payouts_to_csv,
    recent_payouts,
)
from vpnportal.utils import admin_required, money

from . import admin_bp


def _request_ids(field="commission_ids"):
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data.get(field) or []
    return request.form.getlist(field)


def _request_value(field):
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data.get(field)
    return request.form.get(field)


def _parse_amount(value):
    try:
        amount = money(value)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


@admin_bp.route("/payouts", methods=["GET"])
@login_required
@admin_required
def payouts():
    min_balance = None
    raw = (request.args.get("min_balance") or "").strip()
    if raw:
        min_balance = _parse_amount(raw)
        if min_balance is None:
            return jsonify({"error": "bad_request", "message": "min_balance must be a number"}), 400
    affiliates = list_eligible_affiliates(min_balance)
    stats = payout_stats()

    return jsonify({
        "affiliates": [a.to_dict() for a in affiliates],
        "stats": {k: str(v) if not isinstance(v, int) else v for k, v in stats.items()},
        "recent_payouts": [c.to_dict() for c in recent_payouts()],
    })


@admin_bp.route("/payouts/new", methods=["GET"])
@login_required
@admin_required
def new_payout_view():
    affiliate_id = request.args.get("affiliate_id", type=int)
    if affiliate_id is None:
        return jsonify({"error": "bad_request", "message": "affiliate_id is required"}), 400

    preview = new_payout(affiliate_id)
    return jsonify({
        "affiliate": preview["affiliate"].to_dict(),
        "commissions": [c.to_dict() for c in preview["commissions"]],
        "total": str(money(preview["total"])),
        "meets_minimum": preview["meets_minimum"],
    })


@admin_bp.route("/payouts", methods=["POST"])
@login_required
@admin_required
def create_payout_view():
    affiliate_id = _request_value("affiliate_id")
    try:
        affiliate_id = int(affiliate_id)
    except (TypeError, ValueError):
        return jsonify({"error": "bad_request", "message": "affiliate_id is required"}), 400

    result = create_payout(affiliate_id, _request_ids())
    current_app.logger.info(
        "Admin %s ran payout for affiliate %s: %s commissions, %s",
        current_user.id, affiliate_id, result.count, result.amount,
    )
    return jsonify(result.to_dict()), 200


@admin_bp.route("/payouts/export", methods=["GET"])
@login_required
@admin_required
def export_payouts_view():
    start, end = export_range(request.args.get("start_date"), request.args.get("end_date"))
    rows = export_payouts(start, end)

    if (request.args.get("format") or "csv").lower() == "json":
        return jsonify({"start_date": start.isoformat(), "end_date": end.isoformat(), "payouts": rows})

    filename = f"payouts_{start.isoformat()}_{end.isoformat()}.csv"
    return Response(
        payouts_to_csv(rows),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
