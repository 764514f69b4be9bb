# vpnportal/admin/commissions.py
from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from vpnportal.models import Commission, CommissionStatus
from vpnportal.services.commissions import (
    approve_commission,
    bulk_approve,
    bulk_cancel,
    cancel_commission,
    cancel_referral_commissions,
    commission_totals,
)
from vpnportal.utils import admin_required

from . import admin_bp
from .payouts import _request_ids, _request_value


@admin_bp.route("/commissions", methods=["GET"])
@login_required
@admin_required
def commissions():
    query = Commission.query

    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in {s.value for s in CommissionStatus}:
            return jsonify({"error": "bad_request", "message": f"unknown status {status}"}), 400
        query = query.filter(Commission.status == CommissionStatus(status))

    affiliate_id = request.args.get("affiliate_id", type=int)
    if affiliate_id is not None:
        query = query.filter(Commission.affiliate_id == affiliate_id)

    rows = query.order_by(Commission.created_at.desc()).limit(200).all()
    return jsonify({
        "commissions": [c.to_dict() for c in rows],
        "totals": {k: str(v) for k, v in commission_totals().items()},
    })


@admin_bp.route("/commissions/<int:commission_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve(commission_id: int):
    changed = approve_commission(commission_id, _request_value("notes"))
    current_app.logger.info("Admin %s approve commission %s -> %s", current_user.id, commission_id, changed)
    return jsonify({"id": commission_id, "changed": changed})


@admin_bp.route("/commissions/<int:commission_id>/cancel", methods=["POST"])
@login_required
@admin_required
def cancel(commission_id: int):
    reason = _request_value("reason") or "Cancelled by admin"
    changed = cancel_commission(commission_id, reason)
    current_app.logger.info("Admin %s cancel commission %s -> %s", current_user.id, commission_id, changed)
    return jsonify({"id": commission_id, "changed": changed})


@admin_bp.route("/commissions/bulk-approve", methods=["POST"])
@login_required
@admin_required
def bulk_approve_view():
    count = bulk_approve(_request_ids())
    return jsonify({"approved": count})


@admin_bp.route("/commissions/bulk-cancel", methods=["POST"])
@login_required
@admin_required
def bulk_cancel_view():
    reason = _request_value("reason") or "Bulk cancelled by admin"
    count = bulk_cancel(_request_ids(), reason=reason)
    return jsonify({"cancelled": count})


@admin_bp.route("/referrals/<int:referral_id>/reject", methods=["POST"])
@login_required
@admin_required
def reject_referral(referral_id: int):
    reason = _request_value("reason") or "Referral rejected"
    changed = cancel_referral_commissions(referral_id, reason)
    current_app.logger.info("Admin %s rejected referral %s -> %s", current_user.id, referral_id, changed)
    return jsonify({"id": referral_id, "changed": changed})
