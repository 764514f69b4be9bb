# vpnportal/services/commissions.py
import logging
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import IntegrityError

from vpnportal.errors import NotFound
from vpnportal.extensions import db
from vpnportal.models import (
    AffiliateStatus,
    Commission,
    CommissionStatus,
    Referral,
    ReferralStatus,
)
from vpnportal.utils import Q, money, parse_ids

logger = logging.getLogger(__name__)


def calculate_commission(amount, rate) -> Decimal:
    return (money(amount) * Decimal(str(rate)) / Decimal("100")).quantize(Q, rounding=ROUND_HALF_UP)


def _commission_exists(payment_id) -> bool:
    return Commission.query.filter_by(payment_id=payment_id).first() is not None


def process_payment_commission(payment):
    """
    Create the affiliate commission for a successful payment, if any.

    Returns the Commission, or None when the payment isn't attributable
    (no referral, rejected referral, inactive affiliate, pending referral
    outside its attribution window) or already has a commission. Runs inside
    the caller's transaction; nothing is committed here.
    """
    if not payment.successful:
        return None

    referral = Referral.query.filter_by(user_id=payment.user_id).first()
    if referral is None:
        return None

    if referral.status == ReferralStatus.REJECTED:
        return None

    affiliate = referral.affiliate
    if affiliate.status != AffiliateStatus.ACTIVE:
        return None

    if referral.is_pending and not referral.within_attribution_window():
        logger.info("Referral %s outside attribution window; no commission for payment %s",
                    referral.id, payment.id)
        return None

    if _commission_exists(payment.id):
        return None

    if referral.is_pending:
        referral.convert()

    amount = calculate_commission(payment.amount, affiliate.commission_rate)
    if amount <= 0:
        return None

    # Plain ids: a rolled-back savepoint must leave nothing reachable via cascades
    try:
        with db.session.begin_nested():
            commission = Commission(
                affiliate_id=affiliate.id,
                payment_id=payment.id,
                referral_id=referral.id,
                amount=amount,
                currency=payment.currency,
                commission_rate=affiliate.commission_rate,
                status=CommissionStatus.PENDING,
            )
            db.session.add(commission)
    except IntegrityError:
        # Another completion path won the race for this payment
        logger.info("Commission for payment %s already exists", payment.id)
        return None

    affiliate.recalculate_balances()
    logger.info("Commission created: %s %s for affiliate %s from payment %s",
                amount, commission.currency, affiliate.code, payment.id)

    threshold = current_app.config.get("AUTO_APPROVE_COMMISSION_THRESHOLD")
    if threshold is not None and amount <= money(threshold):
        commission.approve(f"Auto-approved: under {money(threshold)} threshold")

    return commission


# -------------------
# Lifecycle wrappers (one transaction each)
# -------------------
def _locked_commission(commission_id):
    commission = (
        db.session.query(Commission)
        .filter(Commission.id == commission_id)
        .with_for_update()
        .first()
    )
    if commission is None:
        raise NotFound(f"commission {commission_id} not found")
    return commission


def approve_commission(commission_id, notes=None) -> bool:
    try:
        commission = _locked_commission(commission_id)
        changed = commission.approve(notes)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if changed:
        logger.info("Commission %s approved", commission_id)
    return changed


def cancel_commission(commission_id, reason=None) -> bool:
    try:
        commission = _locked_commission(commission_id)
        changed = commission.cancel(reason)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if changed:
        logger.info("Commission %s cancelled: %s", commission_id, reason)
    return changed


def bulk_approve(commission_ids, notes="Bulk approved by admin") -> int:
    ids = parse_ids(commission_ids)
    if not ids:
        return 0

    try:
        commissions = (
            Commission.query
            .filter(Commission.id.in_(ids), Commission.status == CommissionStatus.PENDING)
            .order_by(Commission.id)
            .with_for_update()
            .all()
        )
        approved = sum(1 for c in commissions if c.approve(notes))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Bulk approved %s commissions", approved)
    return approved


def bulk_cancel(commission_ids, reason="Bulk cancelled by admin") -> int:
    ids = parse_ids(commission_ids)
    if not ids:
        return 0

    try:
        commissions = (
            Commission.query
            .filter(Commission.id.in_(ids))
            .order_by(Commission.id)
            .with_for_update()
            .all()
        )
        cancelled = sum(1 for c in commissions if c.cancel(reason))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Bulk cancelled %s commissions", cancelled)
    return cancelled


def cancel_referral_commissions(referral_id, reason=None) -> bool:
    try:
        referral = (
            db.session.query(Referral)
            .filter(Referral.id == referral_id)
            .with_for_update()
            .first()
        )
        if referral is None:
            raise NotFound(f"referral {referral_id} not found")

        changed = referral.reject(reason)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if changed:
        logger.info("Referral %s rejected and pending commissions cancelled: %s", referral_id, reason)
    return changed


def commission_totals() -> dict:
    """Sum of commission amounts per status, across all affiliates."""
    rows = (
        db.session.query(Commission.status, db.func.coalesce(db.func.sum(Commission.amount), 0))
        .group_by(Commission.status)
        .all()
    )
    totals = {status.value: money(0) for status in CommissionStatus}
    for status, total in rows:
        totals[CommissionStatus(status).value] = money(total)
    return totals
