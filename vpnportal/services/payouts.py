# vpnportal/services/payouts.py
import csv
import io
import logging
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from vpnportal.errors import NotFound
from vpnportal.extensions import db
from vpnportal.models import Affiliate, AffiliateStatus, Commission, CommissionStatus
from vpnportal.utils import ZERO, money, parse_ids

logger = logging.getLogger(__name__)

TRANSACTION_PREFIXES = {
    "btc": "BTC",
    "eth": "ETH",
    "bank": "BANK",
}

CSV_HEADERS = ["Date", "Affiliate", "Email", "Amount", "Currency", "Transaction ID", "Payout Address"]


@dataclass
class PayoutResult:
    affiliate_id: int
    amount: Decimal = ZERO
    count: int = 0
    currency: str | None = None
    transaction_ids: list = field(default_factory=list)
    reason: str | None = None

    @property
    def paid(self) -> bool:
        return self.count > 0

    def to_dict(self) -> dict:
        return {
            "affiliate_id": self.affiliate_id,
            "amount": str(self.amount),
            "count": self.count,
            "currency": self.currency,
            "transaction_ids": list(self.transaction_ids),
            "reason": self.reason,
        }


def mint_transaction_id(payout_currency) -> str:
    prefix = TRANSACTION_PREFIXES.get((payout_currency or "").lower(), "MANUAL")
    return f"{prefix}-{secrets.token_hex(8)}"


def _lock_affiliate(affiliate_id):
    affiliate = (
        db.session.query(Affiliate)
        .filter(Affiliate.id == affiliate_id)
        .with_for_update()
        .first()
    )
    if affiliate is None:
        raise NotFound(f"affiliate {affiliate_id} not found")
    return affiliate


def process_payout(affiliate, commission_ids=None) -> PayoutResult:
    """
    Pay out one affiliate's approved commissions.

    With commission_ids, only those ids are considered; ids that belong to
    another affiliate or aren't approved are dropped without error. Each
    commission gets its own processor-style reference and is marked paid.
    Nothing is paid when the selected total is below the affiliate's
    minimum_payout_amount.
    The affiliate row stays locked until commit, so two payout runs for the
    same affiliate serialise.
    """
    affiliate_id = affiliate.id if isinstance(affiliate, Affiliate) else affiliate

    try:
        affiliate = _lock_affiliate(affiliate_id)

        if affiliate.status != AffiliateStatus.ACTIVE:
            db.session.rollback()
            logger.info("Payout skipped for affiliate %s: status %s", affiliate_id, affiliate.status)
            return PayoutResult(affiliate_id=affiliate_id, reason="affiliate_not_active")

        query = Commission.query.filter(
            Commission.affiliate_id == affiliate.id,
            Commission.status == CommissionStatus.APPROVED,
        )
        if commission_ids:
            query = query.filter(Commission.id.in_(parse_ids(commission_ids)))

        commissions = query.order_by(Commission.id).with_for_update().all()
        if not commissions:
            db.session.rollback()
            return PayoutResult(affiliate_id=affiliate_id, reason="nothing_to_pay")

        total = sum((money(c.amount) for c in commissions), ZERO)
        minimum = money(affiliate.minimum_payout_amount)
        if total < minimum:
            db.session.rollback()
            logger.info("Payout of %s below minimum %s for affiliate %s", total, minimum, affiliate_id)
            return PayoutResult(affiliate_id=affiliate_id, reason="below_minimum")

        result = PayoutResult(affiliate_id=affiliate.id, currency=affiliate.payout_currency)
        for commission in commissions:
            transaction_id = mint_transaction_id(affiliate.payout_currency)
            if commission.mark_paid(transaction_id):
                result.amount += money(commission.amount)
                result.count += 1
                result.transaction_ids.append(transaction_id)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Processed payout of %s for affiliate %s (%s commissions)",
                result.amount, affiliate.code, result.count)
    return result


def create_payout(affiliate_id, commission_ids=None) -> PayoutResult:
    affiliate = db.session.get(Affiliate, affiliate_id)
    if affiliate is None:
        raise NotFound(f"affiliate {affiliate_id} not found")
    return process_payout(affiliate, commission_ids)


def list_eligible_affiliates(min_balance=None):
    query = Affiliate.query.filter(
        Affiliate.status == AffiliateStatus.ACTIVE,
        Affiliate.pending_balance > Affiliate.minimum_payout_amount,
    )
    if min_balance is not None:
        query = query.filter(Affiliate.pending_balance >= money(min_balance))
    return query.order_by(Affiliate.pending_balance.desc(), Affiliate.id).all()


def new_payout(affiliate_id) -> dict:
    affiliate = db.session.get(Affiliate, affiliate_id)
    if affiliate is None:
        raise NotFound(f"affiliate {affiliate_id} not found")

    commissions = (
        Commission.payable()
        .filter(Commission.affiliate_id == affiliate.id)
        .order_by(Commission.created_at)
        .all()
    )
    total = affiliate.approved_total()
    return {
        "affiliate": affiliate,
        "commissions": commissions,
        "total": total,
        "meets_minimum": total >= money(affiliate.minimum_payout_amount),
    }


def payout_stats(now=None) -> dict:
    now = now or datetime.utcnow()
    month_start = datetime(now.year, now.month, 1)

    def _paid_sum(*criteria):
        total = (
            db.session.query(func.coalesce(func.sum(Commission.amount), 0))
            .filter(Commission.status == CommissionStatus.PAID, *criteria)
            .scalar()
        )
        return money(total)

    total_pending = db.session.query(func.coalesce(func.sum(Affiliate.pending_balance), 0)).scalar()
    return {
        "total_pending": money(total_pending),
        "affiliates_awaiting": len(list_eligible_affiliates()),
        "paid_this_month": _paid_sum(Commission.paid_at >= month_start),
        "paid_total": _paid_sum(),
    }


def recent_payouts(limit=20):
    return (
        Commission.query
        .filter(Commission.status == CommissionStatus.PAID)
        .order_by(Commission.paid_at.desc())
        .limit(limit)
        .all()
    )


# -------------------
# Export
# -------------------
def _parse_date(value, default: date) -> date:
    if not value:
        return default
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return default


def export_range(start=None, end=None, today=None) -> tuple[date, date]:
    today = today or datetime.utcnow().date()
    days = current_app.config.get("PAYOUT_EXPORT_DEFAULT_DAYS", 30)
    return _parse_date(start, today - timedelta(days=days)), _parse_date(end, today)


def export_payouts(start=None, end=None) -> list[dict]:
    """Flat rows for paid commissions whose paid_at falls within [start, end]."""
    start_date, end_date = export_range(start, end)
    commissions = (
        Commission.query
        .join(Affiliate)
        .filter(
            Commission.status == CommissionStatus.PAID,
            Commission.paid_at >= datetime.combine(start_date, time.min),
            Commission.paid_at <= datetime.combine(end_date, time.max),
        )
        .order_by(Commission.paid_at.desc())
        .all()
    )
    return [
        {
            "date": c.paid_at.strftime("%Y-%m-%d %H:%M"),
            "affiliate": c.affiliate.name or c.affiliate.code,
            "email": c.affiliate.email,
            "amount": str(money(c.amount)),
            "currency": c.currency,
            "transaction_id": c.payout_transaction_id,
            "payout_address": c.affiliate.payout_address,
        }
        for c in commissions
    ]


def _csv_safe(value):
    # Spreadsheet apps evaluate cells starting with these as formulas
    text = "" if value is None else str(value)
    if text[:1] in ("=", "+", "-", "@"):
        return "'" + text
    return text


def payouts_to_csv(rows) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADERS)
    for row in rows:
        writer.writerow([
            _csv_safe(row["date"]),
            _csv_safe(row["affiliate"]),
            _csv_safe(row["email"]),
            _csv_safe(row["amount"]),
            _csv_safe(row["currency"]),
            _csv_safe(row["transaction_id"]),
            _csv_safe(row["payout_address"]),
        ])
    return buf.getvalue()
