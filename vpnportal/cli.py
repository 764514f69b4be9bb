# vpnportal/cli.py
import click
from flask.cli import AppGroup

from vpnportal.extensions import db
from vpnportal.models import Affiliate, Subscription
from vpnportal.utils import money

ledger_cli = AppGroup("ledger", help="Ledger maintenance commands.")


@ledger_cli.command("expire-subscriptions")
def expire_subscriptions():
    """Mark active subscriptions past their expiry as expired."""
    try:
        users = Subscription.expire_lapsed()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    click.echo(f"Expired subscriptions for {users} user(s).")


@ledger_cli.command("reconcile-balances")
@click.option("--affiliate-id", type=int, default=None, help="Only this affiliate.")
def reconcile_balances(affiliate_id):
    """Recompute every affiliate's derived balances from its commissions."""
    query = Affiliate.query.order_by(Affiliate.id)
    if affiliate_id is not None:
        query = query.filter(Affiliate.id == affiliate_id)

    changed = 0
    try:
        for affiliate in query.all():
            before = (money(affiliate.pending_balance), money(affiliate.lifetime_earnings),
                      money(affiliate.paid_out_total))
            affiliate.recalculate_balances()
            after = (money(affiliate.pending_balance), money(affiliate.lifetime_earnings),
                     money(affiliate.paid_out_total))
            if before != after:
                changed += 1
                click.echo(f"{affiliate.code}: {before} -> {after}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    click.echo(f"Reconciled balances; {changed} affiliate(s) corrected.")
