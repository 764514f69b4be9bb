"""create ledger tables

Revision ID: 7c2e4b91d0a3
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "7c2e4b91d0a3"
down_revision = None
branch_labels = None
depends_on = None


def _status(name, *values):
    # Stored as plain VARCHAR + CHECK, matching the models' non-native enums
    return sa.Enum(*values, name=name, native_enum=False, length=20)


def upgrade():
    op.create_table(
        "plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=True),
        sa.Column("lifetime", sa.Boolean(), nullable=False),
        sa.Column("device_limit", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_plans_active", "plans", ["active"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_deleted_at", "users", ["deleted_at"], unique=False)

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column("status", _status("subscription_status", "pending", "active", "expired", "cancelled"),
                  nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"], unique=False)
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"], unique=False)
    op.create_index("ix_subscriptions_expires_at", "subscriptions", ["expires_at"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column("subscription_id", sa.Integer(),
                  sa.ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("status", _status("payment_status", "pending", "partial", "paid", "overpaid",
                                    "expired", "failed"), nullable=False),
        sa.Column("processor_id", sa.String(length=120), nullable=True, unique=True),
        sa.Column("payment_address", sa.String(length=255), nullable=True),
        sa.Column("crypto_currency", sa.String(length=20), nullable=True),
        sa.Column("crypto_amount", sa.Numeric(18, 8), nullable=True),
        sa.Column("transaction_id", sa.String(length=255), nullable=True),
        sa.Column("webhook_secret", sa.String(length=64), nullable=True),
        sa.Column("processor_data", sa.JSON(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"], unique=False)
    op.create_index("ix_payments_plan_id", "payments", ["plan_id"], unique=False)
    op.create_index("ix_payments_subscription_id", "payments", ["subscription_id"], unique=False)
    op.create_index("ix_payments_status", "payments", ["status"], unique=False)
    op.create_index("ix_payments_paid_at", "payments", ["paid_at"], unique=False)

    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("payment_id", sa.String(length=36), sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("payment_id", "status", name="uq_webhook_logs_payment_status"),
    )
    op.create_index("ix_webhook_logs_payment_id", "webhook_logs", ["payment_id"], unique=False)

    op.create_table(
        "affiliates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", _status("affiliate_status", "active", "suspended", "terminated", "pending"),
                  nullable=False),
        sa.Column("payout_currency", sa.String(length=10), nullable=True),
        sa.Column("payout_address", sa.String(length=255), nullable=True),
        sa.Column("minimum_payout_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("attribution_window_days", sa.Integer(), nullable=False),
        sa.Column("pending_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("lifetime_earnings", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_out_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_affiliates_code", "affiliates", ["code"], unique=True)
    op.create_index("ix_affiliates_email", "affiliates", ["email"], unique=False)
    op.create_index("ix_affiliates_status", "affiliates", ["status"], unique=False)

    op.create_table(
        "affiliate_clicks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column("ip_hash", sa.String(length=64), nullable=False),
        sa.Column("user_agent_hash", sa.String(length=64), nullable=True),
        sa.Column("landing_page", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("converted", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_affiliate_clicks_affiliate_id", "affiliate_clicks", ["affiliate_id"], unique=False)
    op.create_index("ix_affiliate_clicks_ip_hash", "affiliate_clicks", ["ip_hash"], unique=False)
    op.create_index("ix_affiliate_clicks_created_at", "affiliate_clicks", ["created_at"], unique=False)

    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("referral_code", sa.String(length=32), nullable=True),
        sa.Column("ip_hash", sa.String(length=64), nullable=False),
        sa.Column("landing_page", sa.Text(), nullable=True),
        sa.Column("status", _status("referral_status", "pending", "converted", "rejected"), nullable=False),
        sa.Column("clicked_at", sa.DateTime(), nullable=True),
        sa.Column("converted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_referrals_affiliate_id", "referrals", ["affiliate_id"], unique=False)
    op.create_index("ix_referrals_status", "referrals", ["status"], unique=False)

    op.create_table(
        "commissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column("payment_id", sa.String(length=36), sa.ForeignKey("payments.id"), nullable=False,
                  unique=True),
        sa.Column("referral_id", sa.Integer(), sa.ForeignKey("referrals.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", _status("commission_status", "pending", "approved", "paid", "cancelled"),
                  nullable=False),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("payout_transaction_id", sa.String(length=120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_commissions_affiliate_status", "commissions", ["affiliate_id", "status"], unique=False)
    op.create_index("ix_commissions_referral_id", "commissions", ["referral_id"], unique=False)
    op.create_index("ix_commissions_status", "commissions", ["status"], unique=False)
    op.create_index("ix_commissions_paid_at", "commissions", ["paid_at"], unique=False)


def downgrade():
    op.drop_table("commissions")
    op.drop_table("referrals")
    op.drop_table("affiliate_clicks")
    op.drop_table("affiliates")
    op.drop_table("webhook_logs")
    op.drop_table("payments")
    op.drop_table("subscriptions")
    op.drop_table("users")
    op.drop_table("plans")
