from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from vpnportal.errors import NotFound
from vpnportal.models import (
    AffiliateStatus,
    Commission,
    CommissionStatus,
    PaymentStatus,
    ReferralStatus,
)
from vpnportal.services.commissions import (
    approve_commission,
    bulk_approve,
    bulk_cancel,
    calculate_commission,
    cancel_commission,
    commission_totals,
    process_payment_commission,
)
from tests.factories import (
    assert_balances_reconcile,
    make_affiliate,
    make_commission,
    make_payment,
    make_plan,
    make_referral,
    make_user,
)


@pytest.fixture
def referred(app):
    """An affiliate at 20% and a referred user."""
    affiliate = make_affiliate(rate="20.00")
    user = make_user()
    referral = make_referral(affiliate, user)
    return affiliate, user, referral


def paid_payment(user, amount="100.00"):
    return make_payment(user, make_plan(price=amount), status=PaymentStatus.PAID)


class TestCalculation:
    @pytest.mark.parametrize("amount, rate, expected", [
        ("100.00", "20", "20.00"),
        ("9.99", "15", "1.50"),
        ("0.10", "5", "0.01"),
        ("49.95", "33.33", "16.65"),
    ])
    def test_rounds_half_up_to_cents(self, amount, rate, expected):
        assert calculate_commission(Decimal(amount), Decimal(rate)) == Decimal(expected)


class TestProcessPaymentCommission:
    def test_scenario_payment_of_100_at_20_percent(self, session, referred):
        affiliate, user, referral = referred

        commission = process_payment_commission(paid_payment(user))
        session.commit()

        assert commission.amount == Decimal("20.00")
        assert commission.status == CommissionStatus.PENDING
        assert commission.commission_rate == Decimal("20.00")
        session.refresh(affiliate)
        assert affiliate.pending_balance == Decimal("20.00")
        assert affiliate.lifetime_earnings == Decimal("0.00")

        assert commission.approve()
        session.commit()
        session.refresh(affiliate)
        assert affiliate.pending_balance == Decimal("0.00")
        assert affiliate.lifetime_earnings == Decimal("20.00")
        assert_balances_reconcile(affiliate)

    def test_first_payment_converts_referral(self, session, referred):
        _, user, referral = referred
        process_payment_commission(paid_payment(user))
        session.commit()

        session.refresh(referral)
        assert referral.status == ReferralStatus.CONVERTED
        assert referral.converted_at is not None

    def test_renewals_keep_earning_after_conversion(self, session, referred):
        affiliate, user, referral = referred
        process_payment_commission(paid_payment(user))
        session.commit()

        # Converted referrals are no longer bound by the attribution window
        referral.created_at = datetime.utcnow() - timedelta(days=400)
        session.commit()

        assert process_payment_commission(paid_payment(user, "50.00")).amount == Decimal("10.00")
        session.commit()
        assert affiliate.commissions.count() == 2

    def test_at_most_one_commission_per_payment(self, session, referred):
        _, user, _ = referred
        payment = paid_payment(user)

        assert process_payment_commission(payment) is not None
        session.commit()
        assert process_payment_commission(payment) is None
        assert Commission.query.filter_by(payment_id=payment.id).count() == 1

    def test_unsuccessful_payment(self, session, referred):
        _, user, _ = referred
        payment = make_payment(user, make_plan(), status=PaymentStatus.PARTIAL)
        assert process_payment_commission(payment) is None

    def test_user_without_referral(self, app):
        assert process_payment_commission(paid_payment(make_user())) is None

    def test_rejected_referral(self, session, referred):
        _, user, referral = referred
        referral.reject("fraud")
        session.commit()
        assert process_payment_commission(paid_payment(user)) is None

    @pytest.mark.parametrize("status", [AffiliateStatus.SUSPENDED, AffiliateStatus.TERMINATED,
                                        AffiliateStatus.PENDING])
    def test_inactive_affiliate(self, session, referred, status):
        affiliate, user, _ = referred
        affiliate.status = status
        session.commit()
        assert process_payment_commission(paid_payment(user)) is None

    def test_pending_referral_outside_window(self, session):
        affiliate = make_affiliate(attribution_window_days=30)
        user = make_user()
        make_referral(affiliate, user, created_at=datetime.utcnow() - timedelta(days=31))

        assert process_payment_commission(paid_payment(user)) is None
        assert Commission.query.count() == 0

    def test_rate_is_frozen_at_creation(self, session, referred):
        affiliate, user, _ = referred
        commission = process_payment_commission(paid_payment(user))
        session.commit()

        affiliate.commission_rate = Decimal("50.00")
        session.commit()
        session.refresh(commission)
        assert commission.commission_rate == Decimal("20.00")
        assert commission.amount == Decimal("20.00")

    def test_auto_approve_under_threshold(self, app, session, referred):
        app.config["AUTO_APPROVE_COMMISSION_THRESHOLD"] = 25
        affiliate, user, _ = referred

        commission = process_payment_commission(paid_payment(user))
        session.commit()

        assert commission.status == CommissionStatus.APPROVED
        assert "Auto-approved" in commission.notes
        assert_balances_reconcile(affiliate)

    def test_no_auto_approve_over_threshold(self, app, session, referred):
        app.config["AUTO_APPROVE_COMMISSION_THRESHOLD"] = 10
        _, user, _ = referred

        commission = process_payment_commission(paid_payment(user))
        assert commission.status == CommissionStatus.PENDING


class TestLifecycle:
    def test_each_transition_keeps_balances_reconciled(self, session):
        affiliate = make_affiliate()
        a = make_commission(affiliate, amount="10.00")
        b = make_commission(affiliate, amount="15.00")
        c = make_commission(affiliate, amount="7.50")
        assert_balances_reconcile(affiliate)

        for step in (lambda: a.approve(), lambda: b.approve(), lambda: a.mark_paid("BTC-1"),
                     lambda: b.cancel("chargeback"), lambda: c.cancel("fraud")):
            assert step()
            session.commit()
            assert_balances_reconcile(affiliate)

        session.refresh(affiliate)
        assert affiliate.pending_balance == Decimal("0.00")
        assert affiliate.lifetime_earnings == Decimal("10.00")
        assert affiliate.paid_out_total == Decimal("10.00")

    def test_mark_paid_before_approve_is_noop(self, session):
        commission = make_commission(make_affiliate())

        assert commission.mark_paid("BTC-x") is False
        assert commission.status == CommissionStatus.PENDING
        assert commission.payout_transaction_id is None

    def test_terminal_states_do_not_move(self, session):
        affiliate = make_affiliate()
        paid = make_commission(affiliate, pay=True)
        cancelled = make_commission(affiliate)
        cancelled.cancel()
        session.commit()

        for commission, status in ((paid, CommissionStatus.PAID), (cancelled, CommissionStatus.CANCELLED)):
            assert commission.approve() is False
            assert commission.cancel() is False
            assert commission.mark_paid() is False
            assert commission.status == status
        assert_balances_reconcile(affiliate)

    def test_notes_are_appended(self, session):
        commission = make_commission(make_affiliate())
        commission.approve("checked")
        commission.cancel("refund")
        assert commission.notes == "checked\nrefund"


class TestServiceWrappers:
    def test_approve_and_cancel_by_id(self, session):
        affiliate = make_affiliate()
        commission = make_commission(affiliate)

        assert approve_commission(commission.id, "ok") is True
        assert approve_commission(commission.id) is False
        assert cancel_commission(commission.id, "refund") is True
        assert session.get(Commission, commission.id).status == CommissionStatus.CANCELLED
        assert_balances_reconcile(affiliate)

    def test_unknown_id(self, app):
        with pytest.raises(NotFound):
            approve_commission(999)
        with pytest.raises(NotFound):
            cancel_commission(999)

    def test_bulk_approve_only_pending(self, session):
        affiliate = make_affiliate()
        pending = [make_commission(affiliate) for _ in range(2)]
        paid = make_commission(affiliate, pay=True)

        assert bulk_approve([c.id for c in pending] + [paid.id, "junk"]) == 2
        assert_balances_reconcile(affiliate)
        assert bulk_approve([]) == 0

    def test_bulk_cancel(self, session):
        affiliate = make_affiliate()
        pending = make_commission(affiliate)
        approved = make_commission(affiliate, approve=True)
        paid = make_commission(affiliate, pay=True)

        assert bulk_cancel([pending.id, approved.id, paid.id]) == 2
        session.refresh(paid)
        assert paid.status == CommissionStatus.PAID
        assert_balances_reconcile(affiliate)

    def test_totals(self, session):
        affiliate = make_affiliate()
        make_commission(affiliate, amount="5.00")
        make_commission(affiliate, amount="7.00", approve=True)

        totals = commission_totals()
        assert totals["pending"] == Decimal("5.00")
        assert totals["approved"] == Decimal("7.00")
        assert totals["paid"] == Decimal("0.00")
