from decimal import Decimal

import pytest

from vpnportal.models import CommissionStatus, ReferralStatus
from tests.factories import (
    login,
    make_affiliate,
    make_commission,
    make_referral,
    make_user,
)


@pytest.fixture
def admin_client(app, client):
    login(client, make_user("admin@example.com", is_admin=True))
    return client


class TestAccess:
    def test_anonymous_is_rejected(self, client):
        assert client.get("/admin/payouts").status_code == 401

    def test_non_admin_is_forbidden(self, client):
        login(client, make_user("user@example.com"))
        assert client.get("/admin/payouts").status_code == 403

    def test_deleted_admin_is_logged_out(self, client, session):
        admin = make_user("old@example.com", is_admin=True)
        admin.soft_delete()
        session.commit()
        login(client, admin)
        assert client.get("/admin/commissions").status_code == 401


class TestPayoutRoutes:
    def test_index_lists_eligible_affiliates(self, admin_client):
        affiliate = make_affiliate(minimum_payout_amount=Decimal("10.00"))
        make_commission(affiliate, amount="25.00")

        data = admin_client.get("/admin/payouts").get_json()

        assert [a["id"] for a in data["affiliates"]] == [affiliate.id]
        assert data["affiliates"][0]["pending_balance"] == "25.00"
        assert data["stats"]["affiliates_awaiting"] == 1
        assert data["stats"]["total_pending"] == "25.00"

    def test_index_filters_by_min_balance(self, admin_client):
        small = make_affiliate()
        make_commission(small, amount="25.00")
        large = make_affiliate()
        make_commission(large, amount="80.00")

        data = admin_client.get("/admin/payouts?min_balance=50").get_json()

        assert [a["id"] for a in data["affiliates"]] == [large.id]

    @pytest.mark.parametrize("value", ["abc", "1e", "nan"])
    def test_index_rejects_bad_min_balance(self, admin_client, value):
        resp = admin_client.get(f"/admin/payouts?min_balance={value}")

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "bad_request"

    def test_new_payout_preview(self, admin_client):
        affiliate = make_affiliate(minimum_payout_amount=Decimal("10.00"))
        make_commission(affiliate, amount="12.00", approve=True)

        data = admin_client.get(f"/admin/payouts/new?affiliate_id={affiliate.id}").get_json()

        assert data["total"] == "12.00"
        assert data["meets_minimum"] is True
        assert len(data["commissions"]) == 1

    def test_new_payout_requires_affiliate(self, admin_client):
        assert admin_client.get("/admin/payouts/new").status_code == 400
        assert admin_client.get("/admin/payouts/new?affiliate_id=999").status_code == 404

    def test_create_payout(self, admin_client, session):
        affiliate = make_affiliate(payout_currency="eth", payout_address="0xabc")
        commission = make_commission(affiliate, amount="30.00", approve=True)

        resp = admin_client.post("/admin/payouts", json={"affiliate_id": affiliate.id})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["amount"] == "30.00"
        assert data["count"] == 1
        assert data["transaction_ids"][0].startswith("ETH-")
        session.refresh(commission)
        assert commission.status == CommissionStatus.PAID

    def test_create_payout_with_form_ids(self, admin_client, session):
        affiliate = make_affiliate()
        chosen = make_commission(affiliate, approve=True)
        make_commission(affiliate, approve=True)

        resp = admin_client.post(
            "/admin/payouts",
            data={"affiliate_id": str(affiliate.id), "commission_ids": [str(chosen.id)]},
        )
        assert resp.get_json()["count"] == 1

    def test_create_payout_unknown_affiliate(self, admin_client):
        resp = admin_client.post("/admin/payouts", json={"affiliate_id": 999})
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "not_found"

    def test_export_csv(self, admin_client):
        affiliate = make_affiliate(name="Bob")
        make_commission(affiliate, amount="10.00", pay=True)

        resp = admin_client.get("/admin/payouts/export?start_date=2000-01-01&end_date=2999-12-31")

        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "payouts_2000-01-01_2999-12-31.csv" in resp.headers["Content-Disposition"]
        lines = resp.get_data(as_text=True).splitlines()
        assert lines[0].startswith("Date,Affiliate,Email,Amount")
        assert "Bob" in lines[1]

    def test_export_json(self, admin_client):
        make_commission(make_affiliate(), amount="10.00", pay=True)

        data = admin_client.get("/admin/payouts/export?format=json").get_json()
        assert len(data["payouts"]) == 1
        assert data["payouts"][0]["amount"] == "10.00"


class TestCommissionRoutes:
    def test_index_filters_by_status(self, admin_client):
        affiliate = make_affiliate()
        make_commission(affiliate, amount="5.00")
        make_commission(affiliate, amount="6.00", approve=True)

        data = admin_client.get("/admin/commissions?status=approved").get_json()

        assert [c["amount"] for c in data["commissions"]] == ["6.00"]
        assert data["totals"]["pending"] == "5.00"
        assert admin_client.get("/admin/commissions?status=bogus").status_code == 400

    def test_index_filters_by_affiliate(self, admin_client):
        mine = make_affiliate()
        make_commission(mine)
        make_commission(make_affiliate())

        data = admin_client.get(f"/admin/commissions?affiliate_id={mine.id}").get_json()
        assert {c["affiliate_id"] for c in data["commissions"]} == {mine.id}

    def test_approve_then_cancel(self, admin_client, session):
        commission = make_commission(make_affiliate())

        resp = admin_client.post(f"/admin/commissions/{commission.id}/approve", json={"notes": "verified"})
        assert resp.get_json() == {"id": commission.id, "changed": True}
        resp = admin_client.post(f"/admin/commissions/{commission.id}/approve")
        assert resp.get_json()["changed"] is False

        admin_client.post(f"/admin/commissions/{commission.id}/cancel", json={"reason": "chargeback"})
        session.refresh(commission)
        assert commission.status == CommissionStatus.CANCELLED
        assert commission.notes == "verified\nchargeback"

    def test_unknown_commission(self, admin_client):
        assert admin_client.post("/admin/commissions/999/approve").status_code == 404

    def test_bulk_actions(self, admin_client):
        affiliate = make_affiliate()
        ids = [make_commission(affiliate).id for _ in range(3)]

        resp = admin_client.post("/admin/commissions/bulk-approve", json={"commission_ids": ids[:2]})
        assert resp.get_json() == {"approved": 2}

        resp = admin_client.post("/admin/commissions/bulk-cancel", json={"commission_ids": ids})
        assert resp.get_json() == {"cancelled": 3}

    def test_reject_referral(self, admin_client, session):
        affiliate = make_affiliate()
        referral = make_referral(affiliate, make_user())
        commission = make_commission(affiliate, referral=referral)

        resp = admin_client.post(f"/admin/referrals/{referral.id}/reject", json={"reason": "fraud"})

        assert resp.get_json()["changed"] is True
        session.refresh(referral)
        session.refresh(commission)
        assert referral.status == ReferralStatus.REJECTED
        assert commission.status == CommissionStatus.CANCELLED
