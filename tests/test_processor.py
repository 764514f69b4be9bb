from decimal import Decimal
from unittest import mock

import pytest
import requests

from vpnportal.errors import ProcessorError
from vpnportal.models import Payment, PaymentStatus
from vpnportal.services.processor import (
    ProcessorClient,
    create_payment,
    get_payment_status,
    map_processor_status,
    webhook_url,
)
from tests.factories import make_plan, make_user


def fake_response(payload=None, status=200):
    response = mock.Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.json.return_value = payload
    return response


INVOICE = {
    "id": "inv_123",
    "status": "new",
    "payments": [
        {"currency": "btc", "payment_address": "bc1qinvoice", "amount": "0.00012345"},
        {"currency": "eth", "payment_address": "0xinvoice", "amount": "0.0031"},
    ],
}


@pytest.mark.parametrize("raw, expected", [
    ("new", "UNPAID"),
    ("pending", "UNPAID"),
    ("paid", "PAID"),
    ("confirmed", "PAID"),
    ("complete", "PAID"),
    ("expired", "EXPIRED"),
    ("invalid", "FAILED"),
    ("refunded", "REFUNDED"),
])
def test_map_processor_status(raw, expected):
    assert map_processor_status(raw) == expected


class TestProcessorClient:
    def test_sends_bearer_token_and_timeout(self, app):
        with mock.patch("vpnportal.services.processor.requests.request",
                        return_value=fake_response([{"currency": "btc"}])) as request:
            assert ProcessorClient().available_cryptos() == [{"currency": "btc"}]

        args, kwargs = request.call_args
        assert args == ("GET", "http://processor.test/cryptos")
        assert kwargs["headers"]["Authorization"] == "Bearer test-api-key"
        assert kwargs["timeout"] == 15

    def test_unwraps_paginated_cryptos(self, app):
        with mock.patch("vpnportal.services.processor.requests.request",
                        return_value=fake_response({"result": ["btc", "eth"]})):
            assert ProcessorClient().available_cryptos() == ["btc", "eth"]

    def test_http_error_raises(self, app):
        with mock.patch("vpnportal.services.processor.requests.request",
                        return_value=fake_response({"detail": "nope"}, status=422)):
            with pytest.raises(ProcessorError):
                ProcessorClient().get_invoice("inv_1")

    def test_connection_error_raises(self, app):
        with mock.patch("vpnportal.services.processor.requests.request",
                        side_effect=requests.ConnectionError("down")):
            with pytest.raises(ProcessorError):
                ProcessorClient().get_invoice("inv_1")

    def test_invalid_json_raises(self, app):
        response = fake_response()
        response.json.side_effect = ValueError("not json")
        with mock.patch("vpnportal.services.processor.requests.request", return_value=response):
            with pytest.raises(ProcessorError):
                ProcessorClient().get_invoice("inv_1")


class TestCreatePayment:
    def test_creates_pending_payment_with_invoice(self, app, session):
        user, plan = make_user(), make_plan(price="9.99")

        with mock.patch("vpnportal.services.processor.requests.request",
                        return_value=fake_response(INVOICE)) as request:
            payment = create_payment(user, plan, "BTC")

        body = request.call_args.kwargs["json"]
        assert body["order_id"] == payment.id
        assert body["price"] == "9.99"
        assert body["notification_url"] == webhook_url(payment.webhook_secret)
        assert body["notification_url"].startswith("https://portal.test/payments/webhook?secret=")

        stored = session.get(Payment, payment.id)
        assert stored.status == PaymentStatus.PENDING
        assert stored.processor_id == "inv_123"
        assert stored.payment_address == "bc1qinvoice"
        assert stored.crypto_currency == "btc"
        assert stored.crypto_amount == Decimal("0.00012345")
        assert stored.expires_at is not None
        assert len(stored.webhook_secret) == 64

    def test_processor_failure_leaves_no_payment(self, app):
        user, plan = make_user(), make_plan()

        with mock.patch("vpnportal.services.processor.requests.request",
                        return_value=fake_response({}, status=500)):
            with pytest.raises(ProcessorError):
                create_payment(user, plan, "btc")

        assert Payment.query.count() == 0


def test_get_payment_status(app):
    invoice = {"status": "complete", "received_amount": "0.0001"}
    with mock.patch("vpnportal.services.processor.requests.request",
                    return_value=fake_response(invoice)):
        assert get_payment_status("inv_123") == {"status": "PAID", "amount_received": "0.0001"}
