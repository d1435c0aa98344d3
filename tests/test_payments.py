"""Tests for the Tyl hosted payment page signing and status mapping."""

import base64
import hashlib
import hmac
from datetime import datetime

import pytest
from fastapi import HTTPException

from storefront import config
from storefront.payments import (
    TylGateway,
    get_tyl_gateway,
    order_status_for,
    parse_approval_code,
    payment_status_for,
    tyl_timestamp,
)


@pytest.fixture
def gateway():
    return TylGateway("store-1", "sharedsecret", "https://gateway.test/connect")


def _expected(secret: str, message: str) -> str:
    return base64.b64encode(hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()).decode()


class TestTylSigning:
    def test_extended_hash_sorts_keys_and_skips_empty(self, gateway):
        fields = {"txntype": "sale", "chargetotal": "10.00", "baddr2": None, "bstate": "", "currency": "826"}
        assert gateway.extended_hash(fields) == _expected("sharedsecret", "10.00|826|sale")

    def test_notification_hash(self, gateway):
        digest = gateway.notification_hash("10.00", "826", "2024:01:02-03:04:05", "store-1", "Y:123456:abc")
        assert digest == _expected("sharedsecret", "10.00sharedsecret8262024:01:02-03:04:05store-1Y:123456:abc")

    def test_verify_notification(self, gateway):
        note = {
            "chargetotal": "10.00", "currency": "826", "txndatetime": "2024:01:02-03:04:05",
            "storename": "store-1", "approval_code": "Y:1:2",
        }
        note["notification_hash"] = gateway.notification_hash(
            "10.00", "826", "2024:01:02-03:04:05", "store-1", "Y:1:2"
        )
        assert gateway.verify_notification(note) is True
        assert gateway.verify_notification({**note, "chargetotal": "1.00"}) is False
        assert gateway.verify_notification({**note, "notification_hash": "not base64!"}) is False

    def test_missing_configuration(self):
        with pytest.raises(ValueError, match="TYL_SHARED_SECRET"):
            TylGateway("store-1", "", "https://gateway.test")

    def test_dependency_is_503_when_unconfigured(self, monkeypatch):
        monkeypatch.setattr(config, "TYL_STORE_NAME", "")
        with pytest.raises(HTTPException) as exc:
            get_tyl_gateway()
        assert exc.value.status_code == 503


class TestPaymentForm:
    payment = {
        "contact_first_name": "Alice",
        "contact_last_name": "Smith",
        "contact_email": "alice@example.com",
        "contact_phone": "0123",
        "shipping_address": {
            "street_address": "1 High St", "city": "London", "postal_code": "N1 1AA",
            "country": "GB", "country_name": "United Kingdom",
        },
        "use_different_billing_address": False,
    }

    def test_form_fields_and_signature(self, gateway, monkeypatch):
        monkeypatch.setattr(config, "BACKEND_BASE_URL", "https://api.shop.test/")
        form = gateway.create_payment_form(self.payment, "order-1", 25.5)
        fields = form["fields"]

        assert form["action_url"] == "https://gateway.test/connect"
        assert form["method"] == "POST"
        assert fields["chargetotal"] == "25.50"
        assert fields["bname"] == "Alice Smith"
        assert fields["baddr1"] == "1 High St"
        assert fields["oid"] == "order-1"
        assert fields["responseSuccessURL"] == "https://api.shop.test/orders/payment/success"
        assert fields["transactionNotificationURL"] == "https://api.shop.test/orders/payment/webhook"

        unsigned = {k: v for k, v in fields.items() if k != "hashExtended"}
        assert fields["hashExtended"] == gateway.extended_hash(unsigned)

    def test_separate_billing_address_used(self, gateway):
        payment = {
            **self.payment,
            "use_different_billing_address": True,
            "billing_address": {**self.payment["shipping_address"], "street_address": "9 Low Rd"},
        }
        assert gateway.create_payment_form(payment, "o", 1)["fields"]["baddr1"] == "9 Low Rd"

    def test_missing_address_is_400(self, gateway):
        with pytest.raises(HTTPException) as exc:
            gateway.create_payment_form({**self.payment, "shipping_address": None}, "o", 1)
        assert exc.value.status_code == 400


class TestStatusMapping:
    @pytest.mark.parametrize("gateway_status,order_status,payment_status", [
        ("APPROVED", "paid", "completed"),
        ("DECLINED", "cancelled", "failed"),
        ("FAILED", "cancelled", "failed"),
        ("WAITING", "pending", "pending"),
        ("SOMETHING", "pending", "pending"),
    ])
    def test_mapping(self, gateway_status, order_status, payment_status):
        assert order_status_for(gateway_status) == order_status
        assert payment_status_for(gateway_status) == payment_status

    def test_approval_codes(self):
        assert parse_approval_code("Y:123:ok")["success"] is True
        assert parse_approval_code("N:05:Declined")["message"] == "Transaction declined"
        assert parse_approval_code(None)["success"] is False

    def test_timestamp_format(self):
        assert tyl_timestamp(datetime(2024, 5, 6, 7, 8, 9)) == "2024:05:06-07:08:09"
