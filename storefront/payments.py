"""
Tyl (Fiserv IPG) hosted payment page integration.

The storefront posts a signed form to the gateway; the gateway posts the
customer back to /orders/payment/success|failure and notifies
/orders/payment/webhook server-to-server.

Form signing:   base64(HMAC-SHA256(secret, "|".join(values sorted by key)))
                over every non-empty field.
Notification:   base64(HMAC-SHA256(secret, chargetotal + secret + currency
                + txndatetime + storename + approval_code)).
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException

from storefront import config

logger = logging.getLogger("storefront.payments")

ORDER_STATUS_BY_GATEWAY = {
    "APPROVED": "paid",
    "DECLINED": "cancelled",
    "FAILED": "cancelled",
    "WAITING": "pending",
    "PARTIALLY APPROVED": "pending",
}
PAYMENT_STATUS_BY_GATEWAY = {
    "APPROVED": "completed",
    "DECLINED": "failed",
    "FAILED": "failed",
    "WAITING": "pending",
    "PARTIALLY APPROVED": "approved",
}


def tyl_timestamp(now: Optional[datetime] = None) -> str:
    """Gateway transaction time, YYYY:MM:DD-HH:MM:SS in server local time."""
    return (now or datetime.now()).strftime("%Y:%m:%d-%H:%M:%S")


def order_status_for(gateway_status: str) -> str:
    return ORDER_STATUS_BY_GATEWAY.get(gateway_status, "pending")


def payment_status_for(gateway_status: str) -> str:
    return PAYMENT_STATUS_BY_GATEWAY.get(gateway_status, "pending")


def parse_approval_code(code: Optional[str]) -> Dict[str, Any]:
    if not code:
        return {"success": False, "code": "", "message": "No approval code provided"}
    messages = {
        "Y": (True, "Transaction approved"),
        "N": (False, "Transaction declined"),
        "?": (False, "Transaction pending or waiting"),
    }
    success, message = messages.get(code[0], (False, "Unknown approval code format"))
    return {"success": success, "code": code, "message": message}


class TylGateway:
    def __init__(
        self,
        store_name: Optional[str] = None,
        shared_secret: Optional[str] = None,
        payment_url: Optional[str] = None,
    ) -> None:
        self.store_name = store_name if store_name is not None else config.TYL_STORE_NAME
        self.shared_secret = shared_secret if shared_secret is not None else config.TYL_SHARED_SECRET
        self.payment_url = payment_url if payment_url is not None else config.TYL_PAYMENT_URL
        missing = [
            name for name, value in (
                ("TYL_STORE_NAME", self.store_name),
                ("TYL_SHARED_SECRET", self.shared_secret),
                ("TYL_PAYMENT_URL", self.payment_url),
            ) if not value
        ]
        if missing:
            raise ValueError(f"Missing required Tyl configuration: {', '.join(missing)}")

    def _sign(self, message: str) -> str:
        digest = hmac.new(self.shared_secret.encode(), message.encode(), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def extended_hash(self, fields: Dict[str, Any]) -> str:
        values = [str(fields[k]) for k in sorted(fields) if fields[k] not in (None, "")]
        return self._sign("|".join(values))

    def notification_hash(
        self, charge_total: str, currency: str, txn_datetime: str, store_name: str, approval_code: str
    ) -> str:
        return self._sign(f"{charge_total}{self.shared_secret}{currency}{txn_datetime}{store_name}{approval_code}")

    def verify_notification(self, notification: Dict[str, Any]) -> bool:
        received = notification.get("notification_hash") or ""
        expected = self.notification_hash(
            str(notification.get("chargetotal", "")),
            str(notification.get("currency", "")),
            str(notification.get("txndatetime", "")),
            str(notification.get("storename", "")),
            str(notification.get("approval_code", "")),
        )
        try:
            valid = hmac.compare_digest(base64.b64decode(expected), base64.b64decode(received, validate=True))
        except (binascii.Error, ValueError):
            valid = False
        if not valid:
            logger.warning("payments: notification hash mismatch order_id=%s", notification.get("oid"))
        return valid

    def create_payment_form(self, payment: Dict[str, Any], order_id: str, total: float) -> Dict[str, Any]:
        """Fields the frontend posts to the hosted payment page, including hashExtended."""
        billing = payment.get("billing_address") if payment.get("use_different_billing_address") else None
        billing = billing or payment.get("shipping_address")
        if not billing:
            raise HTTPException(status_code=400, detail="Billing address is required")

        base = config.BACKEND_BASE_URL.rstrip("/")
        fields: Dict[str, Any] = {
            "storename": self.store_name,
            "checkoutoption": "combinedpage",
            "txntype": "sale",
            "timezone": "Europe/London",
            "txndatetime": tyl_timestamp(),
            "hash_algorithm": "HMACSHA256",
            "chargetotal": f"{total:.2f}",
            "currency": config.CURRENCY_ISO_CODE,
            "responseSuccessURL": f"{base}/orders/payment/success",
            "responseFailURL": f"{base}/orders/payment/failure",
            "transactionNotificationURL": f"{base}/orders/payment/webhook",
            "bname": f"{payment['contact_first_name']} {payment['contact_last_name']}",
            "baddr1": billing.get("street_address"),
            "baddr2": billing.get("address_line_2"),
            "bcity": billing.get("city"),
            "bstate": billing.get("state"),
            "bcountry": billing.get("country"),
            "bzip": billing.get("postal_code"),
            "email": payment.get("contact_email"),
            "phone": payment.get("contact_phone"),
            "oid": order_id,
        }
        fields["hashExtended"] = self.extended_hash(fields)
        logger.info("payments: form created order_id=%s amount=%s currency=%s", order_id, fields["chargetotal"],
                    config.CURRENCY_NAME)
        return {"action_url": self.payment_url, "method": "POST", "fields": fields}


def get_tyl_gateway() -> TylGateway:
    try:
        return TylGateway()
    except ValueError as e:
        logger.error("payments: %s", e)
        raise HTTPException(status_code=503, detail="Payment gateway is not configured")
