"""
Midtrans Snap integration: create hosted-checkout transactions and verify
the signature of incoming payment notifications.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

import midtransclient

from config import Settings
from errors import PaymentError

log = logging.getLogger(__name__)


@dataclass
class PaymentTransaction:
    token: str
    redirect_url: str


@dataclass
class PaymentOutcome:
    status: Optional[str]
    payment_status: Optional[str]


# transaction_status -> (order status, payment status); None leaves a field unchanged
TRANSACTION_OUTCOMES = {
    "settlement": PaymentOutcome("paid", "paid"),
    "pending": PaymentOutcome(None, None),
    "cancel": PaymentOutcome("cancelled", "failed"),
    "deny": PaymentOutcome("cancelled", "failed"),
    "failure": PaymentOutcome("cancelled", "failed"),
    "expire": PaymentOutcome("cancelled", "expired"),
    "refund": PaymentOutcome("cancelled", "refunded"),
}


def resolve_outcome(transaction_status: str, fraud_status: Optional[str] = None) -> PaymentOutcome:
    if transaction_status == "capture":
        if fraud_status == "accept":
            return PaymentOutcome("paid", "paid")
        if fraud_status == "deny":
            return PaymentOutcome("cancelled", "failed")
        # challenge (or anything unrecognised) waits for a follow-up notification
        return PaymentOutcome(None, None)
    return TRANSACTION_OUTCOMES.get(transaction_status, PaymentOutcome(None, None))


def notification_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode()).hexdigest()


class MidtransGateway:
    def __init__(self, settings: Settings):
        self.server_key = settings.midtrans_server_key
        self.base_url = settings.base_url.rstrip("/")
        self.snap = midtransclient.Snap(
            is_production=settings.is_production,
            server_key=settings.midtrans_server_key,
            client_key=settings.midtrans_client_key,
        )

    def transaction_params(self, order: dict) -> dict:
        order_id = order["id"]
        shipping = order["shipping_details"]
        return {
            "transaction_details": {
                "order_id": order_id,
                "gross_amount": int(round(order["total"])),
            },
            "item_details": [
                {
                    "id": item.get("variant_id") or item["product_id"],
                    "price": int(round(item["price"])),
                    "quantity": item["quantity"],
                    "name": item["name"][:50],
                }
                for item in order["items"]
            ],
            "customer_details": {
                "first_name": shipping["name"],
                "email": shipping["email"],
                "phone": shipping["phone"],
                "shipping_address": {
                    "first_name": shipping["name"],
                    "phone": shipping["phone"],
                    "address": shipping["address"],
                    "city": shipping["city"],
                    "postal_code": shipping["postal_code"],
                },
            },
            "callbacks": {
                "finish": f"{self.base_url}/payment/success?order_id={order_id}",
                "error": f"{self.base_url}/payment/failure?order_id={order_id}",
                "pending": f"{self.base_url}/payment/pending?order_id={order_id}",
            },
        }

    def create_transaction(self, order: dict) -> PaymentTransaction:
        try:
            transaction = self.snap.create_transaction(self.transaction_params(order))
            return PaymentTransaction(transaction["token"], transaction["redirect_url"])
        except Exception as e:
            log.error("Midtrans payment creation failed for order %s: %s", order["id"], e)
            raise PaymentError("Payment creation failed") from e

    def verify_signature(self, notification: dict) -> bool:
        expected = notification_signature(
            str(notification.get("order_id", "")),
            str(notification.get("status_code", "")),
            str(notification.get("gross_amount", "")),
            self.server_key,
        )
        return hmac.compare_digest(expected, str(notification.get("signature_key", "")))
