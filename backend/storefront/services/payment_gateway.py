"""
Payment Gateway Adapter.

Creates Razorpay payment intents and authenticates the callback the
storefront posts back after the customer pays. The HMAC check in
``verify_signature`` is the only evidence the service accepts that a payment
happened.
"""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

import httpx

from storefront.errors import ExternalServiceError, InvalidAmount
from storefront.integrations.circuit_breaker import CircuitBreakerOpenError
from storefront.integrations.razorpay import GatewayError, RazorpayClient
from storefront.models import PaymentMethod
from storefront.services.pricing import to_money, to_minor_units

logger = logging.getLogger(__name__)

RECEIPT_MAX_LENGTH = 40

_METHOD_MAP = {
    "card": PaymentMethod.CARD,
    "netbanking": PaymentMethod.NETBANKING,
    "wallet": PaymentMethod.WALLET,
    "upi": PaymentMethod.UPI,
    "emi": PaymentMethod.EMI,
}


def map_payment_method(method: Optional[str]) -> str:
    return _METHOD_MAP.get((method or "").lower(), PaymentMethod.OTHER).value


def build_receipt(user_id: str, now_ms: Optional[int] = None) -> str:
    """Receipt id within the gateway's 40 char limit: last 10 timestamp digits + last 4 of the user id."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    receipt = f"rcpt_{str(now_ms)[-10:]}_{user_id[-4:]}"
    return receipt[:RECEIPT_MAX_LENGTH]


@dataclass
class CouponMetadata:
    """Coupon reference carried on a gateway order or a verify request."""
    code: Optional[str] = None
    coupon_id: Optional[str] = None
    discount: Optional[Decimal] = None

    def is_empty(self) -> bool:
        return not (self.code or self.coupon_id or (self.discount and self.discount > 0))

    def to_notes(self) -> Dict[str, str]:
        notes = {}
        if self.code:
            notes["couponCode"] = self.code
        if self.coupon_id:
            notes["couponId"] = self.coupon_id
        if self.discount and self.discount > 0:
            notes["discountAmount"] = str(to_money(self.discount))
        return notes

    @classmethod
    def from_notes(cls, notes: Any) -> "CouponMetadata":
        # Razorpay returns an empty list, not an object, when an order has no notes
        if not isinstance(notes, dict):
            return cls()
        discount = None
        if notes.get("discountAmount") not in (None, ""):
            try:
                discount = to_money(notes["discountAmount"])
            except (InvalidOperation, ValueError):
                logger.warning(f"Ignoring malformed discountAmount in gateway notes: {notes['discountAmount']!r}")
        return cls(code=notes.get("couponCode") or None, coupon_id=notes.get("couponId") or None, discount=discount)


def _sanitized(error: Exception, fallback: str) -> ExternalServiceError:
    if isinstance(error, CircuitBreakerOpenError):
        return ExternalServiceError("Payment gateway is temporarily unavailable", debug_detail=str(error))
    description = getattr(error, "description", None)
    return ExternalServiceError(description or fallback, debug_detail=str(error))


class PaymentGatewayAdapter:
    """
    Domain-facing wrapper around a ``RazorpayClient``.

    The client is injected so tests can hand in a double.
    """

    def __init__(self, client: RazorpayClient, key_secret: str, default_currency: str = "INR"):
        self.client = client
        self.key_secret = key_secret
        self.default_currency = default_currency

    async def create_checkout_intent(
        self,
        amount,
        user_id: str,
        currency: Optional[str] = None,
        coupon: Optional[CouponMetadata] = None,
    ) -> Dict[str, Any]:
        """
        Create a gateway order for ``amount`` (major units).

        Coupon details ride along as order notes so checkout can recover
        them later even if the storefront session is gone.
        """
        try:
            decimal_amount = to_money(amount)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmount()
        if decimal_amount < 1:
            raise InvalidAmount()

        currency = currency or self.default_currency
        notes = coupon.to_notes() if coupon else {}

        try:
            gateway_order = await self.client.create_order(
                amount=to_minor_units(decimal_amount),
                currency=currency,
                receipt=build_receipt(user_id),
                notes=notes or None,
            )
        except (GatewayError, CircuitBreakerOpenError, httpx.HTTPError) as e:
            logger.error(f"Razorpay order creation failed for user {user_id}: {e}")
            raise _sanitized(e, "Error creating Razorpay order")

        if not gateway_order or not gateway_order.get("id"):
            raise ExternalServiceError("Error creating Razorpay order")

        return {
            "gatewayOrderId": gateway_order["id"],
            "amount": gateway_order.get("amount", to_minor_units(decimal_amount)),
            "currency": gateway_order.get("currency", currency),
            "receipt": gateway_order.get("receipt"),
            "couponData": notes or None,
        }

    def verify_signature(self, order_id: Optional[str], payment_id: Optional[str], signature: Optional[str]) -> bool:
        """HMAC-SHA256 of ``order_id|payment_id`` keyed with the gateway secret."""
        if not (order_id and payment_id and signature):
            return False
        expected = hmac.new(
            self.key_secret.encode(),
            f"{order_id}|{payment_id}".encode(),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature)

    async def recover_coupon_metadata(self, gateway_order_id: str) -> CouponMetadata:
        """Read back the coupon notes stored on the gateway order."""
        try:
            gateway_order = await self.client.fetch_order(gateway_order_id)
        except (GatewayError, CircuitBreakerOpenError, httpx.HTTPError) as e:
            logger.error(f"Could not fetch Razorpay order {gateway_order_id}: {e}")
            raise _sanitized(e, "Unable to fetch payment order details")
        return CouponMetadata.from_notes(gateway_order.get("notes"))

    async def resolve_payment_method(self, payment_id: str) -> Tuple[str, Optional[Dict[str, Any]]]:
        """
        Payment method plus the raw gateway payment payload.

        The money is already captured at this point, so a lookup failure
        degrades to OTHER instead of failing the order.
        """
        try:
            details = await self.client.fetch_payment(payment_id)
        except (GatewayError, CircuitBreakerOpenError, httpx.HTTPError) as e:
            logger.warning(f"Could not fetch Razorpay payment {payment_id}, recording method as OTHER: {e}")
            return PaymentMethod.OTHER.value, None
        return map_payment_method(details.get("method")), details
