"""
Tests for the Razorpay payment gateway adapter.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import TEST_KEY_SECRET, sign
from storefront.errors import ExternalServiceError, InvalidAmount
from storefront.integrations.circuit_breaker import CircuitBreakerOpenError
from storefront.integrations.razorpay import GatewayError
from storefront.services.payment_gateway import (
    CouponMetadata,
    PaymentGatewayAdapter,
    build_receipt,
    map_payment_method,
)


class TestCreateCheckoutIntent:

    @pytest.mark.asyncio
    async def test_amount_is_sent_in_paise(self, gateway, razorpay_client):
        intent = await gateway.create_checkout_intent(250, "user-1234")

        call = razorpay_client.create_order.await_args.kwargs
        assert call["amount"] == 25000
        assert call["currency"] == "INR"
        assert call["notes"] is None
        assert intent["gatewayOrderId"] == "order_test_1"
        assert intent["amount"] == 25000
        assert intent["couponData"] is None

    @pytest.mark.asyncio
    async def test_coupon_rides_along_as_notes(self, gateway, razorpay_client):
        coupon = CouponMetadata(code="SAVE10", coupon_id="c-1", discount=Decimal("25"))
        intent = await gateway.create_checkout_intent("225", "user-1234", currency="INR", coupon=coupon)

        notes = razorpay_client.create_order.await_args.kwargs["notes"]
        assert notes == {"couponCode": "SAVE10", "couponId": "c-1", "discountAmount": "25.00"}
        assert intent["couponData"] == notes

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, "0.99", -5, "abc", None])
    async def test_rejects_invalid_amounts(self, gateway, razorpay_client, amount):
        with pytest.raises(InvalidAmount):
            await gateway.create_checkout_intent(amount, "user-1234")
        razorpay_client.create_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gateway_description_is_surfaced(self, gateway, razorpay_client):
        razorpay_client.create_order.side_effect = GatewayError(
            "Razorpay POST /orders returned 400", status_code=400, description="Amount exceeds maximum"
        )

        with pytest.raises(ExternalServiceError) as exc_info:
            await gateway.create_checkout_intent(250, "user-1234")

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Amount exceeds maximum"
        assert "400" in exc_info.value.debug_detail

    @pytest.mark.asyncio
    async def test_transport_failure_uses_generic_message(self, gateway, razorpay_client):
        razorpay_client.create_order.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(ExternalServiceError) as exc_info:
            await gateway.create_checkout_intent(250, "user-1234")

        assert exc_info.value.message == "Error creating Razorpay order"

    @pytest.mark.asyncio
    async def test_open_circuit_is_reported_as_unavailable(self, gateway, razorpay_client):
        razorpay_client.create_order.side_effect = CircuitBreakerOpenError("razorpay", 30)

        with pytest.raises(ExternalServiceError) as exc_info:
            await gateway.create_checkout_intent(250, "user-1234")

        assert "temporarily unavailable" in exc_info.value.message


class TestVerifySignature:

    def test_valid_signature(self, gateway):
        assert gateway.verify_signature("order_1", "pay_1", sign("order_1", "pay_1")) is True

    def test_signature_for_other_payment_is_rejected(self, gateway):
        assert gateway.verify_signature("order_1", "pay_2", sign("order_1", "pay_1")) is False

    def test_signature_with_wrong_secret_is_rejected(self, gateway):
        assert gateway.verify_signature("order_1", "pay_1", sign("order_1", "pay_1", secret="other")) is False

    @pytest.mark.parametrize("order_id,payment_id,signature", [
        (None, "pay_1", "sig"),
        ("order_1", "", "sig"),
        ("order_1", "pay_1", None),
    ])
    def test_missing_parts(self, gateway, order_id, payment_id, signature):
        assert gateway.verify_signature(order_id, payment_id, signature) is False


class TestCouponMetadata:

    def test_empty_notes_list(self):
        assert CouponMetadata.from_notes([]).is_empty()

    def test_notes_round_trip_fields(self):
        meta = CouponMetadata.from_notes({"couponCode": "SAVE10", "discountAmount": "25"})
        assert meta.code == "SAVE10"
        assert meta.coupon_id is None
        assert meta.discount == Decimal("25.00")

    def test_malformed_discount_is_ignored(self):
        meta = CouponMetadata.from_notes({"couponCode": "SAVE10", "discountAmount": "lots"})
        assert meta.code == "SAVE10"
        assert meta.discount is None

    @pytest.mark.asyncio
    async def test_recover_reads_gateway_order_notes(self, gateway, razorpay_client):
        razorpay_client.fetch_order.return_value = {"id": "order_1", "notes": {"couponId": "c-9"}}

        meta = await gateway.recover_coupon_metadata("order_1")

        razorpay_client.fetch_order.assert_awaited_once_with("order_1")
        assert meta.coupon_id == "c-9"

    @pytest.mark.asyncio
    async def test_recover_failure_is_an_external_error(self, gateway, razorpay_client):
        razorpay_client.fetch_order.side_effect = GatewayError("boom", status_code=502)

        with pytest.raises(ExternalServiceError):
            await gateway.recover_coupon_metadata("order_1")


class TestPaymentMethod:

    @pytest.mark.parametrize("raw,mapped", [
        ("card", "CARD"),
        ("netbanking", "NETBANKING"),
        ("wallet", "WALLET"),
        ("upi", "UPI"),
        ("emi", "EMI"),
        ("cardless_emi", "OTHER"),
        (None, "OTHER"),
    ])
    def test_mapping(self, raw, mapped):
        assert map_payment_method(raw) == mapped

    @pytest.mark.asyncio
    async def test_lookup_failure_degrades_to_other(self, razorpay_client):
        razorpay_client.fetch_payment = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))
        adapter = PaymentGatewayAdapter(razorpay_client, TEST_KEY_SECRET)

        method, details = await adapter.resolve_payment_method("pay_1")

        assert method == "OTHER"
        assert details is None


def test_receipt_format():
    receipt = build_receipt("7f0c9a2e-1111-2222-3333-abcdef123456", now_ms=1718000000123)
    assert receipt == "rcpt_8000000123_3456"
    assert len(receipt) <= 40
