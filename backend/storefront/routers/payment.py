"""
Payment API Router.

Checkout intent creation, payment verification (which places the order),
the caller's order history and customer-initiated cancellation.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth_middleware import get_current_user_id
from storefront.config import get_settings
from storefront.database import get_db
from storefront.limiter import limiter
from storefront.responses import api_response
from storefront.routers.dependencies import get_order_notifier, get_payment_gateway
from storefront.services.checkout import CheckoutOrchestrator, PaymentConfirmation
from storefront.services.notifications import OrderNotifier
from storefront.services.order_lifecycle import OrderLifecycleService
from storefront.services.orders import OrderQueryService
from storefront.services.payment_gateway import CouponMetadata, PaymentGatewayAdapter


router = APIRouter()
settings = get_settings()


class CouponFields(BaseModel):
    coupon_code: Optional[str] = Field(None, validation_alias=AliasChoices("couponCode", "coupon_code"))
    coupon_id: Optional[str] = Field(None, validation_alias=AliasChoices("couponId", "coupon_id"))
    discount_amount: Optional[Decimal] = Field(None, validation_alias=AliasChoices("discountAmount", "discount_amount"))

    def coupon_metadata(self) -> CouponMetadata:
        return CouponMetadata(code=self.coupon_code, coupon_id=self.coupon_id, discount=self.discount_amount)


class CheckoutRequest(CouponFields):
    """Request body for creating a gateway order."""
    amount: Decimal
    currency: Optional[str] = None


class VerifyPaymentRequest(CouponFields):
    """Gateway callback fields plus the storefront's order details."""
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    shipping_address_id: Optional[str] = Field(None, validation_alias=AliasChoices("shippingAddressId", "shipping_address_id"))
    billing_address_same_as_shipping: bool = Field(
        True, validation_alias=AliasChoices("billingAddressSameAsShipping", "billing_address_same_as_shipping")
    )
    billing_address: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("billingAddress", "billing_address"))
    notes: Optional[Dict[str, Any]] = None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None


@router.get("/razorpay-key")
async def get_razorpay_key():
    """Public key id for the storefront's checkout widget."""
    return api_response({"keyId": settings.RAZORPAY_KEY_ID})


@router.post("/checkout")
@limiter.limit(settings.CHECKOUT_RATE_LIMIT)
async def create_checkout(
    request: Request,
    payload: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: PaymentGatewayAdapter = Depends(get_payment_gateway),
):
    """Create a Razorpay order for the amount the storefront is about to charge."""
    intent = await gateway.create_checkout_intent(
        payload.amount,
        user_id,
        currency=payload.currency,
        coupon=payload.coupon_metadata(),
    )
    return api_response(intent, "Razorpay order created")


@router.post("/verify")
@limiter.limit(settings.CHECKOUT_RATE_LIMIT)
async def verify_payment(
    request: Request,
    payload: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: PaymentGatewayAdapter = Depends(get_payment_gateway),
    notifier: Optional[OrderNotifier] = Depends(get_order_notifier),
    db: AsyncSession = Depends(get_db),
):
    """Verify the payment signature and turn the cart into an order."""
    confirmation = PaymentConfirmation(
        razorpay_order_id=payload.razorpay_order_id,
        razorpay_payment_id=payload.razorpay_payment_id,
        razorpay_signature=payload.razorpay_signature,
        shipping_address_id=payload.shipping_address_id,
        billing_address_same_as_shipping=payload.billing_address_same_as_shipping,
        billing_address=payload.billing_address,
        coupon=payload.coupon_metadata(),
        notes=payload.notes,
    )
    placed = await CheckoutOrchestrator(db, gateway, notifier).place_order(user_id, confirmation)
    return api_response(
        {
            "orderId": placed.order_id,
            "orderNumber": placed.order_number,
            "paymentId": placed.payment_id,
            "subTotal": float(placed.sub_total),
            "discount": float(placed.discount),
            "total": float(placed.total),
            "couponCode": placed.coupon_code,
        },
        "Payment verified and order created",
    )


@router.get("/orders")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    data = await OrderQueryService(db).list_orders(user_id, page=page, limit=limit)
    return api_response(data, "Orders fetched")


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    data = await OrderQueryService(db).get_order(user_id, order_id)
    return api_response(data, "Order fetched")


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    payload: CancelOrderRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel one of the caller's own orders and restore its stock."""
    order = await OrderLifecycleService(db).cancel_order(order_id, payload.reason, actor_id=user_id, user_id=user_id)
    return api_response(
        {"orderId": order.id, "orderNumber": order.order_number, "status": order.status},
        "Order cancelled successfully",
    )
