"""
Checkout Orchestrator.

Turns a verified Razorpay payment plus the user's current cart into a
durable Order. The flow:
1. Validate the callback (fields, address, signature, replay, stale order)
2. Load and price the cart, check stock
3. Resolve the coupon
4. In ONE transaction: order, coupon consumption, payment record,
   order items + stock decrements + inventory logs, cart cleanup
5. Best-effort confirmation email (never fails the request)
"""

import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.database import run_in_transaction
from storefront.errors import (
    EmptyCart,
    InsufficientStock,
    InvalidSignature,
    MissingPaymentDetails,
    PaymentAlreadyProcessed,
    ShippingAddressNotFound,
    ShippingAddressRequired,
    StalePaymentForCancelledOrder,
    map_storage_error,
)
from storefront.models import (
    Address,
    CartItem,
    InventoryReason,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    ProductVariant,
    RazorpayPayment,
    User,
)
from storefront.services.coupons import AppliedCoupon, CouponService
from storefront.services.inventory import adjust_stock
from storefront.services.notifications import ConfirmationLine, OrderNotifier
from storefront.services.payment_gateway import CouponMetadata, PaymentGatewayAdapter
from storefront.services.pricing import ZERO, PricedLine, order_subtotal, to_money

logger = logging.getLogger(__name__)


@dataclass
class PaymentConfirmation:
    """What the storefront posts back after the customer pays."""
    razorpay_order_id: Optional[str]
    razorpay_payment_id: Optional[str]
    razorpay_signature: Optional[str]
    shipping_address_id: Optional[str]
    billing_address_same_as_shipping: bool = True
    billing_address: Optional[dict] = None
    coupon: Optional[CouponMetadata] = None
    notes: Optional[dict] = None


@dataclass
class PlacedOrder:
    order_id: str
    order_number: str
    payment_id: str
    sub_total: Decimal
    discount: Decimal
    total: Decimal
    coupon_code: Optional[str] = None


def generate_order_number(now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"ORD-{now_ms}-{secrets.randbelow(1000):03d}"


class CheckoutOrchestrator:

    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGatewayAdapter,
        notifier: Optional[OrderNotifier] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.notifier = notifier

    async def place_order(self, user_id: str, confirmation: PaymentConfirmation) -> PlacedOrder:
        """
        Create the order for a completed payment.

        Raises (in check order):
            MissingPaymentDetails, ShippingAddressRequired, ShippingAddressNotFound,
            InvalidSignature, PaymentAlreadyProcessed, StalePaymentForCancelledOrder,
            EmptyCart, InsufficientStock
        """
        address = await self._check_payment_callback(user_id, confirmation)

        cart_items = await self._load_cart(user_id)
        if not cart_items:
            raise EmptyCart()
        for item in cart_items:
            if item.variant.quantity < item.quantity:
                raise InsufficientStock(item.variant.id, item.variant.product.name, available=item.variant.quantity)

        lines = [self._price_line(item) for item in cart_items]
        confirmation_lines = [self._confirmation_line(item) for item in cart_items]
        sub_total = order_subtotal(lines)

        coupons = CouponService(self.session)
        applied = await coupons.resolve(
            user_id,
            lines,
            confirmation.coupon,
            lambda: self.gateway.recover_coupon_metadata(confirmation.razorpay_order_id),
        )
        discount = applied.discount if applied else ZERO
        total = to_money(sub_total - discount)

        payment_method, payment_details = await self.gateway.resolve_payment_method(confirmation.razorpay_payment_id)
        order_number = generate_order_number()

        async def _persist(session: AsyncSession) -> Tuple[Order, RazorpayPayment]:
            order = Order(
                order_number=order_number,
                user_id=user_id,
                sub_total=sub_total,
                tax=ZERO,
                shipping_cost=ZERO,
                discount=discount,
                total=total,
                status=OrderStatus.PAID.value,
                coupon_code=applied.code if applied else None,
                coupon_id=applied.coupon_id if applied else None,
                shipping_address_id=address.id,
                billing_address_same_as_shipping=confirmation.billing_address_same_as_shipping,
                billing_address=None if confirmation.billing_address_same_as_shipping else confirmation.billing_address,
                notes=confirmation.notes,
            )
            session.add(order)
            await session.flush()

            if applied:
                await coupons.consume(applied)

            payment = RazorpayPayment(
                order_id=order.id,
                razorpay_order_id=confirmation.razorpay_order_id,
                razorpay_payment_id=confirmation.razorpay_payment_id,
                razorpay_signature=confirmation.razorpay_signature,
                amount=total,
                currency=self.gateway.default_currency,
                status=PaymentStatus.CAPTURED.value,
                payment_method=payment_method,
                notes=payment_details,
            )
            session.add(payment)

            # Lock variants in id order so concurrent checkouts and cancellations cannot deadlock.
            for item, line in sorted(zip(cart_items, lines), key=lambda pair: pair[0].product_variant_id):
                session.add(OrderItem(
                    order_id=order.id,
                    product_id=line.product_id,
                    variant_id=item.product_variant_id,
                    price=line.unit_price,
                    quantity=line.quantity,
                    subtotal=line.subtotal,
                ))
                await adjust_stock(
                    session,
                    item.product_variant_id,
                    -item.quantity,
                    InventoryReason.SALE,
                    reference_id=order.id,
                    actor_id=user_id,
                )

            await session.execute(delete(CartItem).where(CartItem.user_id == user_id))
            await session.flush()
            return order, payment

        try:
            order, payment = await run_in_transaction(self.session, _persist)
        except (IntegrityError, NoResultFound) as e:
            logger.warning(f"Checkout for payment {confirmation.razorpay_payment_id} hit a storage conflict: {e}")
            raise map_storage_error(e) from e

        logger.info(
            f"Order {order.order_number} placed for user {user_id}: "
            f"subtotal={sub_total} discount={discount} total={total} coupon={order.coupon_code}"
        )

        await self._send_confirmation(user_id, order, payment, confirmation_lines, address)

        return PlacedOrder(
            order_id=order.id,
            order_number=order.order_number,
            payment_id=payment.id,
            sub_total=sub_total,
            discount=discount,
            total=total,
            coupon_code=order.coupon_code,
        )

    async def _check_payment_callback(self, user_id: str, confirmation: PaymentConfirmation) -> Address:
        if not (confirmation.razorpay_order_id and confirmation.razorpay_payment_id and confirmation.razorpay_signature):
            raise MissingPaymentDetails()

        if not confirmation.shipping_address_id:
            raise ShippingAddressRequired()
        result = await self.session.execute(
            select(Address).where(Address.id == confirmation.shipping_address_id, Address.user_id == user_id)
        )
        address = result.scalar_one_or_none()
        if address is None:
            raise ShippingAddressNotFound()

        if not self.gateway.verify_signature(
            confirmation.razorpay_order_id,
            confirmation.razorpay_payment_id,
            confirmation.razorpay_signature,
        ):
            logger.warning(f"Rejected payment {confirmation.razorpay_payment_id}: signature mismatch")
            raise InvalidSignature()

        existing = await self.session.execute(
            select(RazorpayPayment.id).where(RazorpayPayment.razorpay_payment_id == confirmation.razorpay_payment_id)
        )
        if existing.scalar_one_or_none():
            raise PaymentAlreadyProcessed()

        stale = await self.session.execute(
            select(Order.order_number)
            .join(RazorpayPayment, RazorpayPayment.order_id == Order.id)
            .where(
                RazorpayPayment.razorpay_order_id == confirmation.razorpay_order_id,
                Order.status == OrderStatus.CANCELLED.value,
            )
            .limit(1)
        )
        cancelled_number = stale.scalar_one_or_none()
        if cancelled_number:
            logger.info(f"Detected payment for previously cancelled order: {cancelled_number}")
            raise StalePaymentForCancelledOrder()

        return address

    async def _load_cart(self, user_id: str) -> List[CartItem]:
        result = await self.session.execute(
            select(CartItem)
            .where(CartItem.user_id == user_id)
            .options(
                selectinload(CartItem.variant).selectinload(ProductVariant.product),
                selectinload(CartItem.variant).selectinload(ProductVariant.color),
                selectinload(CartItem.variant).selectinload(ProductVariant.size),
            )
            .order_by(CartItem.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    def _price_line(item: CartItem) -> PricedLine:
        variant = item.variant
        return PricedLine(
            product_id=variant.product_id,
            quantity=item.quantity,
            unit_price=to_money(variant.effective_price),
            category_id=variant.product.category_id,
            brand_id=variant.product.brand_id,
        )

    @staticmethod
    def _confirmation_line(item: CartItem) -> ConfirmationLine:
        variant = item.variant
        label = " ".join(
            part for part in (
                variant.color.name if variant.color else "",
                variant.size.name if variant.size else "",
            ) if part
        )
        return ConfirmationLine(
            name=variant.product.name,
            variant=label,
            quantity=item.quantity,
            price=to_money(variant.effective_price),
        )

    async def _send_confirmation(
        self,
        user_id: str,
        order: Order,
        payment: RazorpayPayment,
        lines: List[ConfirmationLine],
        address: Address,
    ) -> None:
        if self.notifier is None:
            return
        try:
            user = await self.session.get(User, user_id)
            if not user or not user.email:
                return
            await self.notifier.send_order_confirmation(
                to_email=user.email,
                user_name=user.name,
                order_number=order.order_number,
                order_date=order.created_at.strftime("%d %b %Y") if order.created_at else "",
                payment_method=payment.payment_method or "Online",
                lines=lines,
                subtotal=order.sub_total,
                discount=order.discount,
                total=order.total,
                shipping_address=address.to_dict(),
            )
        except Exception as e:
            logger.error(f"Order confirmation email failed for {order.order_number}: {e}")
