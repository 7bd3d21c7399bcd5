"""
Order queries for the customer's order history and order detail pages.
"""

import math
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.errors import OrderNotFound
from storefront.models import Order, OrderItem, OrderTracking, ProductVariant

MAX_PAGE_SIZE = 50


def _money(value) -> float:
    return float(value) if value is not None else 0.0


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _order_options():
    return (
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.items).selectinload(OrderItem.variant).selectinload(ProductVariant.color),
        selectinload(Order.items).selectinload(OrderItem.variant).selectinload(ProductVariant.size),
        selectinload(Order.payment),
        selectinload(Order.coupon),
        selectinload(Order.tracking).selectinload(OrderTracking.updates),
    )


def format_item(item: OrderItem) -> dict:
    variant = item.variant
    return {
        "id": item.id,
        "productId": item.product_id,
        "variantId": item.variant_id,
        "name": item.product.name if item.product else None,
        "slug": item.product.slug if item.product else None,
        "color": variant.color.name if variant and variant.color else None,
        "size": variant.size.name if variant and variant.size else None,
        "price": _money(item.price),
        "quantity": item.quantity,
        "subtotal": _money(item.subtotal),
    }


def format_order_summary(order: Order) -> dict:
    tracking = order.tracking
    coupon = order.coupon
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "status": order.status,
        "subTotal": _money(order.sub_total),
        "discount": _money(order.discount),
        "total": _money(order.total),
        "createdAt": _iso(order.created_at),
        "items": [format_item(item) for item in order.items],
        "payment": {
            "method": order.payment.payment_method,
            "status": order.payment.status,
        } if order.payment else None,
        "coupon": {
            "id": coupon.id,
            "code": coupon.code,
            "discountType": coupon.discount_type,
            "discountValue": _money(coupon.discount_value),
        } if coupon else ({"code": order.coupon_code} if order.coupon_code else None),
        "tracking": {
            "status": tracking.status,
            "carrier": tracking.carrier,
            "trackingNumber": tracking.tracking_number,
        } if tracking else None,
    }


def format_order_detail(order: Order, shipping_address: Optional[dict]) -> dict:
    detail = format_order_summary(order)
    detail.update({
        "tax": _money(order.tax),
        "shippingCost": _money(order.shipping_cost),
        "cancelReason": order.cancel_reason,
        "cancelledAt": _iso(order.cancelled_at),
        "cancelledBy": order.cancelled_by,
        "notes": order.notes,
        "shippingAddress": shipping_address,
        "billingAddressSameAsShipping": order.billing_address_same_as_shipping,
        "billingAddress": shipping_address if order.billing_address_same_as_shipping else order.billing_address,
    })
    if order.payment:
        detail["payment"].update({
            "id": order.payment.id,
            "razorpayOrderId": order.payment.razorpay_order_id,
            "razorpayPaymentId": order.payment.razorpay_payment_id,
            "amount": _money(order.payment.amount),
            "currency": order.payment.currency,
        })
    if order.tracking:
        updates = sorted(order.tracking.updates, key=lambda u: u.timestamp, reverse=True)
        detail["tracking"]["estimatedDelivery"] = _iso(order.tracking.estimated_delivery)
        detail["tracking"]["updates"] = [
            {
                "status": u.status,
                "location": u.location,
                "description": u.description,
                "timestamp": _iso(u.timestamp),
            }
            for u in updates
        ]
    return detail


class OrderQueryService:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_orders(self, user_id: str, page: int = 1, limit: int = 10) -> dict:
        """Caller's orders, newest first, with pagination metadata."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        total = (await self.session.execute(
            select(func.count(Order.id)).where(Order.user_id == user_id)
        )).scalar() or 0

        result = await self.session.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .options(*_order_options())
            .order_by(Order.created_at.desc())
            .execution_options(populate_existing=True)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        orders = result.scalars().all()

        return {
            "orders": [format_order_summary(order) for order in orders],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    async def get_order(self, user_id: str, order_id: str) -> dict:
        result = await self.session.execute(
            select(Order)
            .where(Order.id == order_id, Order.user_id == user_id)
            .options(*_order_options(), selectinload(Order.shipping_address))
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound()

        address = order.shipping_address.to_dict() if order.shipping_address else None
        return format_order_detail(order, address)
