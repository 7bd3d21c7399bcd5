"""
SQLAlchemy Models for the Storefront backend.

This package is organized by domain:
- base.py: Base class and mixins
- customer.py: Users and addresses
- catalog.py: Products, variants and the inventory audit log
- cart.py: Cart lines
- coupon.py: Coupons, partner attribution and per-user activation
- partner.py: Partners and accrued commissions
- order.py: Orders, line items, gateway payments and tracking
"""

from storefront.models.base import Base, UUIDMixin, TimestampMixin

from storefront.models.customer import User, Address
from storefront.models.catalog import Product, Color, Size, ProductVariant, InventoryLog, InventoryReason
from storefront.models.cart import CartItem
from storefront.models.coupon import Coupon, CouponPartner, UserCoupon, DiscountType
from storefront.models.partner import Partner, PartnerCommission, CommissionStatus
from storefront.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    RazorpayPayment,
    PaymentStatus,
    PaymentMethod,
    OrderTracking,
    TrackingUpdate,
)


__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",

    # Customers
    "User",
    "Address",

    # Catalog
    "Product",
    "Color",
    "Size",
    "ProductVariant",
    "InventoryLog",
    "InventoryReason",

    # Cart
    "CartItem",

    # Coupons
    "Coupon",
    "CouponPartner",
    "UserCoupon",
    "DiscountType",

    # Partners
    "Partner",
    "PartnerCommission",
    "CommissionStatus",

    # Orders
    "Order",
    "OrderItem",
    "OrderStatus",
    "RazorpayPayment",
    "PaymentStatus",
    "PaymentMethod",
    "OrderTracking",
    "TrackingUpdate",
]
