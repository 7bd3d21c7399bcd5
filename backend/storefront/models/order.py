"""
Order models - orders, line item snapshots, gateway payments and tracking.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, Text, Boolean, Integer, DateTime, Numeric, ForeignKey, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.models.base import Base, UUIDMixin, TimestampMixin


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, enum.Enum):
    CAPTURED = "CAPTURED"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"


class PaymentMethod(str, enum.Enum):
    CARD = "CARD"
    NETBANKING = "NETBANKING"
    WALLET = "WALLET"
    UPI = "UPI"
    EMI = "EMI"
    OTHER = "OTHER"


class Order(Base, UUIDMixin, TimestampMixin):
    """A placed order. Totals are fixed at creation time."""
    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)

    sub_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value, nullable=False)

    coupon_code: Mapped[Optional[str]] = mapped_column(String(50))
    coupon_id: Mapped[Optional[str]] = mapped_column(ForeignKey("coupons.id"))

    shipping_address_id: Mapped[str] = mapped_column(ForeignKey("addresses.id"), nullable=False)
    billing_address_same_as_shipping: Mapped[bool] = mapped_column(Boolean, default=True)
    billing_address: Mapped[Optional[dict]] = mapped_column(JSON)
    notes: Mapped[Optional[dict]] = mapped_column(JSON)

    cancel_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(36))

    # Relationships
    items: Mapped[List["OrderItem"]] = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    payment: Mapped[Optional["RazorpayPayment"]] = relationship("RazorpayPayment", back_populates="order", uselist=False)
    coupon: Mapped[Optional["Coupon"]] = relationship("Coupon")
    shipping_address: Mapped["Address"] = relationship("Address")
    tracking: Mapped[Optional["OrderTracking"]] = relationship("OrderTracking", back_populates="order", uselist=False)

    __table_args__ = (
        Index("idx_order_user_date", "user_id", "created_at"),
        Index("idx_order_status", "status"),
    )


class OrderItem(Base, UUIDMixin, TimestampMixin):
    """Price/quantity snapshot of one cart line at purchase time."""
    __tablename__ = "order_items"

    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
    variant_id: Mapped[str] = mapped_column(ForeignKey("product_variants.id"), nullable=False)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product: Mapped["Product"] = relationship("Product")
    variant: Mapped["ProductVariant"] = relationship("ProductVariant")

    __table_args__ = (
        Index("idx_orderitem_order", "order_id"),
    )


class RazorpayPayment(Base, UUIDMixin, TimestampMixin):
    """
    Gateway payment linked 1:1 to an order.

    ``razorpay_payment_id`` is unique at the storage layer; that constraint
    is what stops a replayed callback from creating a second order.
    """
    __tablename__ = "razorpay_payments"

    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False)
    razorpay_order_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    razorpay_payment_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    razorpay_signature: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="INR")
    status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.CAPTURED.value)
    payment_method: Mapped[str] = mapped_column(String(20), default=PaymentMethod.OTHER.value)
    notes: Mapped[Optional[dict]] = mapped_column(JSON)

    order: Mapped["Order"] = relationship("Order", back_populates="payment")


class OrderTracking(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "order_tracking"

    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False)
    carrier: Mapped[Optional[str]] = mapped_column(String(100))
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime)

    order: Mapped["Order"] = relationship("Order", back_populates="tracking")
    updates: Mapped[List["TrackingUpdate"]] = relationship("TrackingUpdate", back_populates="tracking", cascade="all, delete-orphan")


class TrackingUpdate(Base, UUIDMixin):
    __tablename__ = "tracking_updates"

    tracking_id: Mapped[str] = mapped_column(ForeignKey("order_tracking.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    tracking: Mapped["OrderTracking"] = relationship("OrderTracking", back_populates="updates")
