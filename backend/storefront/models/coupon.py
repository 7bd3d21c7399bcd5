"""
Coupon models - discount codes, partner attribution and per-user activation.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, Text, Boolean, Integer, DateTime, Numeric, ForeignKey, Index, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.models.base import Base, UUIDMixin, TimestampMixin


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class Coupon(Base, UUIDMixin, TimestampMixin):
    """
    A discount code.

    Empty target lists mean the coupon applies to every product.
    """
    __tablename__ = "coupons"

    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default=DiscountType.PERCENTAGE.value)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_discount_capped: Mapped[bool] = mapped_column(Boolean, default=False)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_uses: Mapped[Optional[int]] = mapped_column(Integer)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Targeting
    product_ids: Mapped[list] = mapped_column(JSON, default=list)
    category_ids: Mapped[list] = mapped_column(JSON, default=list)
    brand_ids: Mapped[list] = mapped_column(JSON, default=list)

    partners: Mapped[List["CouponPartner"]] = relationship("CouponPartner", back_populates="coupon", cascade="all, delete-orphan")


class CouponPartner(Base, UUIDMixin):
    """Attributes a coupon to a partner with an optional commission override."""
    __tablename__ = "coupon_partners"

    coupon_id: Mapped[str] = mapped_column(ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False)
    partner_id: Mapped[str] = mapped_column(ForeignKey("partners.id", ondelete="CASCADE"), nullable=False)
    commission: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))  # percent

    coupon: Mapped["Coupon"] = relationship("Coupon", back_populates="partners")
    partner: Mapped["Partner"] = relationship("Partner")

    __table_args__ = (
        UniqueConstraint("coupon_id", "partner_id", name="uq_coupon_partner"),
    )


class UserCoupon(Base, UUIDMixin, TimestampMixin):
    """A coupon a user has applied to their basket. At most one is active."""
    __tablename__ = "user_coupons"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    coupon_id: Mapped[str] = mapped_column(ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    coupon: Mapped["Coupon"] = relationship("Coupon")

    __table_args__ = (
        Index("idx_user_coupon_active", "user_id", "is_active"),
    )
