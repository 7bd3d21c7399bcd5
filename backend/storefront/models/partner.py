"""
Partner models - affiliates and the commissions they accrue on delivered orders.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Numeric, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.models.base import Base, UUIDMixin, TimestampMixin


class CommissionStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class Partner(Base, UUIDMixin, TimestampMixin):
    """An affiliate earning commission through attributed coupons."""
    __tablename__ = "partners"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0.00"))
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)


class PartnerCommission(Base, UUIDMixin, TimestampMixin):
    """One partner's payout obligation for one delivered order."""
    __tablename__ = "partner_commissions"

    partner_id: Mapped[str] = mapped_column(ForeignKey("partners.id"), nullable=False)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), nullable=False)
    coupon_id: Mapped[Optional[str]] = mapped_column(ForeignKey("coupons.id"))

    base_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=CommissionStatus.PENDING.value)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    partner: Mapped["Partner"] = relationship("Partner")
    order: Mapped["Order"] = relationship("Order")

    __table_args__ = (
        UniqueConstraint("partner_id", "order_id", name="uq_commission_partner_order"),
        Index("idx_commission_partner", "partner_id", "created_at"),
    )
