"""
Catalog models - products, purchasable variants and the stock audit trail.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, Text, Boolean, Integer, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.models.base import Base, UUIDMixin, TimestampMixin


class InventoryReason(str, enum.Enum):
    SALE = "sale"
    CANCELLATION = "cancellation"
    RESTOCK = "restock"


class Product(Base, UUIDMixin, TimestampMixin):
    """A catalog product; stock and price live on its variants."""
    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    brand_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    variants: Mapped[List["ProductVariant"]] = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan")


class Color(Base, UUIDMixin):
    __tablename__ = "colors"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    hex_code: Mapped[Optional[str]] = mapped_column(String(10))


class Size(Base, UUIDMixin):
    __tablename__ = "sizes"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))


class ProductVariant(Base, UUIDMixin, TimestampMixin):
    """
    A purchasable SKU (color x size) with its own price and stock.

    ``quantity`` is only changed through services.inventory so that every
    change has a matching InventoryLog row.
    """
    __tablename__ = "product_variants"

    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    color_id: Mapped[Optional[str]] = mapped_column(ForeignKey("colors.id"))
    size_id: Mapped[Optional[str]] = mapped_column(ForeignKey("sizes.id"))

    sku: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    sale_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    product: Mapped["Product"] = relationship("Product", back_populates="variants")
    color: Mapped[Optional["Color"]] = relationship("Color")
    size: Mapped[Optional["Size"]] = relationship("Size")

    @property
    def effective_price(self) -> Decimal:
        """Sale price wins over list price when one is set."""
        return self.sale_price if self.sale_price else self.price

    __table_args__ = (
        Index("idx_variant_product", "product_id"),
    )


class InventoryLog(Base, UUIDMixin):
    """Append-only record of a single stock change on a variant."""
    __tablename__ = "inventory_logs"

    variant_id: Mapped[str] = mapped_column(ForeignKey("product_variants.id"), nullable=False)
    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_id: Mapped[Optional[str]] = mapped_column(String(36))
    previous_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    new_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_inventory_log_variant", "variant_id", "created_at"),
        Index("idx_inventory_log_reference", "reference_id"),
    )
