"""
Cart model - transient per-user basket lines.
"""

from sqlalchemy import Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.models.base import Base, UUIDMixin, TimestampMixin


class CartItem(Base, UUIDMixin, TimestampMixin):
    """One variant line in a user's cart. Deleted once an order is placed."""
    __tablename__ = "cart_items"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product_variant_id: Mapped[str] = mapped_column(ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    variant: Mapped["ProductVariant"] = relationship("ProductVariant")

    __table_args__ = (
        UniqueConstraint("user_id", "product_variant_id", name="uq_cart_user_variant"),
    )
