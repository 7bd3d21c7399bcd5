"""
Cart Service - the per-user basket that checkout turns into an order.

Quantities are checked against current stock when lines are added or
changed; checkout re-checks under row locks before anything is written.
"""

import logging
from typing import List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.errors import CartItemNotFound, InsufficientStock, ValidationFailed, VariantNotFound
from storefront.models import CartItem, ProductVariant
from storefront.services.pricing import ZERO, to_money

logger = logging.getLogger(__name__)


class CartService:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_items(self, user_id: str) -> List[CartItem]:
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

    async def get_cart(self, user_id: str) -> dict:
        items = await self.list_items(user_id)
        lines = [self._format_line(item) for item in items]
        subtotal = sum((to_money(line["subtotal"]) for line in lines), ZERO)
        return {
            "items": lines,
            "subtotal": float(subtotal),
            "itemCount": len(items),
            "totalQuantity": sum(item.quantity for item in items),
        }

    async def add_item(self, user_id: str, variant_id: str, quantity: int = 1) -> CartItem:
        """Add a variant, merging with an existing line for the same variant."""
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")

        variant = await self._get_variant(variant_id)

        result = await self.session.execute(
            select(CartItem).where(CartItem.user_id == user_id, CartItem.product_variant_id == variant_id)
        )
        item = result.scalar_one_or_none()
        new_quantity = quantity + (item.quantity if item else 0)
        self._check_stock(variant, new_quantity)

        if item:
            item.quantity = new_quantity
        else:
            item = CartItem(user_id=user_id, product_variant_id=variant_id, quantity=quantity)
            self.session.add(item)

        await self.session.flush()
        logger.info(f"Cart {user_id}: variant {variant_id} x{new_quantity}")
        return item

    async def update_item(self, user_id: str, item_id: str, quantity: int) -> CartItem:
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")

        item = await self._get_item(user_id, item_id)
        variant = await self._get_variant(item.product_variant_id)
        self._check_stock(variant, quantity)

        item.quantity = quantity
        await self.session.flush()
        return item

    async def remove_item(self, user_id: str, item_id: str) -> None:
        item = await self._get_item(user_id, item_id)
        await self.session.delete(item)
        await self.session.flush()

    async def clear(self, user_id: str) -> int:
        result = await self.session.execute(delete(CartItem).where(CartItem.user_id == user_id))
        return result.rowcount or 0

    async def _get_item(self, user_id: str, item_id: str) -> CartItem:
        result = await self.session.execute(
            select(CartItem).where(CartItem.id == item_id, CartItem.user_id == user_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise CartItemNotFound()
        return item

    async def _get_variant(self, variant_id: str) -> ProductVariant:
        result = await self.session.execute(
            select(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.is_active.is_(True))
            .options(selectinload(ProductVariant.product))
        )
        variant = result.scalar_one_or_none()
        if variant is None:
            raise VariantNotFound()
        return variant

    @staticmethod
    def _check_stock(variant: ProductVariant, quantity: int) -> None:
        if variant.quantity < quantity:
            raise InsufficientStock(
                variant.id,
                variant.product.name if variant.product else None,
                available=variant.quantity,
            )

    @staticmethod
    def _format_line(item: CartItem) -> dict:
        variant = item.variant
        price = to_money(variant.effective_price)
        return {
            "id": item.id,
            "variantId": variant.id,
            "productId": variant.product_id,
            "name": variant.product.name if variant.product else None,
            "sku": variant.sku,
            "color": variant.color.name if variant.color else None,
            "size": variant.size.name if variant.size else None,
            "price": float(price),
            "quantity": item.quantity,
            "subtotal": float(to_money(price * item.quantity)),
            "inStock": variant.quantity >= item.quantity,
        }
