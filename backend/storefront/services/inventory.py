"""
Inventory Service.

The only code path that changes ``ProductVariant.quantity``. Each change:
1. Locks the variant row (SELECT ... FOR UPDATE) and re-reads it
2. Applies the delta, refusing to go below zero
3. Appends an InventoryLog with the before/after quantities

Callers run this inside their own transaction so the stock change commits
or rolls back together with the order it belongs to.
"""

import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.errors import InsufficientStock, VariantNotFound
from storefront.models import ProductVariant, InventoryLog, InventoryReason

logger = logging.getLogger(__name__)


async def lock_variant(session: AsyncSession, variant_id: str) -> Optional[ProductVariant]:
    """Fetch a variant under a row lock, overwriting any stale copy in the session."""
    result = await session.execute(
        select(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .options(selectinload(ProductVariant.product))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def adjust_stock(
    session: AsyncSession,
    variant_id: str,
    delta: int,
    reason: InventoryReason,
    reference_id: Optional[str] = None,
    actor_id: Optional[str] = None,
) -> InventoryLog:
    """
    Change a variant's stock by ``delta`` and record it.

    Raises:
        VariantNotFound: If the variant does not exist.
        InsufficientStock: If the change would take stock below zero.
    """
    variant = await lock_variant(session, variant_id)
    if variant is None:
        raise VariantNotFound()

    previous = variant.quantity
    new_quantity = previous + delta
    if new_quantity < 0:
        raise InsufficientStock(variant.id, variant.product.name if variant.product else None, available=previous)

    variant.quantity = new_quantity
    log = InventoryLog(
        variant_id=variant.id,
        quantity_change=delta,
        reason=reason.value,
        reference_id=reference_id,
        previous_quantity=previous,
        new_quantity=new_quantity,
        created_by=actor_id,
    )
    session.add(log)

    logger.debug(f"Stock {variant.id}: {previous} -> {new_quantity} ({reason.value}, ref={reference_id})")
    return log


async def receive_stock(
    session: AsyncSession,
    variant_id: str,
    quantity: int,
    actor_id: Optional[str] = None,
) -> InventoryLog:
    """Book incoming stock so the log can replay the variant's quantity from zero."""
    if quantity < 1:
        raise ValueError("Restock quantity must be positive")
    return await adjust_stock(session, variant_id, quantity, InventoryReason.RESTOCK, actor_id=actor_id)


async def replay_quantity(session: AsyncSession, variant_id: str) -> int:
    """Sum of every logged delta for a variant."""
    result = await session.execute(
        select(func.coalesce(func.sum(InventoryLog.quantity_change), 0))
        .where(InventoryLog.variant_id == variant_id)
    )
    return int(result.scalar() or 0)
