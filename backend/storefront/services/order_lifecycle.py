"""
Order Lifecycle State Machine.

    PENDING ──> PROCESSING ──> SHIPPED ──> DELIVERED
       │  └───> PAID ──────────┘
       └─ PENDING / PROCESSING / PAID ──> CANCELLED
       └─ any non-terminal ─────────────> REFUNDED

DELIVERED, CANCELLED and REFUNDED are terminal: every transition out of
them is rejected. Side effects run in the same transaction as the status
change:
- CANCELLED restores stock for each item and marks the payment REFUNDED
- SHIPPED records carrier tracking
- DELIVERED accrues partner commissions
- REFUNDED marks the payment REFUNDED (the gateway refund itself is manual)
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.database import run_in_transaction
from storefront.errors import (
    CancellationReasonRequired,
    InvalidStatusTransition,
    OrderNotCancellable,
    OrderNotFound,
    ValidationFailed,
)
from storefront.models import (
    InventoryReason,
    Order,
    OrderStatus,
    OrderTracking,
    PaymentStatus,
    TrackingUpdate,
)
from storefront.services.commission import accrue_commissions
from storefront.services.inventory import adjust_stock

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.PAID})

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PAID: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus((value or "").upper())
    except ValueError:
        raise ValidationFailed(f"Unknown order status: {value}")


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStatusTransition(current.value, target.value)


class OrderLifecycleService:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _lock_order(self, order_id: str, user_id: Optional[str] = None) -> Order:
        query = (
            select(Order)
            .where(Order.id == order_id)
            .options(
                selectinload(Order.items),
                selectinload(Order.payment),
                selectinload(Order.tracking),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if user_id is not None:
            query = query.where(Order.user_id == user_id)
        result = await self.session.execute(query)
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound()
        return order

    async def cancel_order(
        self,
        order_id: str,
        reason: Optional[str],
        actor_id: str,
        user_id: Optional[str] = None,
    ) -> Order:
        """
        Cancel an order and put its stock back.

        ``user_id`` scopes the lookup to the caller's own orders; admins
        pass None.
        """
        if not reason or not reason.strip():
            raise CancellationReasonRequired()

        async def _cancel(session: AsyncSession) -> Order:
            order = await self._lock_order(order_id, user_id)
            if OrderStatus(order.status) not in CANCELLABLE_STATUSES:
                raise OrderNotCancellable()
            await self._apply_cancellation(order, reason.strip(), actor_id)
            return order

        order = await run_in_transaction(self.session, _cancel)
        logger.info(f"Order {order.order_number} cancelled by {actor_id}: {order.cancel_reason}")
        return order

    async def update_status(
        self,
        order_id: str,
        new_status: str,
        actor_id: str,
        reason: Optional[str] = None,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
    ) -> Order:
        """Admin-driven transition with its side effects."""
        target = parse_status(new_status)

        async def _transition(session: AsyncSession) -> Order:
            order = await self._lock_order(order_id)
            current = OrderStatus(order.status)
            ensure_transition(current, target)

            if target == OrderStatus.CANCELLED:
                await self._apply_cancellation(order, (reason or "").strip() or "Cancelled by admin", actor_id)
                return order

            if target == OrderStatus.SHIPPED:
                self._record_tracking(order, target, carrier, tracking_number, "Order shipped")
            elif target == OrderStatus.DELIVERED:
                if order.tracking:
                    self._record_tracking(order, target, None, None, "Order delivered")
                await accrue_commissions(session, order)
            elif target == OrderStatus.REFUNDED:
                if order.payment:
                    order.payment.status = PaymentStatus.REFUNDED.value

            order.status = target.value
            await session.flush()
            return order

        order = await run_in_transaction(self.session, _transition)
        logger.info(f"Order {order.order_number} moved to {order.status} by {actor_id}")
        return order

    async def _apply_cancellation(self, order: Order, reason: str, actor_id: str) -> None:
        order.status = OrderStatus.CANCELLED.value
        order.cancel_reason = reason
        order.cancelled_at = datetime.utcnow()
        order.cancelled_by = actor_id

        for item in sorted(order.items, key=lambda i: i.variant_id):
            await adjust_stock(
                self.session,
                item.variant_id,
                item.quantity,
                InventoryReason.CANCELLATION,
                reference_id=order.id,
                actor_id=actor_id,
            )

        if order.payment:
            order.payment.status = PaymentStatus.REFUNDED.value

        await self.session.flush()

    def _record_tracking(
        self,
        order: Order,
        status: OrderStatus,
        carrier: Optional[str],
        tracking_number: Optional[str],
        description: str,
    ) -> None:
        tracking = order.tracking
        if tracking is None:
            tracking = OrderTracking(
                id=str(uuid.uuid4()),
                order_id=order.id,
                carrier=carrier,
                tracking_number=tracking_number,
                status=status.value,
            )
            self.session.add(tracking)
            order.tracking = tracking
        else:
            tracking.status = status.value
            if carrier:
                tracking.carrier = carrier
            if tracking_number:
                tracking.tracking_number = tracking_number

        self.session.add(TrackingUpdate(tracking_id=tracking.id, status=status.value, description=description))
