"""
Partner commission accrual.

Commissions are created when an order is DELIVERED, never at payment time,
so orders that are paid but later cancelled or refunded never owe partners
anything. Base = subTotal - discount; rate = the coupon-partner override,
else the partner's default rate.
"""

import logging
from decimal import Decimal
from typing import List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.models import CouponPartner, Order, PartnerCommission, CommissionStatus
from storefront.services.pricing import ZERO, to_money

logger = logging.getLogger(__name__)


def commission_base(order: Order) -> Decimal:
    return max(to_money(order.sub_total) - to_money(order.discount), ZERO)


async def accrue_commissions(session: AsyncSession, order: Order) -> List[PartnerCommission]:
    """Create one PENDING commission per partner on the order's coupon. Safe to call twice."""
    if not order.coupon_id:
        return []

    result = await session.execute(
        select(CouponPartner)
        .where(CouponPartner.coupon_id == order.coupon_id)
        .options(selectinload(CouponPartner.partner))
        .execution_options(populate_existing=True)
    )
    coupon_partners = result.scalars().all()
    if not coupon_partners:
        return []

    existing = await session.execute(
        select(PartnerCommission.partner_id).where(PartnerCommission.order_id == order.id)
    )
    already_accrued = set(existing.scalars().all())

    base = commission_base(order)
    created = []
    for coupon_partner in coupon_partners:
        if coupon_partner.partner_id in already_accrued:
            continue
        rate = coupon_partner.commission
        if rate is None:
            rate = coupon_partner.partner.commission_rate if coupon_partner.partner else ZERO
        rate = to_money(rate)
        if rate <= ZERO:
            logger.info(f"Partner {coupon_partner.partner_id} has no commission rate on coupon {order.coupon_id}; skipping")
            continue

        commission = PartnerCommission(
            partner_id=coupon_partner.partner_id,
            order_id=order.id,
            coupon_id=order.coupon_id,
            base_amount=base,
            commission_rate=rate,
            amount=to_money(base * rate / Decimal(100)),
            status=CommissionStatus.PENDING.value,
        )
        session.add(commission)
        created.append(commission)
        logger.info(f"Accrued commission {commission.amount} for partner {coupon_partner.partner_id} on order {order.order_number}")

    return created


async def summarize_earnings(session: AsyncSession, partner_id: str) -> dict:
    """Commission list and totals for the partner portal."""
    result = await session.execute(
        select(PartnerCommission)
        .where(PartnerCommission.partner_id == partner_id)
        .options(selectinload(PartnerCommission.order))
        .order_by(PartnerCommission.created_at.desc())
        .execution_options(populate_existing=True)
    )
    commissions = result.scalars().all()

    pending = await session.execute(
        select(func.coalesce(func.sum(PartnerCommission.amount), 0)).where(
            PartnerCommission.partner_id == partner_id,
            PartnerCommission.status == CommissionStatus.PENDING.value,
        )
    )

    return {
        "earnings": [
            {
                "id": c.id,
                "orderId": c.order_id,
                "orderNumber": c.order.order_number if c.order else None,
                "baseAmount": float(c.base_amount),
                "commissionRate": float(c.commission_rate),
                "commission": float(c.amount),
                "status": c.status,
                "createdAt": c.created_at.isoformat() if c.created_at else None,
            }
            for c in commissions
        ],
        "stats": {
            "totalEarnings": float(sum((to_money(c.amount) for c in commissions), ZERO)),
            "pendingPayments": float(to_money(pending.scalar() or 0)),
            "totalCommissions": len(commissions),
        },
    }
