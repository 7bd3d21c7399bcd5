"""
Coupon resolution and consumption for checkout.

A checkout can learn about a coupon from three places. The first one that
has anything wins:
1. The verify request body (couponCode / couponId / discountAmount)
2. Notes stored on the gateway order at checkout-intent time
3. The user's active UserCoupon

Whatever the source, the discount is recomputed from the Coupon row. A
reference that does not resolve to a Coupon grants no discount.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.errors import CouponAlreadyConsumed
from storefront.models import Coupon, UserCoupon
from storefront.services.payment_gateway import CouponMetadata
from storefront.services.pricing import PricedLine, compute_discount, eligible_subtotal

logger = logging.getLogger(__name__)


@dataclass
class AppliedCoupon:
    coupon: Coupon
    discount: Decimal
    source: str  # request | gateway | user_coupon
    user_coupon: Optional[UserCoupon] = None

    @property
    def code(self) -> str:
        return self.coupon.code

    @property
    def coupon_id(self) -> str:
        return self.coupon.id


class CouponService:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_user_coupon(self, user_id: str) -> Optional[UserCoupon]:
        result = await self.session.execute(
            select(UserCoupon)
            .where(UserCoupon.user_id == user_id, UserCoupon.is_active == True)  # noqa: E712
            .options(selectinload(UserCoupon.coupon))
            .order_by(UserCoupon.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_coupon(self, coupon_id: Optional[str] = None, code: Optional[str] = None) -> Optional[Coupon]:
        """Look a coupon up by id, falling back to its code."""
        if coupon_id:
            coupon = await self.session.get(Coupon, coupon_id)
            if coupon:
                return coupon
        if code:
            result = await self.session.execute(select(Coupon).where(Coupon.code == code))
            return result.scalar_one_or_none()
        return None

    async def resolve(
        self,
        user_id: str,
        lines: List[PricedLine],
        requested: Optional[CouponMetadata],
        load_gateway_metadata: Callable[[], Awaitable[Optional[CouponMetadata]]],
    ) -> Optional[AppliedCoupon]:
        """Pick the coupon for this checkout and price its discount."""
        active_user_coupon = await self.get_active_user_coupon(user_id)

        coupon = None
        source = None
        claimed = None
        if requested and not requested.is_empty():
            source, claimed = "request", requested
        else:
            from_gateway = await load_gateway_metadata()
            if from_gateway and not from_gateway.is_empty():
                source, claimed = "gateway", from_gateway
            elif active_user_coupon and active_user_coupon.coupon:
                source, coupon = "user_coupon", active_user_coupon.coupon

        if source is None:
            return None

        if coupon is None:
            coupon = await self.find_coupon(claimed.coupon_id, claimed.code)
            if coupon is None:
                logger.warning(
                    f"Coupon reference from {source} did not resolve "
                    f"(code={claimed.code}, id={claimed.coupon_id}); no discount applied for user {user_id}"
                )
                return None

        discount = compute_discount(coupon, eligible_subtotal(coupon, lines))
        if claimed and claimed.discount is not None and claimed.discount != discount:
            logger.warning(
                f"Claimed discount {claimed.discount} for coupon {coupon.code} differs from computed {discount}; using computed"
            )

        user_coupon = None
        if active_user_coupon and active_user_coupon.coupon_id == coupon.id:
            user_coupon = active_user_coupon

        return AppliedCoupon(coupon=coupon, discount=discount, source=source, user_coupon=user_coupon)

    async def consume(self, applied: AppliedCoupon) -> None:
        """
        Deactivate the user's coupon row and count one use.

        The conditional UPDATE only matches an active row, so a UserCoupon
        can back at most one order even under concurrent checkouts.
        """
        if applied.user_coupon is not None:
            result = await self.session.execute(
                update(UserCoupon)
                .where(UserCoupon.id == applied.user_coupon.id, UserCoupon.is_active == True)  # noqa: E712
                .values(is_active=False)
            )
            if result.rowcount != 1:
                raise CouponAlreadyConsumed()

        await self.session.execute(
            update(Coupon)
            .where(Coupon.id == applied.coupon.id)
            .values(used_count=Coupon.used_count + 1)
        )
        logger.info(f"Coupon {applied.code} consumed (source={applied.source})")
