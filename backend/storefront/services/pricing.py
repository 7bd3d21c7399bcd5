"""
Money and discount arithmetic.

All amounts are ``Decimal`` with two places; floats never enter the
calculation. Tax and shipping are fixed at zero in this deployment.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from storefront.models import Coupon, DiscountType

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# No percentage coupon may take more than this share of an order.
MAX_PERCENTAGE_DISCOUNT = Decimal("90")


def to_money(value) -> Decimal:
    """Coerce ints, strings, floats or Decimals to a 2-place Decimal."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Amount in paise: round(amount_with_2_places * 100)."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass
class PricedLine:
    """A cart line priced at checkout time."""
    product_id: str
    quantity: int
    unit_price: Decimal
    category_id: Optional[str] = None
    brand_id: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


def order_subtotal(lines: Iterable[PricedLine]) -> Decimal:
    return to_money(sum((line.subtotal for line in lines), ZERO))


def coupon_applies_to(coupon: Coupon, line: PricedLine) -> bool:
    """A coupon with no targets applies to everything; otherwise any matching target is enough."""
    product_ids = coupon.product_ids or []
    category_ids = coupon.category_ids or []
    brand_ids = coupon.brand_ids or []
    if not (product_ids or category_ids or brand_ids):
        return True
    return (
        line.product_id in product_ids
        or (line.category_id is not None and line.category_id in category_ids)
        or (line.brand_id is not None and line.brand_id in brand_ids)
    )


def eligible_subtotal(coupon: Coupon, lines: Iterable[PricedLine]) -> Decimal:
    return order_subtotal(line for line in lines if coupon_applies_to(coupon, line))


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """
    Discount granted by ``coupon`` on ``subtotal``.

    PERCENTAGE is clamped to 90% when the coupon is capped or asks for more;
    FIXED_AMOUNT never exceeds the subtotal, so totals cannot go negative.
    """
    subtotal = to_money(subtotal)
    value = to_money(coupon.discount_value)
    if subtotal <= ZERO or value <= ZERO:
        return ZERO

    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        percentage = value
        if coupon.is_discount_capped or percentage > MAX_PERCENTAGE_DISCOUNT:
            percentage = min(percentage, MAX_PERCENTAGE_DISCOUNT)
        return to_money(subtotal * percentage / Decimal(100))

    return min(value, subtotal)
