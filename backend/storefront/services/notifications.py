"""
Order notifications.

Confirmation mail is a side effect of checkout, sent after the order has
committed. Callers treat any failure here as non-fatal.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from html import escape
from typing import List, Optional

from storefront.integrations.mailer import EmailConnector
from storefront.services.pricing import to_money

logger = logging.getLogger(__name__)


@dataclass
class ConfirmationLine:
    name: str
    variant: str
    quantity: int
    price: Decimal


def render_order_confirmation(
    user_name: str,
    order_number: str,
    order_date: str,
    payment_method: str,
    lines: List[ConfirmationLine],
    subtotal: Decimal,
    discount: Decimal,
    total: Decimal,
    shipping_address: Optional[dict] = None,
) -> str:
    rows = "".join(
        f"<tr><td>{escape(line.name)}</td><td>{escape(line.variant)}</td>"
        f"<td>{line.quantity}</td><td>{to_money(line.price)}</td></tr>"
        for line in lines
    )
    address = ""
    if shipping_address:
        parts = [shipping_address.get(key) for key in ("name", "street", "city", "state", "postalCode", "country")]
        address = "<p>Shipping to: " + escape(", ".join(p for p in parts if p)) + "</p>"
    discount_row = f"<p>Discount: -{to_money(discount)}</p>" if discount and discount > 0 else ""
    return (
        f"<h2>Thank you for your order, {escape(user_name)}!</h2>"
        f"<p>Order #{escape(order_number)} placed on {escape(order_date)} ({escape(payment_method)})</p>"
        f"<table><tr><th>Item</th><th>Variant</th><th>Qty</th><th>Price</th></tr>{rows}</table>"
        f"<p>Subtotal: {to_money(subtotal)}</p>"
        f"<p>Shipping: 0.00</p><p>Tax: 0.00</p>"
        f"{discount_row}"
        f"<p><strong>Total: {to_money(total)}</strong></p>"
        f"{address}"
    )


class OrderNotifier:

    def __init__(self, connector: EmailConnector):
        self.connector = connector

    async def send_order_confirmation(
        self,
        to_email: str,
        user_name: Optional[str],
        order_number: str,
        order_date: str,
        payment_method: str,
        lines: List[ConfirmationLine],
        subtotal: Decimal,
        discount: Decimal,
        total: Decimal,
        shipping_address: Optional[dict] = None,
    ) -> bool:
        html = render_order_confirmation(
            user_name=user_name or "Valued Customer",
            order_number=order_number,
            order_date=order_date,
            payment_method=payment_method,
            lines=lines,
            subtotal=subtotal,
            discount=discount,
            total=total,
            shipping_address=shipping_address,
        )
        return await self.connector.send_transactional(
            to_email=to_email,
            subject=f"Order Confirmation - #{order_number}",
            html=html,
        )
