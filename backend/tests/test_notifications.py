"""
Tests for the order confirmation email.
"""

import json
from decimal import Decimal

import httpx
import pytest

from storefront.integrations.mailer import EmailConnector
from storefront.services.notifications import ConfirmationLine, OrderNotifier, render_order_confirmation

LINES = [
    ConfirmationLine(name="Classic Tee", variant="Red M", quantity=2, price=Decimal("100")),
    ConfirmationLine(name="Canvas Cap <Limited>", variant="", quantity=1, price=Decimal("50")),
]


def test_render_includes_totals_and_escapes_names():
    html = render_order_confirmation(
        user_name="Asha",
        order_number="ORD-1-001",
        order_date="10 Jun 2024",
        payment_method="UPI",
        lines=LINES,
        subtotal=Decimal("250"),
        discount=Decimal("25"),
        total=Decimal("225"),
        shipping_address={"name": "Asha", "city": "Bengaluru", "postalCode": "560001"},
    )

    assert "Order #ORD-1-001" in html
    assert "Canvas Cap &lt;Limited&gt;" in html
    assert "Subtotal: 250.00" in html
    assert "Shipping: 0.00" in html
    assert "Tax: 0.00" in html
    assert "Discount: -25.00" in html
    assert "Total: 225.00" in html
    assert "Asha, Bengaluru, 560001" in html


@pytest.mark.asyncio
async def test_connector_without_url_does_not_send():
    connector = EmailConnector(api_url=None, api_key=None, sender="orders@storefront.local")

    assert await connector.send_transactional("asha@example.com", "Hi", "<p>Hi</p>") is False


@pytest.mark.asyncio
async def test_notifier_posts_confirmation():
    sent = {}

    def handler(request: httpx.Request):
        sent["auth"] = request.headers.get("authorization")
        sent["body"] = json.loads(request.content)
        return httpx.Response(202, json={"id": "msg_1"})

    connector = EmailConnector(
        api_url="https://mail.example.test/send",
        api_key="mail-key",
        sender="orders@storefront.local",
        transport=httpx.MockTransport(handler),
    )
    ok = await OrderNotifier(connector).send_order_confirmation(
        to_email="asha@example.com",
        user_name=None,
        order_number="ORD-1-001",
        order_date="10 Jun 2024",
        payment_method="UPI",
        lines=LINES,
        subtotal=Decimal("250"),
        discount=Decimal("0"),
        total=Decimal("250"),
    )

    assert ok is True
    assert sent["auth"] == "Bearer mail-key"
    assert sent["body"]["subject"] == "Order Confirmation - #ORD-1-001"
    assert sent["body"]["to"] == ["asha@example.com"]
    assert "Valued Customer" in sent["body"]["html"]


@pytest.mark.asyncio
async def test_mail_api_rejection_is_raised():
    connector = EmailConnector(
        api_url="https://mail.example.test/send",
        api_key="mail-key",
        sender="orders@storefront.local",
        transport=httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "bad address"})),
    )

    with pytest.raises(httpx.HTTPStatusError):
        await connector.send_transactional("not-an-email", "Hi", "<p>Hi</p>")
