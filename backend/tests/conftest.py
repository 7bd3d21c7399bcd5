"""
Shared fixtures: an in-memory SQLite database per test, a seeded catalog
and cart, and a Razorpay client double.
"""

import hashlib
import hmac
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

# Settings are read once at import time, so the environment goes first.
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront.models import (
    Address,
    Base,
    CartItem,
    Color,
    Product,
    ProductVariant,
    Size,
    User,
)
from storefront.services.checkout import CheckoutOrchestrator, PaymentConfirmation
from storefront.services.payment_gateway import PaymentGatewayAdapter

TEST_KEY_SECRET = "rzp_test_secret"


def sign(order_id: str, payment_id: str, secret: str = TEST_KEY_SECRET) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


async def stock_of(session, variant_id: str) -> int:
    result = await session.execute(select(ProductVariant.quantity).where(ProductVariant.id == variant_id))
    return result.scalar_one()


async def fill_cart(session, user_id: str, lines):
    """Put ``[(variant_id, quantity), ...]`` in the user's cart."""
    for variant_id, quantity in lines:
        session.add(CartItem(user_id=user_id, product_variant_id=variant_id, quantity=quantity))
    await session.commit()


def confirmation_for(seed, gateway_order_id="order_test_1", payment_id="pay_test_1", **overrides) -> PaymentConfirmation:
    fields = dict(
        razorpay_order_id=gateway_order_id,
        razorpay_payment_id=payment_id,
        razorpay_signature=sign(gateway_order_id, payment_id),
        shipping_address_id=seed.address_id,
    )
    fields.update(overrides)
    return PaymentConfirmation(**fields)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def seed(db_session):
    """
    One customer with an address, a second customer, and two variants:
    A at 100.00 (stock 10) and B at 50.00 (stock 5).

    Only ids are exposed; ORM instances expire whenever a test's
    transaction rolls back.
    """
    user = User(email="asha@example.com", name="Asha")
    other = User(email="ravi@example.com", name="Ravi")
    db_session.add_all([user, other])
    await db_session.flush()

    address = Address(
        user_id=user.id,
        name="Asha",
        street="12 MG Road",
        city="Bengaluru",
        state="KA",
        postal_code="560001",
        country="India",
    )
    other_address = Address(
        user_id=other.id,
        name="Ravi",
        street="4 Park Street",
        city="Kolkata",
        state="WB",
        postal_code="700016",
        country="India",
    )
    red = Color(name="Red", hex_code="#FF0000")
    medium = Size(name="M")
    tee = Product(name="Classic Tee", slug="classic-tee", category_id="cat-tops", brand_id="brand-basic")
    cap = Product(name="Canvas Cap", slug="canvas-cap", category_id="cat-accessories", brand_id="brand-basic")
    db_session.add_all([address, other_address, red, medium, tee, cap])
    await db_session.flush()

    variant_a = ProductVariant(
        product_id=tee.id, color_id=red.id, size_id=medium.id,
        sku="TEE-RED-M", price=100, quantity=10,
    )
    variant_b = ProductVariant(product_id=cap.id, sku="CAP-ONE", price=50, quantity=5)
    db_session.add_all([variant_a, variant_b])
    await db_session.commit()

    return SimpleNamespace(
        user_id=user.id,
        other_user_id=other.id,
        address_id=address.id,
        other_address_id=other_address.id,
        product_a_id=tee.id,
        product_b_id=cap.id,
        variant_a_id=variant_a.id,
        variant_b_id=variant_b.id,
    )


@pytest_asyncio.fixture
async def cart(db_session, seed):
    """The reference cart: 2 x A @ 100 and 1 x B @ 50."""
    await fill_cart(db_session, seed.user_id, [(seed.variant_a_id, 2), (seed.variant_b_id, 1)])
    return seed


@pytest.fixture
def razorpay_client():
    """Double for RazorpayClient with the three calls checkout makes."""
    client = MagicMock()
    client.create_order = AsyncMock(side_effect=lambda amount, currency, receipt, notes=None: {
        "id": "order_test_1",
        "amount": amount,
        "currency": currency,
        "receipt": receipt,
        "notes": notes or [],
    })
    client.fetch_order = AsyncMock(return_value={"id": "order_test_1", "notes": []})
    client.fetch_payment = AsyncMock(return_value={"id": "pay_test_1", "method": "upi"})
    return client


@pytest.fixture
def gateway(razorpay_client):
    return PaymentGatewayAdapter(razorpay_client, TEST_KEY_SECRET)


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.send_order_confirmation = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def orchestrator(db_session, gateway, notifier):
    return CheckoutOrchestrator(db_session, gateway, notifier)


@pytest_asyncio.fixture
async def api_client(session_maker, gateway, notifier):
    """HTTP client against the app with the database and gateway swapped out."""
    from storefront.database import get_db
    from storefront.main import app
    from storefront.routers.dependencies import get_order_notifier, get_payment_gateway

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_order_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def auth_headers(subject: str, role: str = "customer") -> dict:
    from storefront.auth_middleware import create_access_token
    return {"Authorization": f"Bearer {create_access_token(subject, role=role)}"}
