"""
Storefront Checkout API - FastAPI Application Entry Point.

Payment intent creation and verification, the cart, order history,
the order lifecycle for admins and partner commission reporting.
"""

import logging
from contextlib import asynccontextmanager

import redis
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.config import get_settings
from storefront.database import Base, engine, get_db
from storefront.errors import register_exception_handlers
from storefront.integrations.circuit_breaker import CircuitBreaker
from storefront.integrations.mailer import EmailConnector
from storefront.integrations.razorpay import RazorpayClient
from storefront.limiter import limiter
from storefront.redis import get_redis_client
from storefront.routers import admin_orders, cart, partner, payment
from storefront.services.notifications import OrderNotifier

logger = logging.getLogger(__name__)

settings = get_settings()


def _build_breaker():
    """Redis-backed breaker for the gateway, or None when Redis is unreachable."""
    client = get_redis_client()
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis unavailable ({e}); Razorpay calls run without a circuit breaker")
        return None
    return CircuitBreaker("razorpay", client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup: Create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")

    app.state.razorpay_client = RazorpayClient(
        key_id=settings.RAZORPAY_KEY_ID or "",
        key_secret=settings.RAZORPAY_KEY_SECRET or "",
        base_url=settings.RAZORPAY_API_URL,
        timeout=settings.RAZORPAY_TIMEOUT_SECONDS,
        breaker=_build_breaker(),
    )
    app.state.order_notifier = OrderNotifier(
        EmailConnector(settings.EMAIL_API_URL, settings.EMAIL_API_KEY, settings.EMAIL_FROM)
    )

    yield

    # Shutdown: Cleanup
    await app.state.razorpay_client.close()
    await engine.dispose()
    logger.info("Database connection closed")


app = FastAPI(
    title=settings.APP_NAME,
    description="Checkout, order lifecycle and partner commissions for the storefront",
    version="1.0.0",
    lifespan=lifespan,
)

# Rate Limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list({*settings.cors_origins, settings.FRONTEND_URL}),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security and cache headers to all responses."""

    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # Order and payment data must never be cached
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Force HTTPS in production
        if not settings.DEBUG:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


app.add_middleware(SecurityHeadersMiddleware)

# Include Routers
app.include_router(payment.router, prefix="/api/payment", tags=["Payment"])
app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(admin_orders.router, prefix="/api/admin", tags=["Admin"])
app.include_router(partner.router, prefix="/api/partner", tags=["Partner"])


@app.get("/health")
async def health_check(db=Depends(get_db)):
    """Deep Health Check: Verifies Database Connectivity."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Database disconnected")
    return {"status": "healthy", "database": "connected"}
