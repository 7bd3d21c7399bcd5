"""
Router Dependencies
====================

Shared FastAPI dependencies for role checks and the gateway/notifier
objects built in the application lifespan.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request

from storefront.auth_middleware import Principal, get_current_principal
from storefront.config import get_settings
from storefront.services.notifications import OrderNotifier
from storefront.services.payment_gateway import PaymentGatewayAdapter


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal


async def require_partner(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != "partner":
        raise HTTPException(status_code=403, detail="Partner access required")
    return principal


def get_payment_gateway(request: Request) -> PaymentGatewayAdapter:
    """
    Wrap the process-wide Razorpay client in the domain adapter.

    Tests override this dependency to hand in a gateway double.
    """
    settings = get_settings()
    client = getattr(request.app.state, "razorpay_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Payment gateway is not configured")
    return PaymentGatewayAdapter(client, settings.RAZORPAY_KEY_SECRET or "", settings.DEFAULT_CURRENCY)


def get_order_notifier(request: Request) -> Optional[OrderNotifier]:
    return getattr(request.app.state, "order_notifier", None)
