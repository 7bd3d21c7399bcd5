"""
Admin Orders Router.

Status changes go through the order state machine so their side effects
(stock restore, tracking, commissions, refund marking) always run.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth_middleware import Principal
from storefront.database import get_db
from storefront.responses import api_response
from storefront.routers.dependencies import require_admin
from storefront.services.order_lifecycle import OrderLifecycleService

router = APIRouter()


class UpdateStatusRequest(BaseModel):
    status: str
    reason: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = Field(None, validation_alias=AliasChoices("trackingNumber", "tracking_number"))


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    payload: UpdateStatusRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderLifecycleService(db).update_status(
        order_id,
        payload.status,
        actor_id=admin.user_id,
        reason=payload.reason,
        carrier=payload.carrier,
        tracking_number=payload.tracking_number,
    )
    return api_response(
        {"orderId": order.id, "orderNumber": order.order_number, "status": order.status},
        f"Order status updated to {order.status}",
    )
