"""
Partner Portal Router.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth_middleware import Principal
from storefront.database import get_db
from storefront.responses import api_response
from storefront.routers.dependencies import require_partner
from storefront.services.commission import summarize_earnings

router = APIRouter()


@router.get("/earnings")
async def get_earnings(
    partner: Principal = Depends(require_partner),
    db: AsyncSession = Depends(get_db),
):
    """Commissions accrued on the partner's delivered orders."""
    return api_response(await summarize_earnings(db, partner.user_id), "Earnings fetched")
