"""
Cart API Router.
"""

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth_middleware import get_current_user_id
from storefront.database import get_db
from storefront.responses import api_response
from storefront.services.cart import CartService

router = APIRouter()


class AddCartItemRequest(BaseModel):
    variant_id: str = Field(validation_alias=AliasChoices("variantId", "variant_id"))
    quantity: int = 1


class UpdateCartItemRequest(BaseModel):
    quantity: int


@router.get("")
async def get_cart(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return api_response(await CartService(db).get_cart(user_id), "Cart fetched")


@router.post("/items")
async def add_cart_item(
    payload: AddCartItemRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = CartService(db)
    await service.add_item(user_id, payload.variant_id, payload.quantity)
    return api_response(await service.get_cart(user_id), "Item added to cart")


@router.patch("/items/{item_id}")
async def update_cart_item(
    item_id: str,
    payload: UpdateCartItemRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = CartService(db)
    await service.update_item(user_id, item_id, payload.quantity)
    return api_response(await service.get_cart(user_id), "Cart updated")


@router.delete("/items/{item_id}")
async def remove_cart_item(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = CartService(db)
    await service.remove_item(user_id, item_id)
    return api_response(await service.get_cart(user_id), "Item removed from cart")


@router.delete("")
async def clear_cart(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    removed = await CartService(db).clear(user_id)
    return api_response({"removed": removed}, "Cart cleared")
