"""Cart endpoints. Every route acts on the caller's own cart."""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from storefront.auth import CurrentUser, get_current_user
from storefront.cart import CartService
from storefront.supabase_client import SupabaseClient, get_supabase

router = APIRouter(prefix="/cart", tags=["cart"])


class AddToCart(BaseModel):
    variant_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class UpdateCartItem(BaseModel):
    quantity: int = Field(..., ge=1)


class RemoveCartItems(BaseModel):
    item_ids: List[str] = Field(..., min_length=1)


def get_cart_service(supabase: SupabaseClient = Depends(get_supabase)) -> CartService:
    return CartService(supabase)


@router.get("")
def get_cart(user: CurrentUser = Depends(get_current_user), service: CartService = Depends(get_cart_service)):
    return service.get_cart(user.id)


@router.post("")
def add_to_cart(
    body: AddToCart,
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    return service.add_item(user.id, body.variant_id, body.quantity)


@router.delete("/items")
def remove_cart_items(
    body: RemoveCartItems,
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    return service.remove_items(user.id, body.item_ids)


@router.put("/{item_id}")
def update_cart_item(
    item_id: str,
    body: UpdateCartItem,
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    return service.update_item(user.id, item_id, body.quantity)


@router.delete("/{item_id}")
def remove_cart_item(
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    return service.remove_item(user.id, item_id)


@router.delete("")
def clear_cart(user: CurrentUser = Depends(get_current_user), service: CartService = Depends(get_cart_service)):
    return service.clear(user.id)
