"""Wishlist endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from storefront.auth import CurrentUser, get_current_user
from storefront.supabase_client import SupabaseClient, get_supabase
from storefront.wishlist import WishlistService

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


class AddToWishlist(BaseModel):
    variant_id: str = Field(..., min_length=1)


def get_wishlist_service(supabase: SupabaseClient = Depends(get_supabase)) -> WishlistService:
    return WishlistService(supabase)


@router.get("")
def list_wishlist(
    user: CurrentUser = Depends(get_current_user),
    service: WishlistService = Depends(get_wishlist_service),
):
    return service.list(user.id)


@router.post("")
def add_to_wishlist(
    body: AddToWishlist,
    user: CurrentUser = Depends(get_current_user),
    service: WishlistService = Depends(get_wishlist_service),
):
    return service.add(user.id, body.variant_id)


@router.delete("")
def clear_wishlist(
    user: CurrentUser = Depends(get_current_user),
    service: WishlistService = Depends(get_wishlist_service),
):
    return service.clear(user.id)


@router.delete("/{item_id}")
def remove_from_wishlist(
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: WishlistService = Depends(get_wishlist_service),
):
    return service.remove(user.id, item_id)
