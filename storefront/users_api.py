"""User profile and address endpoints, plus admin user management under /admin/users."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from storefront.auth import CurrentUser, get_current_user, require_admin
from storefront.schemas import SortOrder, UserRole
from storefront.supabase_client import SupabaseClient, get_supabase
from storefront.users import UserService

router = APIRouter(prefix="/users", tags=["users"])
admin_router = APIRouter(prefix="/admin/users", tags=["admin-users"])

ADDRESS_TYPE_PATTERN = "^(shipping|billing)$"


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class AddressCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    recipient_name: str = Field(..., min_length=2, max_length=100)
    line1: str = Field(..., min_length=3, max_length=100)
    line2: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=2, max_length=50)
    state: str = Field(..., min_length=1, max_length=50)
    postal_code: str = Field(..., min_length=3, max_length=20)
    country: str = Field(..., min_length=2, max_length=50)
    phone: str = Field(..., min_length=5, max_length=20)
    type: str = Field(..., pattern=ADDRESS_TYPE_PATTERN)
    is_default: bool = False


class AddressUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    recipient_name: Optional[str] = Field(None, min_length=2, max_length=100)
    line1: Optional[str] = Field(None, min_length=3, max_length=100)
    line2: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, min_length=2, max_length=50)
    state: Optional[str] = Field(None, min_length=1, max_length=50)
    postal_code: Optional[str] = Field(None, min_length=3, max_length=20)
    country: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    type: Optional[str] = Field(None, pattern=ADDRESS_TYPE_PATTERN)
    is_default: Optional[bool] = None


class RoleUpdate(BaseModel):
    role: UserRole


def get_user_service(supabase: SupabaseClient = Depends(get_supabase)) -> UserService:
    return UserService(supabase)


@router.get("/me")
def get_me(user: CurrentUser = Depends(get_current_user), service: UserService = Depends(get_user_service)):
    return service.get_profile(user.id)


@router.put("/me")
def update_me(
    body: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return service.update_profile(user.id, body.model_dump(exclude_unset=True))


@router.get("/addresses")
def list_addresses(user: CurrentUser = Depends(get_current_user), service: UserService = Depends(get_user_service)):
    return service.list_addresses(user.id)


@router.post("/addresses", status_code=201)
def create_address(
    body: AddressCreate,
    user: CurrentUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return service.create_address(user.id, body.model_dump())


@router.put("/addresses/{address_id}")
def update_address(
    address_id: int,
    body: AddressUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return service.update_address(user.id, address_id, body.model_dump(exclude_unset=True))


@router.delete("/addresses/{address_id}")
def delete_address(
    address_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return service.delete_address(user.id, address_id)


@admin_router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    sortBy: str = Query("created_at", pattern="^(created_at|name|email|role)$"),
    sortOrder: SortOrder = SortOrder.DESC,
    user: CurrentUser = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    return service.list_users(page, limit, search, role.value if role else None, sortBy, sortOrder.value)


@admin_router.put("/{user_id}/role")
def update_user_role(
    user_id: str,
    body: RoleUpdate,
    user: CurrentUser = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    return service.update_role(user_id, body.role.value)
