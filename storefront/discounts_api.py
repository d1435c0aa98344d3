"""Discount endpoints. Reads are public; writes need the admin role."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field

from storefront.auth import CurrentUser, require_admin
from storefront.discounts import DiscountService, discount_amount
from storefront.schemas import DiscountType
from storefront.supabase_client import SupabaseClient, get_supabase

router = APIRouter(prefix="/discounts", tags=["discounts"])


class DiscountCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=100)
    code: Optional[str] = Field(None, min_length=3, max_length=20)
    type: DiscountType
    value: float = Field(..., gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = True
    min_order_amount: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, gt=0)


class DiscountUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    code: Optional[str] = Field(None, min_length=3, max_length=20)
    type: Optional[DiscountType] = None
    value: Optional[float] = Field(None, gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    min_order_amount: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, gt=0)


class CategoryIds(BaseModel):
    categoryIds: List[str] = Field(..., min_length=1)


class ProductIds(BaseModel):
    productIds: List[str] = Field(..., min_length=1)


class VariantIds(BaseModel):
    variantIds: List[str] = Field(..., min_length=1)


def get_discount_service(supabase: SupabaseClient = Depends(get_supabase)) -> DiscountService:
    return DiscountService(supabase)


@router.post("", status_code=201)
def create_discount(
    body: DiscountCreate,
    user: CurrentUser = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    return service.create(body.model_dump(mode="json", exclude_unset=True))


@router.get("")
def list_discounts(
    search: Optional[str] = None,
    type: Optional[DiscountType] = None,
    active: Optional[bool] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: DiscountService = Depends(get_discount_service),
):
    return service.find_all(search, type.value if type else None, active, limit, offset)


@router.get("/code/{code}")
def get_discount_by_code(
    code: str,
    subtotal: Optional[float] = Query(None, ge=0, description="Include the amount off this subtotal"),
    service: DiscountService = Depends(get_discount_service),
):
    discount = service.find_by_code(code)
    if discount is not None and subtotal is not None:
        discount["discount_amount"] = discount_amount(discount, subtotal)
    return discount


@router.get("/{discount_id}")
def get_discount(discount_id: str, service: DiscountService = Depends(get_discount_service)):
    return service.find_one(discount_id)


@router.get("/{discount_id}/validate")
def validate_discount(discount_id: str, service: DiscountService = Depends(get_discount_service)):
    return service.validate(discount_id)


@router.patch("/{discount_id}")
def update_discount(
    discount_id: str,
    body: DiscountUpdate,
    user: CurrentUser = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    return service.update(discount_id, body.model_dump(mode="json", exclude_unset=True))


@router.delete("/{discount_id}", status_code=204)
def delete_discount(
    discount_id: str,
    user: CurrentUser = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    service.remove(discount_id)
    return Response(status_code=204)


@router.post("/{discount_id}/apply-to-categories", status_code=204)
def apply_to_categories(
    discount_id: str,
    body: CategoryIds,
    user: CurrentUser = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    service.apply_to("categories", discount_id, body.categoryIds)
    return Response(status_code=204)


@router.post("/{discount_id}/apply-to-products", status_code=204)
def apply_to_products(
    discount_id: str,
    body: ProductIds,
    user: CurrentUser = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    service.apply_to("products", discount_id, body.productIds)
    return Response(status_code=204)


@router.post("/{discount_id}/apply-to-variants", status_code=204)
def apply_to_variants(
    discount_id: str,
    body: VariantIds,
    user: CurrentUser = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    service.apply_to("variants", discount_id, body.variantIds)
    return Response(status_code=204)


@router.post("/{discount_id}/increment-usage", status_code=204)
def increment_discount_usage(
    discount_id: str,
    user: CurrentUser = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    service.increment_usage(discount_id)
    return Response(status_code=204)
