"""Product tag endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from storefront.auth import CurrentUser, require_admin
from storefront.product_tags import ProductTagService
from storefront.schemas import SortOrder
from storefront.supabase_client import SupabaseClient, get_supabase

router = APIRouter(prefix="/product-tags", tags=["product-tags"])

TAG_NAME_PATTERN = r"^[a-zA-Z0-9\-_\s]+$"


class TagBody(BaseModel):
    name: str = Field(
        ..., min_length=2, max_length=50, pattern=TAG_NAME_PATTERN,
        description="Tag name can only contain letters, numbers, spaces, hyphens, and underscores",
    )


class BulkTagsBody(BaseModel):
    tagNames: List[str] = Field(..., min_length=1)


def get_tag_service(supabase: SupabaseClient = Depends(get_supabase)) -> ProductTagService:
    return ProductTagService(supabase)


@router.post("", status_code=201)
def create_tag(
    body: TagBody,
    user: CurrentUser = Depends(require_admin),
    service: ProductTagService = Depends(get_tag_service),
):
    return service.create(body.name)


@router.get("")
def list_tags(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sortBy: str = Query("name", pattern="^(name|created_at)$"),
    sortOrder: SortOrder = SortOrder.ASC,
    service: ProductTagService = Depends(get_tag_service),
):
    return service.find_all(search, page, limit, sortBy, sortOrder.value)


@router.get("/suggestions")
def tag_suggestions(
    limit: int = Query(20, ge=1, le=100),
    service: ProductTagService = Depends(get_tag_service),
):
    return service.suggestions(limit)


@router.get("/search")
def search_tags(
    q: str = "",
    limit: int = Query(10, ge=1, le=50),
    service: ProductTagService = Depends(get_tag_service),
):
    return service.search(q, limit)


@router.post("/bulk", status_code=201)
def bulk_create_tags(
    body: BulkTagsBody,
    user: CurrentUser = Depends(require_admin),
    service: ProductTagService = Depends(get_tag_service),
):
    return service.bulk_create(body.tagNames)


@router.get("/{tag_id}")
def get_tag(tag_id: str, service: ProductTagService = Depends(get_tag_service)):
    return service.find_one(tag_id)


@router.patch("/{tag_id}")
def update_tag(
    tag_id: str,
    body: TagBody,
    user: CurrentUser = Depends(require_admin),
    service: ProductTagService = Depends(get_tag_service),
):
    return service.update(tag_id, body.name)


@router.delete("/{tag_id}")
def delete_tag(
    tag_id: str,
    user: CurrentUser = Depends(require_admin),
    service: ProductTagService = Depends(get_tag_service),
):
    return service.remove(tag_id)
