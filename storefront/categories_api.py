"""Category endpoints: public tree reads and admin management."""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from storefront.auth import CurrentUser, require_admin
from storefront.categories import CategoryService
from storefront.images import MB, check_image_file
from storefront.supabase_client import SupabaseClient, get_supabase
from storefront.uploads import save_upload

router = APIRouter(prefix="/categories", tags=["categories"])

CATEGORY_IMAGE_MAX_BYTES = 10 * MB


class CategoryCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    parent_id: Optional[str] = None
    image_url: Optional[str] = None
    order: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    parent_id: Optional[str] = None
    image_url: Optional[str] = None
    order: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None


class CategoryNode(BaseModel):
    """One node of a nested hierarchy create request."""
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    subcategories: List["CategoryNode"] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    order: int = Field(..., ge=0)


class FeaturedUpdate(BaseModel):
    featured: bool


def get_category_service(supabase: SupabaseClient = Depends(get_supabase)) -> CategoryService:
    return CategoryService(supabase)


# ============================================================================
# Public
# ============================================================================

@router.get("")
def list_categories(
    nested: bool = Query(False),
    service: CategoryService = Depends(get_category_service),
):
    return service.find_all(nested=nested)


@router.get("/popular")
def popular_categories(
    limit: int = Query(4, ge=1, le=50),
    includeImages: bool = Query(True),
    service: CategoryService = Depends(get_category_service),
):
    return service.find_popular(limit=limit, include_images=includeImages)


@router.get("/featured")
def featured_categories(
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: CategoryService = Depends(get_category_service),
):
    return service.find_featured(limit)


@router.get("/{category_id}")
def get_category(category_id: str, service: CategoryService = Depends(get_category_service)):
    return service.find_one(category_id)


@router.get("/{category_id}/subcategories")
def get_subcategories(category_id: str, service: CategoryService = Depends(get_category_service)):
    return service.find_subcategories(category_id)


@router.get("/{category_id}/products")
def get_category_products(
    category_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: CategoryService = Depends(get_category_service),
):
    return service.find_products(category_id, page, limit)


# ============================================================================
# Admin
# ============================================================================

@router.post("/admin", status_code=201)
def create_category(
    body: CategoryCreate,
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    return service.create(body.model_dump(exclude_none=True))


@router.post("/admin/hierarchy", status_code=201)
def create_category_hierarchy(
    body: CategoryNode,
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    return service.create_hierarchy(body.model_dump(exclude_none=True))


@router.post("/admin/cleanup-images")
def cleanup_category_images(
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    return service.cleanup_orphaned_images()


@router.put("/admin/{category_id}")
def update_category(
    category_id: str,
    body: CategoryUpdate,
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    return service.update(category_id, body.model_dump(exclude_unset=True))


@router.put("/admin/{category_id}/order")
def update_category_order(
    category_id: str,
    body: OrderUpdate,
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    return service.update_order(category_id, body.order)


@router.put("/admin/{category_id}/featured")
def toggle_category_featured(
    category_id: str,
    body: FeaturedUpdate,
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    return service.toggle_featured(category_id, body.featured)


@router.delete("/admin/{category_id}")
def delete_category(
    category_id: str,
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    return service.remove(category_id)


@router.post("/admin/{category_id}/image")
def upload_category_image(
    category_id: str,
    imageFile: Optional[UploadFile] = File(None),
    url: Optional[str] = Form(None),
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    upload = None
    if imageFile is not None:
        check_image_file(imageFile)
        upload = save_upload(imageFile, CATEGORY_IMAGE_MAX_BYTES)
    return service.upload_image(category_id, upload=upload, url=url)


@router.delete("/admin/{category_id}/image")
def delete_category_image(
    category_id: str,
    user: CurrentUser = Depends(require_admin),
    service: CategoryService = Depends(get_category_service),
):
    return service.remove_image(category_id)
