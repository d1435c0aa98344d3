"""Product endpoints: catalogue reads, admin management, images and CSV import."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from storefront import uploads
from storefront.auth import CurrentUser, require_admin
from storefront.database import get_db
from storefront.images import MB, check_csv_file, check_image_file
from storefront.product_images import MAX_FILES_PER_REQUEST, ProductImageService
from storefront.product_import import ProductImporter
from storefront.products import ProductService
from storefront.schemas import ImageType
from storefront.supabase_client import SupabaseClient, get_supabase

router = APIRouter(prefix="/products", tags=["products"])

PRODUCT_IMAGE_MAX_BYTES = 20 * MB
CSV_MAX_BYTES = 10 * MB


# ============================================================================
# Request Schemas
# ============================================================================

class ProductCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[str] = None
    base_price: float = Field(..., ge=0)
    is_visible: bool = True
    default_sku: Optional[str] = None
    default_color: Optional[str] = None
    default_size: Optional[str] = None
    initial_stock: int = Field(0, ge=0)
    material: Optional[str] = None
    brand: Optional[str] = None
    featured: bool = False
    compare_price: Optional[float] = Field(None, gt=0)
    weight_kg: Optional[float] = Field(None, gt=0)
    dimensions: Optional[Dict[str, Any]] = None
    payment_options: Optional[List[Dict[str, Any]]] = None
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    tags: Optional[List[str]] = None
    delivery_info: Optional[Dict[str, Any]] = None
    warranty_info: Optional[str] = None
    care_instructions: Optional[str] = None


class ProductUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[str] = None
    base_price: Optional[float] = Field(None, ge=0)
    is_visible: Optional[bool] = None
    delivery_info: Optional[Dict[str, Any]] = None
    warranty_info: Optional[str] = None
    care_instructions: Optional[str] = None


class VariantCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sku: str = Field(..., min_length=1)
    price: Optional[float] = Field(None, gt=0)
    compare_price: Optional[float] = Field(None, gt=0)
    size: Optional[str] = None
    color: Optional[str] = None
    stock: int = Field(0, ge=0)
    weight_kg: Optional[float] = Field(None, gt=0)
    dimensions: Optional[Dict[str, Any]] = None
    material: Optional[str] = None
    brand: Optional[str] = None
    featured: Optional[bool] = None
    tags: Optional[List[str]] = None
    payment_options: Optional[List[Dict[str, Any]]] = None
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)


class VariantUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sku: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, gt=0)
    compare_price: Optional[float] = Field(None, gt=0)
    size: Optional[str] = None
    color: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    weight_kg: Optional[float] = Field(None, gt=0)
    dimensions: Optional[Dict[str, Any]] = None
    material: Optional[str] = None
    brand: Optional[str] = None
    featured: Optional[bool] = None
    tags: Optional[List[str]] = None
    payment_options: Optional[List[Dict[str, Any]]] = None
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)


class StockUpdate(BaseModel):
    stock: int = Field(..., ge=0)


class ImageUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: Optional[str] = None
    type: Optional[ImageType] = None
    order: Optional[int] = Field(None, ge=0)
    alt_text: Optional[str] = Field(None, max_length=255)


# ============================================================================
# Dependencies
# ============================================================================

def get_product_service(
    supabase: SupabaseClient = Depends(get_supabase),
    db=Depends(get_db),
) -> ProductService:
    return ProductService(supabase, db)


def get_image_service(supabase: SupabaseClient = Depends(get_supabase)) -> ProductImageService:
    return ProductImageService(supabase)


def _save_images(files: Optional[List[UploadFile]]) -> List[uploads.StoredUpload]:
    files = [f for f in (files or []) if f is not None and f.filename]
    if len(files) > MAX_FILES_PER_REQUEST:
        raise HTTPException(status_code=400, detail=f"At most {MAX_FILES_PER_REQUEST} files can be uploaded at once")
    for f in files:
        check_image_file(f)
    stored: List[uploads.StoredUpload] = []
    try:
        for f in files:
            stored.append(uploads.save_upload(f, PRODUCT_IMAGE_MAX_BYTES))
    except Exception:
        for upload in stored:
            upload.discard()
        raise
    return stored


# ============================================================================
# Admin: import and uploads housekeeping
# ============================================================================

@router.post("/admin/import")
def import_products(
    file: UploadFile = File(...),
    createCategories: bool = Form(True),
    skipErrors: bool = Form(True),
    user: CurrentUser = Depends(require_admin),
    supabase: SupabaseClient = Depends(get_supabase),
):
    check_csv_file(file)
    stored = uploads.save_upload(file, CSV_MAX_BYTES)
    try:
        content = stored.read()
    finally:
        stored.discard()
    return ProductImporter(supabase).import_csv(content, createCategories, skipErrors)


@router.post("/admin/cleanup-uploads")
def cleanup_uploads(
    maxAgeMinutes: int = Query(60, ge=0),
    user: CurrentUser = Depends(require_admin),
):
    result = uploads.cleanup_old_files(maxAgeMinutes)
    return {"message": f"Cleaned up {result['deletedCount']} file(s)", **result}


@router.get("/admin/uploads-info")
def get_uploads_info(user: CurrentUser = Depends(require_admin)):
    return uploads.uploads_info()


@router.get("/admin/products/low-stock")
def low_stock(
    threshold: int = Query(5, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(require_admin),
    service: ProductService = Depends(get_product_service),
):
    return service.get_low_stock(threshold, limit)


# ============================================================================
# Public reads (fixed paths before /{product_id})
# ============================================================================

@router.get("/search-init-data")
def search_init_data(service: ProductService = Depends(get_product_service)):
    return service.search_init_data()


@router.get("/featured")
def featured_products(
    limit: int = Query(6, ge=1, le=50),
    includeCategory: bool = Query(False),
    service: ProductService = Depends(get_product_service),
):
    return service.find_featured(limit, includeCategory)


@router.get("/top-sellers")
def top_sellers(
    limit: int = Query(8, ge=1, le=50),
    period: str = Query("all", pattern="^(week|month|year|all)$"),
    service: ProductService = Depends(get_product_service),
):
    return service.find_top_sellers(limit, period)


@router.get("/new-arrivals")
def new_arrivals(
    limit: int = Query(8, ge=1, le=50),
    period: str = Query("all", pattern="^(week|month|year|all)$"),
    service: ProductService = Depends(get_product_service),
):
    return service.find_new_arrivals(limit, period)


@router.get("/related/{product_id}")
def related_products(
    product_id: str,
    limit: int = Query(4, ge=1, le=20),
    service: ProductService = Depends(get_product_service),
):
    return service.find_related(product_id, limit)


@router.get("/variants/by-color")
def variants_by_color(
    color: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: ProductService = Depends(get_product_service),
):
    return service.find_variants_by_attribute("color", color, page, limit)


@router.get("/variants/by-size")
def variants_by_size(
    size: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: ProductService = Depends(get_product_service),
):
    return service.find_variants_by_attribute("size", size, page, limit)


@router.get("/variants/{variant_id}")
def get_variant(variant_id: str, service: ProductService = Depends(get_product_service)):
    return service.get_variant(variant_id)


@router.get("/variants/{variant_id}/images")
def get_variant_images(variant_id: str, service: ProductService = Depends(get_product_service)):
    return service.get_variant_images(variant_id)


@router.get("/categories/{category_id}/products/by-color")
def category_products_by_color(
    category_id: str,
    color: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: ProductService = Depends(get_product_service),
):
    return service.find_products_by_category_and_attribute(category_id, "color", color, page, limit)


@router.get("/categories/{category_id}/products/by-size")
def category_products_by_size(
    category_id: str,
    size: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: ProductService = Depends(get_product_service),
):
    return service.find_products_by_category_and_attribute(category_id, "size", size, page, limit)


@router.get("")
def list_products(
    categoryId: Optional[str] = None,
    size: Optional[str] = None,
    material: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    sortBy: str = Query("created_at", pattern="^(price_low_high|price_high_low|rating|created_at)$"),
    priceRange: str = Query("all", pattern=r"^(all|under-\d+|over-\d+|\d+-\d+)$"),
    includeVariants: bool = True,
    includeImages: bool = False,
    includeCategory: bool = False,
    service: ProductService = Depends(get_product_service),
):
    return service.find_all(
        category_id=categoryId, size=size, material=material, search=search,
        page=page, limit=limit, sort_by=sortBy, price_range=priceRange,
        include_variants=includeVariants, include_images=includeImages,
        include_category=includeCategory,
    )


@router.get("/{product_id}")
def get_product(
    product_id: str,
    includeVariants: bool = True,
    includeImages: bool = False,
    includeCategory: bool = False,
    service: ProductService = Depends(get_product_service),
):
    return service.find_one(product_id, includeVariants, includeImages, includeCategory)


@router.get("/{product_id}/variants")
def get_product_variants(product_id: str, service: ProductService = Depends(get_product_service)):
    return service.find_variants(product_id)


@router.get("/{product_id}/images")
def get_product_images(product_id: str, service: ProductService = Depends(get_product_service)):
    return service.find_images(product_id)


@router.get("/{product_id}/images/360")
def get_product_360_images(product_id: str, service: ProductService = Depends(get_product_service)):
    return service.get_360_images(product_id)


# ============================================================================
# Admin: products and variants
# ============================================================================

@router.post("/admin/products", status_code=201)
def create_product(
    body: ProductCreate,
    user: CurrentUser = Depends(require_admin),
    service: ProductService = Depends(get_product_service),
):
    return service.create(body.model_dump())


@router.put("/admin/products/{product_id}")
def update_product(
    product_id: str,
    body: ProductUpdate,
    user: CurrentUser = Depends(require_admin),
    service: ProductService = Depends(get_product_service),
):
    return service.update(product_id, body.model_dump(exclude_unset=True))


@router.delete("/admin/products/{product_id}")
def delete_product(
    product_id: str,
    user: CurrentUser = Depends(require_admin),
    service: ProductService = Depends(get_product_service),
):
    return service.remove(product_id)


@router.post("/admin/products/{product_id}/variants", status_code=201)
def create_variant(
    product_id: str,
    body: VariantCreate,
    user: CurrentUser = Depends(require_admin),
    service: ProductService = Depends(get_product_service),
):
    return service.create_variant(product_id, body.model_dump(exclude_none=True))


@router.put("/admin/variants/{variant_id}")
def update_variant(
    variant_id: str,
    body: VariantUpdate,
    user: CurrentUser = Depends(require_admin),
    service: ProductService = Depends(get_product_service),
):
    return service.update_variant(variant_id, body.model_dump(exclude_unset=True))


@router.delete("/admin/variants/{variant_id}")
def delete_variant(
    variant_id: str,
    user: CurrentUser = Depends(require_admin),
    service: ProductService = Depends(get_product_service),
):
    return service.remove_variant(variant_id)


@router.put("/admin/variants/{variant_id}/stock")
def update_variant_stock(
    variant_id: str,
    body: StockUpdate,
    user: CurrentUser = Depends(require_admin),
    service: ProductService = Depends(get_product_service),
):
    return service.update_stock(variant_id, body.stock)


# ============================================================================
# Admin: images
# ============================================================================

@router.post("/admin/products/{product_id}/images", status_code=201)
def upload_product_images(
    product_id: str,
    imageFiles: Optional[List[UploadFile]] = File(None),
    type: ImageType = Form(ImageType.GALLERY),
    order: Optional[int] = Form(None),
    url: Optional[str] = Form(None),
    alt_text: Optional[str] = Form(None),
    user: CurrentUser = Depends(require_admin),
    service: ProductImageService = Depends(get_image_service),
):
    stored = _save_images(imageFiles)
    return service.create_product_images(product_id, stored, type.value, order, url, alt_text)


@router.post("/admin/products/{product_id}/image", status_code=201)
def upload_product_image(
    product_id: str,
    imageFile: Optional[UploadFile] = File(None),
    type: ImageType = Form(ImageType.GALLERY),
    order: Optional[int] = Form(None),
    url: Optional[str] = Form(None),
    alt_text: Optional[str] = Form(None),
    user: CurrentUser = Depends(require_admin),
    service: ProductImageService = Depends(get_image_service),
):
    stored = _save_images([imageFile] if imageFile else [])
    return service.create_product_image(
        product_id, stored[0] if stored else None, url, type.value, order, alt_text
    )


@router.post("/admin/variants/{variant_id}/images", status_code=201)
def upload_variant_images(
    variant_id: str,
    imageFiles: Optional[List[UploadFile]] = File(None),
    type: ImageType = Form(ImageType.GALLERY),
    order: Optional[int] = Form(None),
    url: Optional[str] = Form(None),
    alt_text: Optional[str] = Form(None),
    user: CurrentUser = Depends(require_admin),
    service: ProductImageService = Depends(get_image_service),
):
    stored = _save_images(imageFiles)
    return service.create_variant_images(variant_id, stored, type.value, order, url, alt_text)


@router.post("/admin/variants/{variant_id}/image", status_code=201)
def upload_variant_image(
    variant_id: str,
    imageFile: Optional[UploadFile] = File(None),
    type: ImageType = Form(ImageType.GALLERY),
    order: Optional[int] = Form(None),
    url: Optional[str] = Form(None),
    alt_text: Optional[str] = Form(None),
    user: CurrentUser = Depends(require_admin),
    service: ProductImageService = Depends(get_image_service),
):
    stored = _save_images([imageFile] if imageFile else [])
    return service.create_variant_image(
        variant_id, stored[0] if stored else None, url, type.value, order, alt_text
    )


@router.put("/admin/images/{image_id}")
def update_image(
    image_id: str,
    body: ImageUpdate,
    user: CurrentUser = Depends(require_admin),
    service: ProductImageService = Depends(get_image_service),
):
    data = body.model_dump(exclude_unset=True)
    if data.get("type") is not None:
        data["type"] = body.type.value
    return service.update_image(image_id, data)


@router.delete("/admin/images/{image_id}")
def delete_image(
    image_id: str,
    user: CurrentUser = Depends(require_admin),
    service: ProductImageService = Depends(get_image_service),
):
    return service.remove_image(image_id)
