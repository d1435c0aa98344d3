"""
Product and variant image management.

Files are optimized and stored in the `product-images` bucket under
products/<product id>[/variants/<variant id>]/<type>/. Image rows keep a
per-product (or per-variant) `order` that new uploads continue from.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from storefront import storage
from storefront.products import PRODUCT_BUCKET
from storefront.supabase_client import SupabaseClient
from storefront.uploads import StoredUpload

logger = logging.getLogger("storefront.product_images")

MAX_FILES_PER_REQUEST = 10
IMAGE_FIELDS = ("url", "type", "order", "alt_text")


def _discard(uploads: List[StoredUpload]) -> None:
    for upload in uploads:
        upload.discard()


class ProductImageService:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    def _product(self, product_id: str) -> Dict[str, Any]:
        row = self.db.maybe_single("products", {"id": f"eq.{product_id}"}, columns="id")
        if row is None:
            raise HTTPException(status_code=404, detail=f"Product with ID {product_id} not found")
        return row

    def _variant(self, variant_id: str) -> Dict[str, Any]:
        row = self.db.maybe_single("product_variants", {"id": f"eq.{variant_id}"}, columns="id,product_id")
        if row is None:
            raise HTTPException(status_code=404, detail=f"Product variant with ID {variant_id} not found")
        return row

    def _max_order(self, product_id: str, variant_id: Optional[str]) -> int:
        params = {
            "product_id": f"eq.{product_id}",
            "variant_id": f"eq.{variant_id}" if variant_id else "is.null",
            "order": "order.desc",
            "limit": "1",
        }
        rows = self.db.select("product_images", params, columns="order")
        return (rows[0].get("order") or 0) if rows else 0

    def _insert(self, product_id: str, variant_id: Optional[str], url: str, image_type: str,
                order: int, alt_text: Optional[str]) -> Dict[str, Any]:
        return self.db.insert_one("product_images", {
            "product_id": product_id,
            "variant_id": variant_id,
            "url": url,
            "type": image_type,
            "order": order,
            "alt_text": alt_text,
        })

    def _store_many(
        self,
        product_id: str,
        variant_id: Optional[str],
        uploads: List[StoredUpload],
        image_type: str,
        order: Optional[int],
        alt_text: Optional[str],
    ) -> List[Dict[str, Any]]:
        if len(uploads) > MAX_FILES_PER_REQUEST:
            _discard(uploads)
            raise HTTPException(status_code=400, detail=f"At most {MAX_FILES_PER_REQUEST} files can be uploaded at once")
        folder = f"products/{product_id}"
        if variant_id:
            folder += f"/variants/{variant_id}"
        folder += f"/{image_type}"
        start = order if order is not None else self._max_order(product_id, variant_id) + 1
        storage.ensure_bucket(self.db, PRODUCT_BUCKET)
        created: List[Dict[str, Any]] = []
        try:
            for i, upload in enumerate(uploads):
                try:
                    url = storage.store_image(self.db, PRODUCT_BUCKET, folder, upload)
                    created.append(self._insert(product_id, variant_id, url, image_type, start + i, alt_text))
                except Exception as e:
                    logger.warning("product_images: file %s of %s failed product_id=%s error=%s",
                                   i + 1, len(uploads), product_id, e)
                    if len(uploads) == 1:
                        raise HTTPException(status_code=400, detail=f"Failed to process file upload: {e}")
        finally:
            _discard(uploads)
        if not created:
            raise HTTPException(status_code=400, detail="Failed to process any files")
        logger.info("product_images: created=%s product_id=%s variant_id=%s", len(created), product_id, variant_id)
        return created

    # ------------------------------------------------------------------
    # Product-level images
    # ------------------------------------------------------------------

    def create_product_images(
        self,
        product_id: str,
        uploads: List[StoredUpload],
        image_type: str = "gallery",
        order: Optional[int] = None,
        url: Optional[str] = None,
        alt_text: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        try:
            self._product(product_id)
        except HTTPException:
            _discard(uploads)
            raise
        if url and not uploads:
            return [self.create_product_image(product_id, url=url, image_type=image_type, order=order, alt_text=alt_text)]
        if not uploads:
            raise HTTPException(status_code=400, detail="Either a URL or at least one file must be provided")
        return self._store_many(product_id, None, uploads, image_type, order, alt_text)

    def create_product_image(
        self,
        product_id: str,
        upload: Optional[StoredUpload] = None,
        url: Optional[str] = None,
        image_type: str = "gallery",
        order: Optional[int] = None,
        alt_text: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            self._product(product_id)
        except HTTPException:
            _discard([upload] if upload else [])
            raise
        if upload is not None:
            return self._store_many(product_id, None, [upload], image_type, order, alt_text)[0]
        if not url:
            raise HTTPException(status_code=400, detail="Either url or imageFile must be provided")
        position = order if order is not None else self._max_order(product_id, None) + 1
        return self._insert(product_id, None, url, image_type, position, alt_text)

    # ------------------------------------------------------------------
    # Variant-level images
    # ------------------------------------------------------------------

    def create_variant_images(
        self,
        variant_id: str,
        uploads: List[StoredUpload],
        image_type: str = "gallery",
        order: Optional[int] = None,
        url: Optional[str] = None,
        alt_text: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        try:
            variant = self._variant(variant_id)
        except HTTPException:
            _discard(uploads)
            raise
        if url and not uploads:
            return [self.create_variant_image(variant_id, url=url, image_type=image_type, order=order, alt_text=alt_text)]
        if not uploads:
            raise HTTPException(status_code=400, detail="Either a URL or at least one file must be provided")
        return self._store_many(variant["product_id"], variant_id, uploads, image_type, order, alt_text)

    def create_variant_image(
        self,
        variant_id: str,
        upload: Optional[StoredUpload] = None,
        url: Optional[str] = None,
        image_type: str = "gallery",
        order: Optional[int] = None,
        alt_text: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            variant = self._variant(variant_id)
        except HTTPException:
            _discard([upload] if upload else [])
            raise
        if upload is not None:
            return self._store_many(variant["product_id"], variant_id, [upload], image_type, order, alt_text)[0]
        if not url:
            raise HTTPException(status_code=400, detail="Either url or imageFile must be provided")
        position = order if order is not None else self._max_order(variant["product_id"], variant_id) + 1
        return self._insert(variant["product_id"], variant_id, url, image_type, position, alt_text)

    # ------------------------------------------------------------------
    # Edit / delete
    # ------------------------------------------------------------------

    def _image(self, image_id: str) -> Dict[str, Any]:
        row = self.db.maybe_single("product_images", {"id": f"eq.{image_id}"})
        if row is None:
            raise HTTPException(status_code=404, detail=f"Image with ID {image_id} not found")
        return row

    def update_image(self, image_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._image(image_id)
        values = {k: v for k, v in data.items() if k in IMAGE_FIELDS}
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        return self.db.update("product_images", {"id": f"eq.{image_id}"}, values)[0]

    def remove_image(self, image_id: str) -> Dict[str, Any]:
        image = self._image(image_id)
        storage.delete_by_url(self.db, PRODUCT_BUCKET, image.get("url"))
        self.db.delete("product_images", {"id": f"eq.{image_id}"})
        return image
