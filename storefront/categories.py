"""
Category service.

Categories form a tree through `parent_id`. The service keeps the tree
acyclic, generates slugs, keeps sibling ordering and manages category images
in the `category-images` storage bucket.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from storefront import storage
from storefront.schemas import page_meta, page_range
from storefront.supabase_client import SupabaseClient, in_list
from storefront.uploads import StoredUpload

logger = logging.getLogger("storefront.categories")

CATEGORY_BUCKET = "category-images"
CATEGORY_IMAGE_FOLDER = "categories"
CATEGORY_IMAGE_SIZE = (1200, 800)
MAX_HIERARCHY_DEPTH = 4

_EDITABLE_FIELDS = ("name", "slug", "description", "parent_id", "image_url", "order", "featured")


def slugify(name: str) -> str:
    """'Men's Shoes & Boots' -> 'men-s-shoes-boots'."""
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug[:100].rstrip("-")


def build_tree(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Nest flat category rows under their parents (input order is kept)."""
    nodes = {row["id"]: {**row, "subcategories": []} for row in rows}
    roots = []
    for row in rows:
        node = nodes[row["id"]]
        parent = nodes.get(row.get("parent_id"))
        if parent is not None:
            parent["subcategories"].append(node)
        else:
            roots.append(node)
    return roots


class CategoryService:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_all(self, nested: bool = False) -> List[Dict[str, Any]]:
        rows = self.db.select("categories", {"order": "order.asc,name.asc"})
        return build_tree(rows) if nested else rows

    def find_one(self, category_id: str) -> Dict[str, Any]:
        row = self.db.maybe_single("categories", {"id": f"eq.{category_id}"})
        if row is None:
            raise HTTPException(status_code=404, detail=f"Category with ID {category_id} not found")
        return row

    def find_subcategories(self, category_id: str) -> List[Dict[str, Any]]:
        self.find_one(category_id)
        return self.db.select("categories", {"parent_id": f"eq.{category_id}", "order": "order.asc"})

    def find_featured(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"featured": "eq.true", "order": "order.asc"}
        if limit:
            params["limit"] = str(limit)
        return self.db.select("categories", params)

    def find_popular(self, limit: int = 4, include_images: bool = True) -> List[Dict[str, Any]]:
        """Top-level categories, each with one representative product image."""
        rows = self.db.select(
            "categories", {"parent_id": "is.null", "order": "order.asc", "limit": str(limit)}
        )
        if not include_images:
            return rows
        for row in rows:
            row["product_image"] = self._representative_image(row["id"])
        return rows

    def _representative_image(self, category_id: str) -> Optional[str]:
        products = self.db.select(
            "products",
            {"category_id": f"eq.{category_id}", "is_visible": "eq.true", "limit": "20"},
            columns="id",
        )
        if not products:
            return None
        images = self.db.select(
            "product_images",
            {
                "product_id": in_list(p["id"] for p in products),
                "type": "eq.main",
                "order": "order.asc",
                "limit": "1",
            },
        )
        return images[0]["url"] if images else None

    def find_products(self, category_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        self.find_one(category_id)
        params = {"category_id": f"eq.{category_id}", "order": "created_at.desc", **page_range(page, limit)}
        items, total = self.db.select_page("products", params)
        return {"items": items, "meta": page_meta(page, limit, total)}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _next_order(self, parent_id: Optional[str]) -> int:
        params = {"order": "order.desc", "limit": "1"}
        params["parent_id"] = f"eq.{parent_id}" if parent_id else "is.null"
        rows = self.db.select("categories", params, columns="order")
        if not rows or rows[0].get("order") is None:
            return 0
        return rows[0]["order"] + 1

    def _ensure_slug_free(self, slug: str, exclude_id: Optional[str] = None) -> None:
        params = {"slug": f"eq.{slug}"}
        if exclude_id:
            params["id"] = f"neq.{exclude_id}"
        if self.db.select("categories", params, columns="id"):
            raise HTTPException(status_code=409, detail=f"Category with slug '{slug}' already exists")

    def _check_parent(self, category_id: str, parent_id: str) -> None:
        if parent_id == category_id:
            raise HTTPException(status_code=400, detail="A category cannot be its own parent")
        seen = set()
        current: Optional[str] = parent_id
        while current:
            if current == category_id:
                raise HTTPException(
                    status_code=400, detail="Setting this parent would create a cyclic hierarchy"
                )
            if current in seen:
                break
            seen.add(current)
            row = self.db.maybe_single("categories", {"id": f"eq.{current}"}, columns="id,parent_id")
            if row is None:
                if current == parent_id:
                    raise HTTPException(status_code=404, detail=f"Parent category with ID {parent_id} not found")
                break
            current = row.get("parent_id")

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        parent_id = data.get("parent_id")
        if parent_id and self.db.maybe_single("categories", {"id": f"eq.{parent_id}"}, columns="id") is None:
            raise HTTPException(status_code=404, detail=f"Parent category with ID {parent_id} not found")
        slug = data.get("slug") or slugify(data["name"])
        self._ensure_slug_free(slug)
        row = {
            "name": data["name"],
            "slug": slug,
            "description": data.get("description"),
            "parent_id": parent_id,
            "image_url": data.get("image_url"),
            "featured": bool(data.get("featured", False)),
            "order": data["order"] if data.get("order") is not None else self._next_order(parent_id),
        }
        created = self.db.insert_one("categories", row)
        logger.info("categories: method=create id=%s slug=%s", created.get("id"), slug)
        return created

    def update(self, category_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.find_one(category_id)
        values = {k: v for k, v in data.items() if k in _EDITABLE_FIELDS}
        if values.get("parent_id"):
            self._check_parent(category_id, values["parent_id"])
        if values.get("slug"):
            self._ensure_slug_free(values["slug"], exclude_id=category_id)
        if not values:
            return self.find_one(category_id)
        rows = self.db.update("categories", {"id": f"eq.{category_id}"}, values)
        return rows[0]

    def update_order(self, category_id: str, order: int) -> Dict[str, Any]:
        return self.update(category_id, {"order": order})

    def remove(self, category_id: str) -> Dict[str, Any]:
        category = self.find_one(category_id)
        if self.db.select("categories", {"parent_id": f"eq.{category_id}", "limit": "1"}, columns="id"):
            raise HTTPException(
                status_code=400,
                detail="Cannot delete a category with subcategories. Move or delete the subcategories first.",
            )
        if self.db.select("products", {"category_id": f"eq.{category_id}", "limit": "1"}, columns="id"):
            raise HTTPException(
                status_code=400,
                detail="Cannot delete a category with products. Move or delete the products first.",
            )
        self.db.delete("categories", {"id": f"eq.{category_id}"})
        storage.delete_by_url(self.db, CATEGORY_BUCKET, category.get("image_url"))
        logger.info("categories: method=remove id=%s", category_id)
        return category

    def create_hierarchy(self, node: Dict[str, Any], parent_id: Optional[str] = None, depth: int = 1) -> Dict[str, Any]:
        """Create a category and its nested `subcategories` (at most four levels)."""
        if depth > MAX_HIERARCHY_DEPTH:
            raise HTTPException(
                status_code=400, detail=f"Category hierarchy cannot be deeper than {MAX_HIERARCHY_DEPTH} levels"
            )
        children = node.get("subcategories") or []
        created = self.create({**{k: v for k, v in node.items() if k != "subcategories"}, "parent_id": parent_id})
        created["subcategories"] = [
            self.create_hierarchy(child, created["id"], depth + 1) for child in children
        ]
        return created

    def toggle_featured(self, category_id: str, featured: bool) -> Dict[str, Any]:
        self.find_one(category_id)
        return self.db.update("categories", {"id": f"eq.{category_id}"}, {"featured": featured})[0]

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def upload_image(
        self, category_id: str, upload: Optional[StoredUpload] = None, url: Optional[str] = None
    ) -> Dict[str, Any]:
        if upload is None and not url:
            raise HTTPException(status_code=400, detail="Either url or imageFile must be provided")
        try:
            category = self.find_one(category_id)
            if upload is not None:
                storage.ensure_bucket(self.db, CATEGORY_BUCKET)
                url = storage.store_image(
                    self.db, CATEGORY_BUCKET, CATEGORY_IMAGE_FOLDER, upload,
                    max_width=CATEGORY_IMAGE_SIZE[0], max_height=CATEGORY_IMAGE_SIZE[1],
                )
        finally:
            if upload is not None:
                upload.discard()
        old_url = category.get("image_url")
        updated = self.db.update("categories", {"id": f"eq.{category_id}"}, {"image_url": url})[0]
        if old_url and old_url != url:
            storage.delete_by_url(self.db, CATEGORY_BUCKET, old_url)
        logger.info("categories: method=upload_image id=%s", category_id)
        return updated

    def remove_image(self, category_id: str) -> Dict[str, Any]:
        category = self.find_one(category_id)
        if category.get("image_url"):
            storage.delete_by_url(self.db, CATEGORY_BUCKET, category["image_url"])
        return self.db.update("categories", {"id": f"eq.{category_id}"}, {"image_url": None})[0]

    def cleanup_orphaned_images(self) -> Dict[str, Any]:
        """Delete stored category images no category references any more."""
        try:
            files = self.db.list_files(CATEGORY_BUCKET, prefix=CATEGORY_IMAGE_FOLDER, limit=1000)
        except Exception as e:
            logger.warning("categories: orphan scan failed error=%s", e)
            return {"scanned": 0, "orphaned": 0, "deleted": 0, "error": str(e)}
        referenced = set()
        for row in self.db.select("categories", {"image_url": "not.is.null"}, columns="image_url"):
            path = self.db.path_from_public_url(row["image_url"], CATEGORY_BUCKET)
            if path:
                referenced.add(path)
        paths = [
            f"{CATEGORY_IMAGE_FOLDER}/{f['name']}"
            for f in files
            if f.get("name") and not f["name"].endswith("/") and f.get("id") is not None
        ]
        orphaned = [p for p in paths if p not in referenced]
        deleted = storage.remove_paths(self.db, CATEGORY_BUCKET, orphaned)
        logger.info("categories: orphan cleanup scanned=%s orphaned=%s deleted=%s", len(paths), len(orphaned), deleted)
        return {"scanned": len(paths), "orphaned": len(orphaned), "deleted": deleted}
