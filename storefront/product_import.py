"""
Bulk product import from CSV.

Expected header (extra columns are ignored):
  name, description, category_name, base_price, sku, variant_price, color,
  size, stock, product_images, variant_images

Each row becomes one variant. Rows sharing a product name within one file are
grouped under a single product. `category_name` may be a path such as
"Furniture/Living Room/Sofas"; image columns hold '|'-separated URLs.
"""
from __future__ import annotations

import csv
import io
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from storefront.categories import slugify
from storefront.supabase_client import PostgrestError, SupabaseClient

logger = logging.getLogger("storefront.product_import")


class RowError(Exception):
    """A CSV row that cannot be imported."""


def parse_csv(content: bytes) -> List[Dict[str, str]]:
    if not content:
        raise HTTPException(status_code=400, detail="Empty file received")
    try:
        text = content.decode("utf-8-sig")
        reader = csv.DictReader(io.StringIO(text))
        rows = []
        for row in reader:
            cleaned = {(k or "").strip(): (v or "").strip() for k, v in row.items() if k is not None}
            if any(cleaned.values()):
                rows.append(cleaned)
        return rows
    except (UnicodeDecodeError, csv.Error) as e:
        raise HTTPException(status_code=400, detail=f"Failed to parse CSV file: {e}")


def _split_urls(value: Optional[str]) -> List[str]:
    return [u.strip() for u in (value or "").split("|") if u.strip()]


def _parse_price(value: str) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise RowError("Valid base price is required")
    if price < 0:
        raise RowError("Valid base price is required")
    return price


def _parse_stock(value: str) -> int:
    try:
        stock = int(value)
    except (TypeError, ValueError):
        raise RowError("Valid stock quantity is required")
    if stock < 0:
        raise RowError("Valid stock quantity is required")
    return stock


class ProductImporter:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    def find_or_create_category(self, path: str, create: bool) -> Optional[str]:
        """Resolve 'A/B/C' level by level; None when a level is missing and create is False."""
        parent_id: Optional[str] = None
        for name in [p.strip() for p in path.split("/")]:
            if not name:
                continue
            params = {
                "name": f"eq.{name}",
                "parent_id": f"eq.{parent_id}" if parent_id else "is.null",
                "limit": "1",
            }
            existing = self.db.select("categories", params, columns="id")
            if existing:
                parent_id = existing[0]["id"]
                continue
            if not create:
                return None
            slug = slugify(name)
            if self.db.select("categories", {"slug": f"eq.{slug}"}, columns="id"):
                slug = f"{slug}-{slugify(path)}"[:100]
            created = self.db.insert_one(
                "categories", {"name": name, "slug": slug, "parent_id": parent_id, "order": 0}
            )
            logger.info("product_import: created category name=%s id=%s", name, created["id"])
            parent_id = created["id"]
        return parent_id

    def _import_row(
        self, row: Dict[str, str], products: Dict[str, str], create_categories: bool, skip_errors: bool
    ) -> Dict[str, Any]:
        name = row.get("name", "")
        sku = row.get("sku", "")
        if not name:
            raise RowError("Product name is required")
        if not sku:
            raise RowError("SKU is required")
        base_price = _parse_price(row.get("base_price", ""))
        stock = _parse_stock(row.get("stock", ""))

        category_id = None
        if row.get("category_name"):
            category_id = self.find_or_create_category(row["category_name"], create_categories)
            if category_id is None and not skip_errors:
                raise RowError(
                    f'Category "{row["category_name"]}" not found and createCategories is set to false'
                )

        product_id = products.get(name)
        if product_id is None:
            try:
                product = self.db.insert_one("products", {
                    "name": name,
                    "description": row.get("description") or None,
                    "base_price": base_price,
                    "category_id": category_id,
                })
            except PostgrestError as e:
                raise RowError(f"Failed to create product: {e.message}")
            product_id = product["id"]
            products[name] = product_id
            for i, url in enumerate(_split_urls(row.get("product_images"))):
                self._add_image(product_id, None, url, "main" if i == 0 else "gallery", i)

        variant_price = row.get("variant_price")
        try:
            variant = self.db.insert_one("product_variants", {
                "product_id": product_id,
                "sku": sku,
                "price": float(variant_price) if variant_price else base_price,
                "color": row.get("color") or None,
                "size": row.get("size") or None,
                "stock": stock,
            })
        except ValueError:
            raise RowError("Valid variant price is required")
        except PostgrestError as e:
            if e.code == "23505":
                raise RowError(f'Duplicate SKU: "{sku}" already exists')
            raise RowError(f"Failed to create variant: {e.message}")

        for i, url in enumerate(_split_urls(row.get("variant_images"))):
            self._add_image(product_id, variant["id"], url, "gallery", i)
        return {"id": product_id, "name": name, "sku": sku}

    def _add_image(self, product_id: str, variant_id: Optional[str], url: str, image_type: str, order: int) -> None:
        try:
            self.db.insert_one("product_images", {
                "product_id": product_id,
                "variant_id": variant_id,
                "url": url,
                "type": image_type,
                "order": order,
            })
        except PostgrestError as e:
            logger.warning("product_import: image insert failed product_id=%s url=%s error=%s", product_id, url, e.message)

    def import_csv(self, content: bytes, create_categories: bool = True, skip_errors: bool = True) -> Dict[str, Any]:
        """
        Import every row; with skip_errors=False the first failing row aborts
        the import with a 400 (rows already imported are kept).
        """
        rows = parse_csv(content)
        result: Dict[str, Any] = {
            "totalRows": len(rows),
            "successfulImports": 0,
            "failedImports": 0,
            "errors": [],
            "importedProducts": [],
        }
        products: Dict[str, str] = {}
        for index, row in enumerate(rows):
            row_number = index + 2  # row 1 is the header
            try:
                imported = self._import_row(row, products, create_categories, skip_errors)
            except RowError as e:
                result["failedImports"] += 1
                result["errors"].append({"row": row_number, "error": str(e)})
                logger.info("product_import: row=%s result=error error=%s", row_number, e)
                if not skip_errors:
                    raise HTTPException(status_code=400, detail=f"Error at row {row_number}: {e}")
                continue
            result["successfulImports"] += 1
            result["importedProducts"].append(imported)
        logger.info(
            "product_import: total=%s imported=%s failed=%s",
            result["totalRows"], result["successfulImports"], result["failedImports"],
        )
        return result
