"""
Product catalogue service: products, variants and listing queries.

Related rows (variants, images, categories) are fetched with separate
`in.(...)` queries and attached in Python rather than through PostgREST
embedding.
"""
from __future__ import annotations

import logging
import re
import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from fastapi import HTTPException

from storefront import storage
from storefront.categories import CategoryService
from storefront.database import fetch_all
from storefront.schemas import page_meta, page_range
from storefront.supabase_client import PostgrestError, SupabaseClient, in_list

logger = logging.getLogger("storefront.products")

PRODUCT_BUCKET = "product-images"

PRODUCT_FIELDS = (
    "name", "description", "category_id", "base_price", "is_visible", "delivery_info",
    "warranty_info", "care_instructions",
)
VARIANT_FIELDS = (
    "sku", "price", "compare_price", "size", "color", "stock", "weight_kg", "dimensions",
    "material", "brand", "featured", "tags", "payment_options", "discount_percentage",
)
SUMMARY_VARIANT_COLUMNS = "id,product_id,sku,price,color,size,stock,featured"

_PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}

TOP_SELLERS_SQL = """
    SELECT p.id, p.name, p.base_price, p.category_id,
           COUNT(oi.id) AS order_count,
           SUM(oi.quantity) AS total_units_sold
    FROM products p
    JOIN product_variants pv ON p.id = pv.product_id
    JOIN order_items oi ON pv.id = oi.variant_id
    JOIN orders o ON o.id = oi.order_id
    WHERE p.is_visible = true
      AND o.status IN ('paid', 'shipped', 'delivered')
      {time_filter}
    GROUP BY p.id, p.name, p.base_price, p.category_id
    ORDER BY total_units_sold DESC
    LIMIT {limit}
"""


def period_start(period: str) -> Optional[datetime]:
    days = _PERIOD_DAYS.get(period)
    if days is None:
        return None
    return datetime.now(timezone.utc) - timedelta(days=days)


def price_range_filters(price_range: Optional[str]) -> List[tuple]:
    """PostgREST filters on base_price for 'under-N', 'over-N' and 'A-B'."""
    if not price_range or price_range == "all":
        return []
    if price_range.startswith("under-"):
        value = price_range[len("under-"):]
        return [("base_price", f"lt.{int(value)}")] if value.isdigit() else []
    if price_range.startswith("over-"):
        value = price_range[len("over-"):]
        return [("base_price", f"gt.{int(value)}")] if value.isdigit() else []
    low, _, high = price_range.partition("-")
    if low.isdigit() and high.isdigit():
        return [("base_price", f"gte.{int(low)}"), ("base_price", f"lte.{int(high)}")]
    return []


def sort_order(sort_by: Optional[str]) -> str:
    if sort_by == "price_low_high":
        return "base_price.asc"
    if sort_by == "price_high_low":
        return "base_price.desc"
    if sort_by == "rating":
        return "rating.desc.nullslast,created_at.desc"
    return "created_at.desc"


def _code(value: Optional[str]) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "", (value or "")[:3]).upper()


def generate_sku(name: str, color: Optional[str] = None, size: Optional[str] = None,
                 product_id: Optional[str] = None) -> str:
    """SKU like 'SOF-RED-L-<product id>-<timestamp tail>'."""
    prefix = _code(name) or "PRD"
    color_code = f"-{_code(color)}" if color else ""
    size_code = f"-{_code(size)}" if size else ""
    id_suffix = f"-{product_id}" if product_id else ""
    stamp = str(int(time.time() * 1000))[7:]
    return f"{prefix}{color_code}{size_code}{id_suffix}-{stamp}"


def variant_details(supabase: SupabaseClient, variant_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """
    Variants keyed by id, each with its own `images` and a `product` carrying
    the product's category and product-level images (variant_id is null).
    """
    ids = list(dict.fromkeys(variant_ids))
    if not ids:
        return {}
    variants = supabase.select("product_variants", {"id": in_list(ids)})
    product_ids = list(dict.fromkeys(v["product_id"] for v in variants))
    products = {p["id"]: p for p in supabase.select("products", {"id": in_list(product_ids)})} if product_ids else {}
    category_ids = {p["category_id"] for p in products.values() if p.get("category_id")}
    categories = {c["id"]: c for c in supabase.select("categories", {"id": in_list(category_ids)})} if category_ids else {}

    variant_images: Dict[str, List[Dict]] = defaultdict(list)
    for image in supabase.select("product_images", {"variant_id": in_list(ids), "order": "order.asc"}):
        variant_images[image["variant_id"]].append(image)
    product_images: Dict[str, List[Dict]] = defaultdict(list)
    if product_ids:
        for image in supabase.select(
            "product_images",
            {"product_id": in_list(product_ids), "variant_id": "is.null", "order": "order.asc"},
        ):
            product_images[image["product_id"]].append(image)

    result = {}
    for v in variants:
        product = products.get(v["product_id"])
        if product is not None:
            product = {
                **product,
                "category": categories.get(product.get("category_id")),
                "images": product_images.get(product["id"], []),
            }
        result[v["id"]] = {**v, "images": variant_images.get(v["id"], []), "product": product}
    return result


def _contains(value: Optional[str], needle: Optional[str]) -> bool:
    return (needle or "").strip().lower() in (value or "").lower()


class ProductService:
    def __init__(self, supabase: SupabaseClient, db=None) -> None:
        self.db = supabase
        self.sql = db

    # ------------------------------------------------------------------
    # Composition helpers
    # ------------------------------------------------------------------

    def _variants_by_product(self, product_ids: Iterable[str], columns: str = "*") -> Dict[str, List[Dict]]:
        ids = list(dict.fromkeys(product_ids))
        grouped: Dict[str, List[Dict]] = defaultdict(list)
        if not ids:
            return grouped
        rows = self.db.select(
            "product_variants",
            {"product_id": in_list(ids), "order": "created_at.asc"},
            columns=columns,
        )
        for row in rows:
            grouped[row["product_id"]].append(row)
        return grouped

    def _images_by_product(self, product_ids: Iterable[str]) -> Dict[str, List[Dict]]:
        ids = list(dict.fromkeys(product_ids))
        grouped: Dict[str, List[Dict]] = defaultdict(list)
        if not ids:
            return grouped
        rows = self.db.select("product_images", {"product_id": in_list(ids), "order": "order.asc"})
        for row in rows:
            grouped[row["product_id"]].append(row)
        return grouped

    def _main_images(self, product_ids: Iterable[str]) -> Dict[str, Dict]:
        main: Dict[str, Dict] = {}
        for pid, images in self._images_by_product(product_ids).items():
            for image in images:
                if image.get("type") == "main":
                    main[pid] = {"id": image["id"], "url": image["url"]}
                    break
        return main

    def attach_categories(self, products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Set `category` (with its `parent`) on each product."""
        ids = {p["category_id"] for p in products if p.get("category_id")}
        if not ids:
            return products
        categories = {c["id"]: c for c in self.db.select("categories", {"id": in_list(ids)})}
        parent_ids = {c["parent_id"] for c in categories.values() if c.get("parent_id")} - set(categories)
        if parent_ids:
            for c in self.db.select("categories", {"id": in_list(parent_ids)}):
                categories[c["id"]] = c
        for product in products:
            category = categories.get(product.get("category_id"))
            if category is None:
                continue
            product["category"] = {**category, "parent": categories.get(category.get("parent_id"))}
        return products

    def _decorate(self, products: List[Dict[str, Any]], variants: bool, images: bool, category: bool) -> List[Dict]:
        ids = [p["id"] for p in products]
        if variants:
            by_product = self._variants_by_product(ids)
            for p in products:
                p["variants"] = by_product.get(p["id"], [])
        if images:
            by_product = self._images_by_product(ids)
            for p in products:
                p["images"] = by_product.get(p["id"], [])
        if category:
            self.attach_categories(products)
        return products

    def _summaries(self, products: List[Dict[str, Any]], featured_first: bool = False) -> List[Dict[str, Any]]:
        """Compact cards: main image plus a default variant for cart/wishlist buttons."""
        ids = [p["id"] for p in products]
        images = self._main_images(ids)
        variants = self._variants_by_product(ids, columns=SUMMARY_VARIANT_COLUMNS)
        cards = []
        for p in products:
            product_variants = variants.get(p["id"], [])
            default = None
            if product_variants:
                default = next((v for v in product_variants if v.get("featured")), None) if featured_first else None
                default = default or product_variants[0]
            cards.append({
                "id": p["id"],
                "name": p.get("name"),
                "category_id": p.get("category_id"),
                "base_price": p.get("base_price"),
                "created_at": p.get("created_at"),
                "main_image": images.get(p["id"]),
                "default_variant": default,
            })
        return cards

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _product_ids_for_variant_filters(self, size: Optional[str], material: Optional[str]) -> List[str]:
        params = []
        if size and size.strip():
            params.append(("size", f"ilike.*{size.strip()}*"))
        if material and material.strip():
            params.append(("material", f"ilike.*{material.strip()}*"))
        rows = self.db.select("product_variants", params, columns="product_id")
        return list(dict.fromkeys(r["product_id"] for r in rows))

    def find_all(
        self,
        category_id: Optional[str] = None,
        size: Optional[str] = None,
        material: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: str = "created_at",
        price_range: str = "all",
        include_variants: bool = True,
        include_images: bool = False,
        include_category: bool = False,
    ) -> Dict[str, Any]:
        params: List[tuple] = [("is_visible", "eq.true")]
        if search and search.strip():
            # a text search ignores every other filter
            term = re.sub(r"[,()*]", " ", search).strip()
            params.append(("or", f"(name.ilike.*{term}*,description.ilike.*{term}*)"))
            size = material = None
        else:
            if size or material:
                ids = self._product_ids_for_variant_filters(size, material)
                if not ids:
                    return {"items": [], "meta": {"page": page, "limit": limit, "totalItems": 0, "totalPages": 0}}
                params.append(("id", in_list(ids)))
            if category_id:
                params.append(("category_id", f"eq.{category_id}"))
            params.extend(price_range_filters(price_range))
        params.append(("order", sort_order(sort_by)))
        if limit:
            params.extend(page_range(page, limit).items())

        products, total = self.db.select_page("products", params)
        self._decorate(products, include_variants, include_images, include_category)
        if (size or material) and include_variants:
            for p in products:
                p["variants"] = [
                    v for v in p.get("variants", [])
                    if (not size or _contains(v.get("size"), size))
                    and (not material or _contains(v.get("material"), material))
                ]
        return {"items": products, "meta": page_meta(page, limit, total)}

    def _get_product(self, product_id: str, visible_only: bool = True) -> Dict[str, Any]:
        params = {"id": f"eq.{product_id}"}
        if visible_only:
            params["is_visible"] = "eq.true"
        product = self.db.maybe_single("products", params)
        if product is None:
            raise HTTPException(status_code=404, detail=f"Product with ID {product_id} not found")
        return product

    def find_one(
        self,
        product_id: str,
        include_variants: bool = True,
        include_images: bool = False,
        include_category: bool = False,
    ) -> Dict[str, Any]:
        product = self._get_product(product_id)
        return self._decorate([product], include_variants, include_images, include_category)[0]

    def find_featured(self, limit: int = 6, include_category: bool = False) -> List[Dict[str, Any]]:
        """Visible products that own at least one featured variant."""
        featured = self.db.select("product_variants", {"featured": "eq.true"}, columns="product_id")
        ids = list(dict.fromkeys(v["product_id"] for v in featured))
        if not ids:
            return []
        products = self.db.select(
            "products",
            {"id": in_list(ids), "is_visible": "eq.true", "order": "created_at.desc", "limit": str(limit)},
        )
        cards = self._summaries(products, featured_first=True)
        return self.attach_categories(cards) if include_category else cards

    def find_related(self, product_id: str, limit: int = 4) -> List[Dict[str, Any]]:
        """
        Related products, filled in priority order: same category, products
        sharing a variant colour or size, sibling categories, newest overall.
        """
        current = self._get_product(product_id, visible_only=False)
        own_variants = self.db.select("product_variants", {"product_id": f"eq.{product_id}"}, columns="color,size")
        colors = sorted({v["color"] for v in own_variants if v.get("color")})
        sizes = sorted({v["size"] for v in own_variants if v.get("size")})

        found: List[Dict[str, Any]] = []

        def exclude() -> List[tuple]:
            return [("id", "not." + in_list([product_id] + [p["id"] for p in found]))]

        def take(params: List[tuple]) -> None:
            remaining = limit - len(found)
            if remaining <= 0:
                return
            rows = self.db.select(
                "products",
                [("is_visible", "eq.true")] + exclude() + params
                + [("order", "created_at.desc"), ("limit", str(remaining))],
            )
            found.extend(rows)

        if current.get("category_id"):
            take([("category_id", f"eq.{current['category_id']}")])

        if len(found) < limit and (colors or sizes):
            matches: List[str] = []
            if colors:
                matches += [r["product_id"] for r in self.db.select(
                    "product_variants", {"color": in_list(colors)}, columns="product_id")]
            if sizes:
                matches += [r["product_id"] for r in self.db.select(
                    "product_variants", {"size": in_list(sizes)}, columns="product_id")]
            matches = [m for m in dict.fromkeys(matches) if m != product_id]
            if matches:
                take([("id", in_list(matches))])

        if len(found) < limit and current.get("category_id"):
            category = self.db.maybe_single("categories", {"id": f"eq.{current['category_id']}"})
            if category and category.get("parent_id"):
                siblings = self.db.select(
                    "categories",
                    {"parent_id": f"eq.{category['parent_id']}", "id": f"neq.{category['id']}"},
                    columns="id",
                )
                if siblings:
                    take([("category_id", in_list(s["id"] for s in siblings))])

        if len(found) < limit:
            take([])

        return self._decorate(found, variants=False, images=True, category=False)

    def find_top_sellers(self, limit: int = 8, period: str = "all") -> List[Dict[str, Any]]:
        """Best selling visible products by units sold in paid orders. Empty on failure."""
        since = period_start(period)
        try:
            if self.sql is not None:
                time_filter = "AND o.created_at >= :since" if since else ""
                rows = fetch_all(
                    self.sql,
                    TOP_SELLERS_SQL.format(time_filter=time_filter, limit=":limit"),
                    {"since": since, "limit": limit} if since else {"limit": limit},
                )
            else:
                time_filter = f"AND o.created_at >= '{since.isoformat()}'" if since else ""
                rows = self.db.rpc(
                    "execute_sql",
                    {"query": TOP_SELLERS_SQL.format(time_filter=time_filter, limit=int(limit))},
                ) or []
        except Exception as e:
            logger.warning("products: top sellers query failed period=%s error=%s", period, e)
            return []
        if not rows:
            return []
        sales = {str(r["id"]): r for r in rows}
        products = self.db.select("products", {"id": in_list(sales), "is_visible": "eq.true"})
        by_id = {p["id"]: p for p in products}
        ordered = [by_id[pid] for pid in sales if pid in by_id]
        cards = self._summaries(ordered)
        for card in cards:
            sale = sales[card["id"]]
            card["order_count"] = int(sale.get("order_count") or 0)
            card["total_units_sold"] = int(sale.get("total_units_sold") or 0)
        return cards

    def find_new_arrivals(self, limit: int = 8, period: str = "all") -> List[Dict[str, Any]]:
        params = [("is_visible", "eq.true"), ("order", "created_at.desc"), ("limit", str(limit))]
        since = period_start(period)
        if since:
            params.append(("created_at", f"gte.{since.isoformat()}"))
        return self._summaries(self.db.select("products", params))

    def search_init_data(self) -> Dict[str, Any]:
        """Everything a client-side search index needs in one payload."""
        products = self.db.select("products", {"is_visible": "eq.true", "order": "name.asc"})
        self._decorate(products, variants=True, images=True, category=True)
        return {"products": products, "categories": CategoryService(self.db).find_all(nested=True)}

    # ------------------------------------------------------------------
    # Variants (reads)
    # ------------------------------------------------------------------

    def find_variants(self, product_id: str) -> List[Dict[str, Any]]:
        self._get_product(product_id)
        variants = self.db.select("product_variants", {"product_id": f"eq.{product_id}", "order": "created_at.asc"})
        self._attach_variant_images(variants)
        return variants

    def find_images(self, product_id: str) -> List[Dict[str, Any]]:
        self._get_product(product_id)
        return self.db.select("product_images", {"product_id": f"eq.{product_id}", "order": "order.asc"})

    def get_360_images(self, product_id: str) -> List[Dict[str, Any]]:
        self._get_product(product_id)
        return self.db.select(
            "product_images",
            {"product_id": f"eq.{product_id}", "type": "eq.360", "order": "order.asc"},
        )

    def get_variant(self, variant_id: str) -> Dict[str, Any]:
        variant = self.db.maybe_single("product_variants", {"id": f"eq.{variant_id}"})
        if variant is None:
            raise HTTPException(status_code=404, detail=f"Product variant with ID {variant_id} not found")
        variant["product"] = self.db.maybe_single("products", {"id": f"eq.{variant['product_id']}"})
        return variant

    def get_variant_images(self, variant_id: str) -> List[Dict[str, Any]]:
        self.get_variant(variant_id)
        return self.db.select("product_images", {"variant_id": f"eq.{variant_id}", "order": "order.asc"})

    def _attach_variant_images(self, variants: List[Dict[str, Any]]) -> None:
        if not variants:
            return
        images = self.db.select(
            "product_images",
            {"variant_id": in_list(v["id"] for v in variants), "order": "order.asc"},
        )
        grouped = defaultdict(list)
        for image in images:
            grouped[image["variant_id"]].append(image)
        for v in variants:
            v["images"] = grouped.get(v["id"], [])

    def _variants_page(self, params: List[tuple], page: int, limit: int) -> tuple:
        variants, total = self.db.select_page(
            "product_variants", params + [("order", "created_at.asc")] + list(page_range(page, limit).items())
        )
        product_ids = list(dict.fromkeys(v["product_id"] for v in variants))
        products = {p["id"]: p for p in self.db.select("products", {"id": in_list(product_ids)})} if product_ids else {}
        self._attach_variant_images(variants)
        for v in variants:
            v["product"] = products.get(v["product_id"])
        return variants, total

    def find_variants_by_attribute(self, attribute: str, value: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        variants, total = self._variants_page([(attribute, f"ilike.*{value}*")], page, limit)
        return {"items": variants, "meta": page_meta(page, limit, total)}

    def find_products_by_category_and_attribute(
        self, category_id: str, attribute: str, value: str, page: int = 1, limit: int = 10
    ) -> Dict[str, Any]:
        """Products of a category grouped with their variants matching colour/size."""
        products = self.db.select("products", {"category_id": f"eq.{category_id}"}, columns="id")
        if not products:
            return {"items": [], "meta": {"page": page, "limit": limit, "totalItems": 0, "totalPages": 0}}
        variants, total = self._variants_page(
            [("product_id", in_list(p["id"] for p in products)), (attribute, f"ilike.*{value}*")], page, limit
        )
        grouped: Dict[str, Dict[str, Any]] = {}
        for v in variants:
            product = v.pop("product", None) or {"id": v["product_id"]}
            entry = grouped.setdefault(v["product_id"], {**product, "variants": []})
            entry["variants"].append(v)
        return {"items": list(grouped.values()), "meta": page_meta(page, limit, total)}

    # ------------------------------------------------------------------
    # Admin: products
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        category_id = data.get("category_id")
        if category_id and self.db.maybe_single("categories", {"id": f"eq.{category_id}"}, columns="id") is None:
            raise HTTPException(status_code=404, detail=f"Category with ID {category_id} not found")

        product = self.db.insert_one("products", {
            "name": data["name"],
            "description": data.get("description"),
            "category_id": category_id,
            "base_price": data["base_price"],
            "is_visible": data.get("is_visible", True),
            "delivery_info": data.get("delivery_info"),
            "warranty_info": data.get("warranty_info"),
            "care_instructions": data.get("care_instructions"),
        })

        sku = data.get("default_sku") or generate_sku(
            product["name"], data.get("default_color"), data.get("default_size"), product["id"][:8]
        )
        variant = {
            "product_id": product["id"],
            "sku": sku,
            "price": data["base_price"] if data["base_price"] > 0 else None,
            "color": data.get("default_color"),
            "size": data.get("default_size"),
            "stock": data.get("initial_stock") or 0,
            "material": data.get("material"),
            "brand": data.get("brand"),
            "featured": bool(data.get("featured", False)),
            "compare_price": data.get("compare_price"),
            "weight_kg": data.get("weight_kg"),
            "dimensions": data.get("dimensions") or {},
            "payment_options": data.get("payment_options") or [],
            "discount_percentage": data.get("discount_percentage") or 0,
            "tags": data.get("tags"),
        }
        try:
            product["default_variant"] = self.db.insert_one("product_variants", variant)
        except PostgrestError as e:
            self.db.delete("products", {"id": f"eq.{product['id']}"})
            if e.code == "23505":
                raise HTTPException(
                    status_code=400, detail=f"SKU '{sku}' already exists. Please provide a unique SKU."
                )
            raise HTTPException(status_code=500, detail=f"Failed to create product variant: {e.message}")

        if category_id:
            self.attach_categories([product])
        logger.info("products: method=create id=%s sku=%s", product["id"], sku)
        return product

    def update(self, product_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._get_product(product_id, visible_only=False)
        values = {k: v for k, v in data.items() if k in PRODUCT_FIELDS}
        if "category_id" in values and values["category_id"] is not None:
            if self.db.maybe_single("categories", {"id": f"eq.{values['category_id']}"}, columns="id") is None:
                raise HTTPException(status_code=404, detail=f"Category with ID {values['category_id']} not found")
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        return self.db.update("products", {"id": f"eq.{product_id}"}, values)[0]

    def remove(self, product_id: str) -> Dict[str, Any]:
        product = self._get_product(product_id, visible_only=False)
        removed = storage.remove_folder(self.db, PRODUCT_BUCKET, f"products/{product_id}")
        # variants and images cascade in the database
        self.db.delete("products", {"id": f"eq.{product_id}"})
        logger.info("products: method=remove id=%s storage_files=%s", product_id, removed)
        return product

    # ------------------------------------------------------------------
    # Admin: variants
    # ------------------------------------------------------------------

    def get_low_stock(self, threshold: int = 5, limit: int = 20) -> List[Dict[str, Any]]:
        variants = self.db.select(
            "product_variants",
            {"stock": f"lte.{threshold}", "order": "stock.asc", "limit": str(limit)},
        )
        product_ids = list(dict.fromkeys(v["product_id"] for v in variants))
        products = {p["id"]: p for p in self.db.select("products", {"id": in_list(product_ids)})} if product_ids else {}
        for v in variants:
            v["product"] = products.get(v["product_id"])
        return variants

    def _ensure_sku_free(self, sku: str, exclude_id: Optional[str] = None) -> None:
        params = {"sku": f"eq.{sku}"}
        if exclude_id:
            params["id"] = f"neq.{exclude_id}"
        if self.db.select("product_variants", params, columns="id"):
            raise HTTPException(status_code=409, detail=f"SKU '{sku}' already exists")

    def create_variant(self, product_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._get_product(product_id, visible_only=False)
        values = {k: v for k, v in data.items() if k in VARIANT_FIELDS}
        self._ensure_sku_free(values["sku"])
        values["product_id"] = product_id
        return self.db.insert_one("product_variants", values)

    def _get_variant_row(self, variant_id: str) -> Dict[str, Any]:
        variant = self.db.maybe_single("product_variants", {"id": f"eq.{variant_id}"})
        if variant is None:
            raise HTTPException(status_code=404, detail=f"Product variant with ID {variant_id} not found")
        return variant

    def update_variant(self, variant_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._get_variant_row(variant_id)
        values = {k: v for k, v in data.items() if k in VARIANT_FIELDS}
        if values.get("sku"):
            self._ensure_sku_free(values["sku"], exclude_id=variant_id)
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        return self.db.update("product_variants", {"id": f"eq.{variant_id}"}, values)[0]

    def remove_variant(self, variant_id: str) -> Dict[str, Any]:
        variant = self._get_variant_row(variant_id)
        self.db.delete("product_variants", {"id": f"eq.{variant_id}"})
        return variant

    def update_stock(self, variant_id: str, stock: int) -> Dict[str, Any]:
        self._get_variant_row(variant_id)
        return self.db.update(
            "product_variants",
            {"id": f"eq.{variant_id}"},
            {"stock": stock, "updated_at": datetime.now(timezone.utc).isoformat()},
        )[0]
