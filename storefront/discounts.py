"""
Discounts and their links to categories, products and variants.

Link tables: category_discounts(discount_id, category_id),
product_discounts(discount_id, product_id), variant_discounts(discount_id, variant_id).
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from storefront.schemas import DiscountType
from storefront.supabase_client import SupabaseClient

logger = logging.getLogger("storefront.discounts")

DISCOUNT_FIELDS = (
    "name", "code", "type", "value", "start_date", "end_date", "is_active",
    "min_order_amount", "max_discount_amount", "usage_limit",
)

# response key -> (link table, link column)
LINK_TABLES = {
    "categories": ("category_discounts", "category_id"),
    "products": ("product_discounts", "product_id"),
    "variants": ("variant_discounts", "variant_id"),
}


def _parse_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def check_applicable(discount: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """{valid} or {valid: False, message} for a discount row at `now`."""
    now = now or datetime.now(timezone.utc)
    if not discount.get("is_active"):
        return {"valid": False, "message": "Discount is not active"}
    start = _parse_time(discount.get("start_date"))
    if start and start > now:
        return {"valid": False, "message": "Discount has not started yet"}
    end = _parse_time(discount.get("end_date"))
    if end and end < now:
        return {"valid": False, "message": "Discount has expired"}
    limit = discount.get("usage_limit")
    if limit and (discount.get("usage_count") or 0) >= limit:
        return {"valid": False, "message": "Discount usage limit reached"}
    return {"valid": True}


def discount_amount(discount: Dict[str, Any], subtotal: float) -> float:
    """
    Amount taken off `subtotal`.

    Zero below min_order_amount; percent discounts are capped by
    max_discount_amount; never more than the subtotal itself.
    """
    minimum = discount.get("min_order_amount")
    if minimum is not None and subtotal < float(minimum):
        return 0.0
    value = float(discount.get("value") or 0)
    if discount.get("type") == DiscountType.PERCENT.value:
        amount = subtotal * value / 100
    else:
        amount = value
    cap = discount.get("max_discount_amount")
    if cap is not None:
        amount = min(amount, float(cap))
    return round(min(amount, subtotal), 2)


class DiscountService:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    def _ensure_code_free(self, code: str, exclude_id: Optional[str] = None) -> None:
        params = {"code": f"eq.{code}"}
        if exclude_id:
            params["id"] = f"neq.{exclude_id}"
        if self.db.select("discounts", params, columns="id"):
            raise HTTPException(status_code=409, detail=f"Discount with code '{code}' already exists")

    def _with_links(self, discount: Dict[str, Any]) -> Dict[str, Any]:
        for key, (table, column) in LINK_TABLES.items():
            rows = self.db.select(table, {"discount_id": f"eq.{discount['id']}"}, columns=column)
            discount[key] = [r[column] for r in rows]
        return discount

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("code"):
            self._ensure_code_free(data["code"])
        values = {k: data.get(k) for k in DISCOUNT_FIELDS if k in data}
        if values.get("is_active") is None:
            values["is_active"] = True
        values["usage_count"] = 0
        discount = self.db.insert_one("discounts", values)
        logger.info("discounts: created id=%s code=%s", discount.get("id"), discount.get("code"))
        return discount

    def find_all(
        self,
        search: Optional[str] = None,
        type: Optional[str] = None,
        active: Optional[bool] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        params: Dict[str, str] = {"order": "created_at.desc", "limit": str(limit), "offset": str(offset)}
        if active is not None:
            params["is_active"] = f"eq.{str(active).lower()}"
        if type:
            params["type"] = f"eq.{type}"
        if search and search.strip():
            term = search.strip().replace(",", " ").replace("(", "").replace(")", "")
            params["or"] = f"(name.ilike.*{term}*,code.ilike.*{term}*)"
        items, total = self.db.select_page("discounts", params)
        return {"items": items, "total": total}

    def _get_row(self, discount_id: str) -> Dict[str, Any]:
        discount = self.db.maybe_single("discounts", {"id": f"eq.{discount_id}"})
        if discount is None:
            raise HTTPException(status_code=404, detail=f"Discount with ID {discount_id} not found")
        return discount

    def find_one(self, discount_id: str) -> Dict[str, Any]:
        return self._with_links(self._get_row(discount_id))

    def find_by_code(self, code: str) -> Optional[Dict[str, Any]]:
        discount = self.db.maybe_single("discounts", {"code": f"eq.{code}", "is_active": "eq.true"})
        return self._with_links(discount) if discount else None

    def update(self, discount_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._get_row(discount_id)
        if data.get("code"):
            self._ensure_code_free(data["code"], exclude_id=discount_id)
        values = {k: v for k, v in data.items() if k in DISCOUNT_FIELDS}
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        return self.db.update("discounts", {"id": f"eq.{discount_id}"}, values)[0]

    def remove(self, discount_id: str) -> None:
        self._get_row(discount_id)
        self.db.delete("discounts", {"id": f"eq.{discount_id}"})
        logger.info("discounts: removed id=%s", discount_id)

    def apply_to(self, target: str, discount_id: str, ids: List[str]) -> None:
        """Link the discount to categories, products or variants; existing links are kept."""
        table, column = LINK_TABLES[target]
        if not ids:
            raise HTTPException(status_code=400, detail=f"{target} must be a non-empty array of IDs")
        self._get_row(discount_id)
        rows = [{"discount_id": discount_id, column: i} for i in dict.fromkeys(ids)]
        self.db.insert(table, rows, upsert=True, on_conflict=f"discount_id,{column}")
        logger.info("discounts: applied id=%s to %s count=%s", discount_id, target, len(rows))

    def validate(self, discount_id: str) -> Dict[str, Any]:
        return check_applicable(self._get_row(discount_id))

    def increment_usage(self, discount_id: str) -> None:
        self.db.rpc("increment_discount_usage", {"discount_id": discount_id})
