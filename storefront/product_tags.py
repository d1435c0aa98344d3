"""Product tag service. Tag names are stored trimmed and lower-cased."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from storefront.schemas import page_meta, page_range
from storefront.supabase_client import SupabaseClient, in_list

logger = logging.getLogger("storefront.product_tags")


def normalize_tag(name: str) -> str:
    return (name or "").strip().lower()


class ProductTagService:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    def _ensure_name_free(self, name: str, exclude_id: Optional[str] = None) -> None:
        params = {"name": f"eq.{name}"}
        if exclude_id:
            params["id"] = f"neq.{exclude_id}"
        if self.db.select("product_tags", params, columns="id"):
            raise HTTPException(status_code=409, detail=f'Tag with name "{name}" already exists')

    def create(self, name: str) -> Dict[str, Any]:
        name = normalize_tag(name)
        self._ensure_name_free(name)
        return self.db.insert_one("product_tags", {"name": name})

    def find_all(
        self,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "name",
        sort_order: str = "asc",
    ) -> Dict[str, Any]:
        params: Dict[str, str] = {"order": f"{sort_by}.{sort_order}", **page_range(page, limit)}
        if search and search.strip():
            params["name"] = f"ilike.*{normalize_tag(search)}*"
        items, total = self.db.select_page("product_tags", params)
        return {"items": items, "meta": page_meta(page, limit, total)}

    def find_one(self, tag_id: str) -> Dict[str, Any]:
        tag = self.db.maybe_single("product_tags", {"id": f"eq.{tag_id}"})
        if tag is None:
            raise HTTPException(status_code=404, detail=f'Product tag with ID "{tag_id}" not found')
        return tag

    def update(self, tag_id: str, name: str) -> Dict[str, Any]:
        self.find_one(tag_id)
        name = normalize_tag(name)
        self._ensure_name_free(name, exclude_id=tag_id)
        return self.db.update("product_tags", {"id": f"eq.{tag_id}"}, {"name": name})[0]

    def remove(self, tag_id: str) -> Dict[str, Any]:
        tag = self.find_one(tag_id)
        self.db.delete("product_tags", {"id": f"eq.{tag_id}"})
        return tag

    def search(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Prefix-agnostic autocomplete; empty query gives an empty list."""
        term = normalize_tag(query)
        if not term:
            return []
        return self.db.select(
            "product_tags", {"name": f"ilike.*{term}*", "order": "name.asc", "limit": str(limit)}
        )

    def suggestions(self, limit: int = 20) -> List[Dict[str, Any]]:
        return self.db.select("product_tags", {"order": "created_at.desc", "limit": str(limit)})

    def bulk_create(self, names: List[str]) -> List[Dict[str, Any]]:
        """Return tags for every name, creating the ones that do not exist yet."""
        wanted = list(dict.fromkeys(n for n in (normalize_tag(x) for x in names) if n))
        if not wanted:
            return []
        existing = self.db.select("product_tags", {"name": in_list(wanted)})
        known = {t["name"] for t in existing}
        missing = [n for n in wanted if n not in known]
        created = self.db.insert("product_tags", [{"name": n} for n in missing]) if missing else []
        logger.info("product_tags: method=bulk_create existing=%s created=%s", len(existing), len(created))
        return existing + created
