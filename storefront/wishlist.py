"""Per-user wishlist of product variants. A variant appears at most once per user."""

import logging
from typing import Any, Dict, List

from fastapi import HTTPException

from storefront.products import variant_details
from storefront.supabase_client import PostgrestError, SupabaseClient

logger = logging.getLogger("storefront.wishlist")


class WishlistService:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    def _existing(self, user_id: str, variant_id: str):
        return self.db.maybe_single("wishlists", {"user_id": f"eq.{user_id}", "variant_id": f"eq.{variant_id}"})

    def add(self, user_id: str, variant_id: str) -> Dict[str, Any]:
        if self.db.maybe_single("product_variants", {"id": f"eq.{variant_id}"}, columns="id") is None:
            raise HTTPException(status_code=404, detail="Variant not found")

        existing = self._existing(user_id, variant_id)
        if existing is not None:
            return {"success": True, "message": "Item already in wishlist", "item": existing}
        try:
            item = self.db.insert_one("wishlists", {"user_id": user_id, "variant_id": variant_id})
        except PostgrestError as e:
            if e.code != "23505":
                raise
            return {"success": True, "message": "Item already in wishlist", "item": self._existing(user_id, variant_id)}
        logger.info("wishlist: method=add user_id=%s variant_id=%s", user_id, variant_id)
        return {"success": True, "message": "Item added to wishlist", "item": item}

    def list(self, user_id: str) -> List[Dict[str, Any]]:
        items = self.db.select("wishlists", {"user_id": f"eq.{user_id}", "order": "created_at.desc"})
        details = variant_details(self.db, (i["variant_id"] for i in items))
        for item in items:
            item["variant"] = details.get(item["variant_id"])
        return items

    def remove(self, user_id: str, item_id: str) -> Dict[str, Any]:
        deleted = self.db.delete("wishlists", {"id": f"eq.{item_id}", "user_id": f"eq.{user_id}"})
        if not deleted:
            raise HTTPException(status_code=404, detail="Wishlist item not found")
        return {"success": True, "message": "Item removed from wishlist"}

    def clear(self, user_id: str) -> Dict[str, Any]:
        deleted = self.db.delete("wishlists", {"user_id": f"eq.{user_id}"})
        logger.info("wishlist: method=clear user_id=%s removed=%s", user_id, len(deleted))
        return {"success": True, "message": "Wishlist cleared successfully"}
