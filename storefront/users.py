"""User profiles, saved addresses and admin user management."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from storefront.auth import auth_http_error
from storefront.schemas import page_meta, page_range
from storefront.supabase_client import AuthApiError, SupabaseClient

logger = logging.getLogger("storefront.users")

PROFILE_FIELDS = ("name", "phone", "avatar_url")


class UserService:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    # ========================================================================
    # Profile
    # ========================================================================

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        user = self.db.maybe_single("users", {"id": f"eq.{user_id}"})
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    def update_profile(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        values = {k: v for k, v in data.items() if k in PROFILE_FIELDS}
        if values.get("name"):
            # keep auth metadata in step with the profile row
            try:
                self.db.admin_update_user(user_id, {"user_metadata": {"name": values["name"]}})
            except AuthApiError as e:
                raise auth_http_error(e)
        if not values:
            return self.get_profile(user_id)
        rows = self.db.update("users", {"id": f"eq.{user_id}"}, values)
        if not rows:
            raise HTTPException(status_code=404, detail="User not found")
        logger.info("users: profile updated user_id=%s fields=%s", user_id, sorted(values))
        return rows[0]

    # ========================================================================
    # Addresses
    # ========================================================================

    def list_addresses(self, user_id: str) -> List[Dict[str, Any]]:
        return self.db.select("user_addresses", {"user_id": f"eq.{user_id}", "order": "created_at.desc"})

    def _owned_address(self, user_id: str, address_id: int) -> Dict[str, Any]:
        address = self.db.maybe_single("user_addresses", {"id": f"eq.{address_id}", "user_id": f"eq.{user_id}"})
        if address is None:
            raise HTTPException(status_code=404, detail="Address not found")
        return address

    def _clear_default(self, user_id: str, address_type: str) -> None:
        self.db.update(
            "user_addresses",
            {"user_id": f"eq.{user_id}", "type": f"eq.{address_type}", "is_default": "eq.true"},
            {"is_default": False},
        )

    def create_address(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("is_default"):
            self._clear_default(user_id, data["type"])
        return self.db.insert_one("user_addresses", {**data, "user_id": user_id})

    def update_address(self, user_id: str, address_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        existing = self._owned_address(user_id, address_id)
        new_type = data.get("type") or existing.get("type")
        if data.get("is_default") or (data.get("type") and data["type"] != existing.get("type")):
            self._clear_default(user_id, new_type)
        if not data:
            return existing
        return self.db.update(
            "user_addresses", {"id": f"eq.{address_id}", "user_id": f"eq.{user_id}"}, data
        )[0]

    def delete_address(self, user_id: str, address_id: int) -> Dict[str, Any]:
        existing = self._owned_address(user_id, address_id)
        self.db.delete("user_addresses", {"id": f"eq.{address_id}", "user_id": f"eq.{user_id}"})
        return existing

    # ========================================================================
    # Admin
    # ========================================================================

    def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        role: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        params: Dict[str, str] = {"order": f"{sort_by}.{sort_order}", **page_range(page, limit)}
        if search and search.strip():
            term = search.strip().replace(",", " ").replace("(", "").replace(")", "")
            params["or"] = f"(name.ilike.*{term}*,email.ilike.*{term}*)"
        if role:
            params["role"] = f"eq.{role}"
        items, total = self.db.select_page("users", params)
        return {"items": items, "meta": page_meta(page, limit, total)}

    def update_role(self, user_id: str, role: str) -> Dict[str, Any]:
        self.get_profile(user_id)
        updated = self.db.update("users", {"id": f"eq.{user_id}"}, {"role": role})[0]
        logger.info("users: role changed user_id=%s role=%s", user_id, role)
        return updated
