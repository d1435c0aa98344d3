"""Messages sent through the public contact form, reviewed by admins."""

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException

from storefront.supabase_client import SupabaseClient

logger = logging.getLogger("storefront.contact_messages")


class ContactMessageService:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        message = self.db.insert_one("contact_messages", {
            "first_name": data["first_name"],
            "last_name": data["last_name"],
            "email": data["email"],
            "message_text": data["message_text"],
        })
        logger.info("contact_messages: received id=%s", message.get("id"))
        return message

    def list_admin(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        page = max(1, page)
        limit = min(100, max(1, limit))
        params: Dict[str, str] = {
            "order": "created_at.desc",
            "limit": str(limit),
            "offset": str((page - 1) * limit),
        }
        if status:
            params["status"] = f"eq.{status}"
        term = (search or "").strip().replace(",", " ").replace("(", "").replace(")", "")
        if term:
            params["or"] = f"(first_name.ilike.*{term}*,last_name.ilike.*{term}*,email.ilike.*{term}*)"
        items, total = self.db.select_page("contact_messages", params)
        return {"items": items, "total": total}

    def update_admin(self, message_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        values = {k: data[k] for k in ("status", "admin_notes") if k in data}
        if not values:
            message = self.db.maybe_single("contact_messages", {"id": f"eq.{message_id}"})
        else:
            rows = self.db.update("contact_messages", {"id": f"eq.{message_id}"}, values)
            message = rows[0] if rows else None
        if message is None:
            raise HTTPException(status_code=404, detail="Contact message not found")
        return message

    def remove_admin(self, message_id: str) -> Dict[str, Any]:
        rows = self.db.delete("contact_messages", {"id": f"eq.{message_id}"})
        if not rows:
            raise HTTPException(status_code=404, detail="Contact message not found")
        return {"id": rows[0]["id"]}
