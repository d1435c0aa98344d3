"""
Shopping cart for signed-in users.

Tables:
  carts       (id, user_id unique, created_at, updated_at)
  cart_items  (id, cart_id, variant_id, quantity, created_at, updated_at)
              UNIQUE (cart_id, variant_id)

A cart line never holds more units than the variant has in stock.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import HTTPException

from storefront.products import variant_details
from storefront.supabase_client import PostgrestError, SupabaseClient, in_list

logger = logging.getLogger("storefront.cart")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CartService:
    def __init__(self, supabase: SupabaseClient) -> None:
        self.db = supabase

    def _get_or_create_cart(self, user_id: str) -> Dict[str, Any]:
        cart = self.db.maybe_single("carts", {"user_id": f"eq.{user_id}"})
        if cart is not None:
            return cart
        try:
            cart = self.db.insert_one("carts", {"user_id": user_id})
            logger.info("cart: method=create_cart user_id=%s cart_id=%s", user_id, cart.get("id"))
            return cart
        except PostgrestError as e:
            if e.code != "23505":
                raise
            # created concurrently by another request
            return self.db.single("carts", {"user_id": f"eq.{user_id}"})

    def _remove_purchased_items(self, user_id: str, cart_id: str) -> None:
        """Drop lines for variants the user already bought in paid orders."""
        try:
            orders = self.db.select("orders", {"user_id": f"eq.{user_id}", "status": "eq.paid"}, columns="id")
            if not orders:
                return
            items = self.db.select(
                "order_items", {"order_id": in_list(o["id"] for o in orders)}, columns="variant_id"
            )
            purchased = list(dict.fromkeys(i["variant_id"] for i in items if i.get("variant_id")))
            if not purchased:
                return
            removed = self.db.delete("cart_items", {"cart_id": f"eq.{cart_id}", "variant_id": in_list(purchased)})
            if removed:
                logger.info("cart: removed purchased items user_id=%s count=%s", user_id, len(removed))
                self.db.update("carts", {"id": f"eq.{cart_id}"}, {"updated_at": _now()})
        except Exception as e:
            logger.error("cart: method=remove_purchased_items user_id=%s result=error error=%s", user_id, e)

    def get_cart(self, user_id: str) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)
        self._remove_purchased_items(user_id, cart["id"])
        items = self.db.select("cart_items", {"cart_id": f"eq.{cart['id']}", "order": "created_at.desc"})
        details = variant_details(self.db, (i["variant_id"] for i in items))
        for item in items:
            item["variant"] = details.get(item["variant_id"])
        logger.info("cart: method=get_cart user_id=%s item_count=%s", user_id, len(items))
        return {
            "id": cart["id"],
            "user_id": cart["user_id"],
            "items": items,
            "created_at": cart.get("created_at"),
            "updated_at": cart.get("updated_at"),
        }

    def _increment(self, item: Dict[str, Any], quantity: int, stock: int) -> Dict[str, Any]:
        new_quantity = item["quantity"] + quantity
        if new_quantity > stock:
            raise HTTPException(
                status_code=400,
                detail=f"Not enough stock available. Available: {stock}, requested total: {new_quantity}",
            )
        return self.db.update(
            "cart_items", {"id": f"eq.{item['id']}"}, {"quantity": new_quantity, "updated_at": _now()}
        )[0]

    def add_item(self, user_id: str, variant_id: str, quantity: int) -> Dict[str, Any]:
        logger.info("cart: method=add_item user_id=%s variant_id=%s quantity=%s", user_id, variant_id, quantity)
        variant = self.db.maybe_single("product_variants", {"id": f"eq.{variant_id}"}, columns="id,stock")
        if variant is None:
            raise HTTPException(status_code=404, detail="Product variant not found")
        stock = variant.get("stock") or 0
        if quantity > stock:
            raise HTTPException(status_code=400, detail=f"Not enough stock available. Available: {stock}")

        cart = self._get_or_create_cart(user_id)
        line = {"cart_id": f"eq.{cart['id']}", "variant_id": f"eq.{variant_id}"}
        existing = self.db.maybe_single("cart_items", line)
        if existing is not None:
            item = self._increment(existing, quantity, stock)
        else:
            try:
                item = self.db.insert_one(
                    "cart_items", {"cart_id": cart["id"], "variant_id": variant_id, "quantity": quantity}
                )
            except PostgrestError as e:
                if e.code != "23505":
                    raise
                # the same line was inserted concurrently; add to it instead
                item = self._increment(self.db.single("cart_items", line), quantity, stock)
        self.db.update("carts", {"id": f"eq.{cart['id']}"}, {"updated_at": _now()})
        return {"success": True, "message": "Item added to cart", "item": item}

    def _owned_item(self, cart_id: str, item_id: str) -> Dict[str, Any]:
        item = self.db.maybe_single("cart_items", {"id": f"eq.{item_id}", "cart_id": f"eq.{cart_id}"})
        if item is None:
            raise HTTPException(status_code=404, detail="Cart item not found")
        return item

    def update_item(self, user_id: str, item_id: str, quantity: int) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)
        item = self._owned_item(cart["id"], item_id)
        variant = self.db.maybe_single("product_variants", {"id": f"eq.{item['variant_id']}"}, columns="id,stock")
        if variant is None:
            raise HTTPException(status_code=404, detail="Product variant not found")
        stock = variant.get("stock") or 0
        if quantity > stock:
            raise HTTPException(
                status_code=400,
                detail=f"Requested quantity ({quantity}) exceeds available stock ({stock})",
            )
        updated = self.db.update(
            "cart_items", {"id": f"eq.{item_id}"}, {"quantity": quantity, "updated_at": _now()}
        )[0]
        return {"success": True, "message": "Cart item updated", "item": updated}

    def remove_item(self, user_id: str, item_id: str) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)
        self._owned_item(cart["id"], item_id)
        self.db.delete("cart_items", {"id": f"eq.{item_id}"})
        return {"success": True, "message": "Item removed from cart"}

    def remove_items(self, user_id: str, item_ids: List[str]) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)
        found = self.db.select(
            "cart_items", {"cart_id": f"eq.{cart['id']}", "id": in_list(item_ids)}, columns="id"
        )
        found_ids = {i["id"] for i in found}
        missing = [i for i in item_ids if i not in found_ids]
        if missing:
            raise HTTPException(status_code=404, detail=f"Cart items not found: {', '.join(missing)}")
        deleted = self.db.delete("cart_items", {"cart_id": f"eq.{cart['id']}", "id": in_list(item_ids)})
        return {
            "success": True,
            "message": f"Successfully removed {len(deleted)} items from cart",
            "deleted_items": deleted,
        }

    def clear(self, user_id: str) -> Dict[str, Any]:
        cart = self.db.maybe_single("carts", {"user_id": f"eq.{user_id}"})
        if cart is None:
            raise HTTPException(status_code=404, detail="Cart not found")
        self.db.delete("cart_items", {"cart_id": f"eq.{cart['id']}"})
        return {"success": True, "message": "Cart cleared successfully"}
