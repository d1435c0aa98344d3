"""
Orders: checkout, listing, status management, CSV export and the card / cash
on delivery payment flows.

Order status machine (same-status updates are always accepted):

    pending   -> paid | cancelled
    paid      -> shipped | cancelled
    shipped   -> delivered | cancelled
    delivered -> cancelled
    cancelled -> (terminal)

Cash-on-delivery orders may also move straight from pending to shipped.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from fastapi import HTTPException

from storefront import config
from storefront.mailer import Mailer, MailerError
from storefront.payments import TylGateway, order_status_for, parse_approval_code, payment_status_for
from storefront.products import variant_details
from storefront.schemas import OrderStatus, page_meta
from storefront.supabase_client import SupabaseClient, in_list

logger = logging.getLogger("storefront.orders")

STATUS_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PAID.value, OrderStatus.CANCELLED.value},
    OrderStatus.PAID.value: {OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value},
    OrderStatus.SHIPPED.value: {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value},
    OrderStatus.DELIVERED.value: {OrderStatus.CANCELLED.value},
    OrderStatus.CANCELLED.value: set(),
}
CANCELLABLE = {OrderStatus.PENDING.value, OrderStatus.PAID.value}

ITEM_VARIANT_FIELDS = (
    "id", "product_id", "sku", "price", "compare_price", "size", "color",
    "discount_percentage", "material", "brand",
)

CSV_HEADERS = [
    "Order ID", "User ID", "Status", "Created At", "Updated At", "Total Amount", "Currency",
    "Recipient Name", "Email", "Phone", "Shipping Address", "Billing Address", "Items",
]


@dataclass
class OrderFilters:
    page: int = 1
    limit: int = 10
    sort_by: str = "created_at"
    sort_order: str = "desc"
    status: Optional[str] = None
    user_id: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def params(self) -> List[Tuple[str, str]]:
        """PostgREST filters shared by listing and export."""
        params: List[Tuple[str, str]] = []
        if self.status:
            params.append(("status", f"eq.{self.status}"))
        if self.user_id:
            params.append(("user_id", f"eq.{self.user_id}"))
        if self.date_from:
            params.append(("created_at", f"gte.{self.date_from.isoformat()}"))
        if self.date_to:
            # inclusive of the whole end day
            params.append(("created_at", f"lt.{(self.date_to + timedelta(days=1)).isoformat()}"))
        if self.search and self.search.strip():
            term = self.search.strip().replace(",", " ").replace("(", "").replace(")", "")
            params.append((
                "or",
                f"(contact_email.ilike.*{term}*,contact_first_name.ilike.*{term}*,"
                f"contact_last_name.ilike.*{term}*,billing_address->>recipient_name.ilike.*{term}*)",
            ))
        params.append(("order", f"{self.sort_by}.{self.sort_order}"))
        return params


def item_quantity(item: Dict[str, Any]) -> int:
    """Quantity of a checkout line; a nested property.quantity takes precedence."""
    prop = item.get("property") or {}
    if isinstance(prop.get("quantity"), int):
        return prop["quantity"]
    return item["quantity"]


def check_transition(current: str, new: str) -> None:
    if current != new and new not in STATUS_TRANSITIONS.get(current, set()):
        raise HTTPException(
            status_code=400, detail=f"Cannot transition order from status '{current}' to '{new}'"
        )


def format_address(address: Optional[Dict[str, Any]]) -> str:
    if not address:
        return ""
    keys = ("recipient_name", "line1", "street_address", "line2", "address_line_2",
            "city", "state", "postal_code", "country")
    return ", ".join(str(address[k]) for k in keys if address.get(k))


def orders_to_csv(orders: List[Dict[str, Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for order in orders:
        billing = order.get("billing_address") or {}
        items = "; ".join(
            f"{i['quantity']}x variant:{i['variant_id']} @ {i['unit_price']} {order.get('currency')}"
            for i in order.get("items", [])
        )
        name = billing.get("recipient_name") or " ".join(
            filter(None, (order.get("contact_first_name"), order.get("contact_last_name")))
        )
        writer.writerow([
            order["id"],
            order.get("user_id") or "",
            order["status"],
            order.get("created_at") or "",
            order.get("updated_at") or "",
            order.get("total_amount"),
            order.get("currency") or "",
            name,
            billing.get("email") or order.get("contact_email") or "",
            billing.get("phone") or order.get("contact_phone") or "",
            format_address(order.get("shipping_address")),
            format_address(billing),
            items,
        ])
    return buf.getvalue()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderService:
    def __init__(self, supabase: SupabaseClient, mailer: Optional[Mailer] = None) -> None:
        self.db = supabase
        self.mailer = mailer

    # ========================================================================
    # Reads
    # ========================================================================

    def _attach_items(self, orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Attach items with a trimmed variant, its product and the best image_url."""
        if not orders:
            return orders
        items = self.db.select(
            "order_items", {"order_id": in_list(o["id"] for o in orders), "order": "created_at.asc"}
        )
        details = variant_details(self.db, (i["variant_id"] for i in items if i.get("variant_id")))
        by_order: Dict[str, List[Dict]] = {o["id"]: [] for o in orders}
        for item in items:
            variant = details.get(item.get("variant_id"))
            image_url = None
            if variant:
                product = variant.get("product") or {}
                images = variant["images"] or product.get("images") or []
                image_url = images[0]["url"] if images else None
                item["variant"] = {
                    **{k: variant.get(k) for k in ITEM_VARIANT_FIELDS},
                    "product": {"id": product.get("id"), "name": product.get("name")} if product else None,
                }
            else:
                item["variant"] = None
            item["image_url"] = image_url
            by_order.setdefault(item["order_id"], []).append(item)
        for order in orders:
            order["items"] = by_order.get(order["id"], [])
        return orders

    def _list(self, filters: OrderFilters) -> Dict[str, Any]:
        offset = (max(filters.page, 1) - 1) * filters.limit
        params = filters.params() + [("limit", str(filters.limit)), ("offset", str(offset))]
        orders, total = self.db.select_page("orders", params)
        return {"items": self._attach_items(orders), "meta": page_meta(filters.page, filters.limit, total)}

    def list_user_orders(self, user_id: str, filters: OrderFilters) -> Dict[str, Any]:
        filters.user_id = user_id
        filters.search = None
        return self._list(filters)

    def list_all_orders(self, filters: OrderFilters) -> Dict[str, Any]:
        return self._list(filters)

    def _get_row(self, order_id: str) -> Dict[str, Any]:
        order = self.db.maybe_single("orders", {"id": f"eq.{order_id}"})
        if order is None:
            raise HTTPException(status_code=404, detail=f"Order with ID {order_id} not found.")
        return order

    def get_order(self, order_id: str, user_id: Optional[str] = None, is_admin: bool = False) -> Dict[str, Any]:
        order = self._get_row(order_id)
        if not is_admin and user_id and order.get("user_id") != user_id:
            logger.warning("orders: user_id=%s denied access to order_id=%s", user_id, order_id)
            raise HTTPException(status_code=403, detail="You do not have permission to view this order.")
        return self._attach_items([order])[0]

    # ========================================================================
    # Checkout
    # ========================================================================

    def _load_variants(self, items: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        ids = list(dict.fromkeys(i["variant_id"] for i in items))
        rows = self.db.select("product_variants", {"id": in_list(ids)}, columns="id,price,stock")
        return {v["id"]: v for v in rows}

    def _priced_lines(self, items: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], float]:
        """Check existence and stock; return lines priced from current variant prices."""
        variants = self._load_variants(items)
        missing = [i["variant_id"] for i in items if i["variant_id"] not in variants]
        if missing:
            raise HTTPException(status_code=404, detail=f"Product variants not found: {', '.join(missing)}")
        lines, total = [], 0.0
        for item in items:
            variant = variants[item["variant_id"]]
            quantity = item_quantity(item)
            stock = variant.get("stock") or 0
            if stock < quantity:
                raise HTTPException(
                    status_code=400,
                    detail=f"Insufficient stock for variant {item['variant_id']}. "
                           f"Available: {stock}, requested: {quantity}",
                )
            price = float(variant.get("price") or 0)
            total += price * quantity
            lines.append({"variant_id": item["variant_id"], "quantity": quantity, "unit_price": price})
        return lines, round(total, 2)

    def _insert_items(self, order: Dict[str, Any], lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        rows = [{**line, "order_id": order["id"], "discount_applied": 0} for line in lines]
        try:
            return self.db.insert("order_items", rows)
        except Exception:
            logger.warning("orders: rolling back order_id=%s after order item failure", order["id"])
            self.db.delete("orders", {"id": f"eq.{order['id']}"})
            raise

    def process_checkout(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        lines, total = self._priced_lines(data["items"])
        order = self.db.insert_one("orders", {
            "user_id": user_id,
            "status": OrderStatus.PENDING.value,
            "total_amount": total,
            "currency": config.CURRENCY_NAME,
            "shipping_address": data["shipping_address"],
            "billing_address": data["billing_address"],
        })
        items = self._insert_items(order, lines)
        logger.info("orders: method=process_checkout user_id=%s order_id=%s total=%s", user_id, order["id"], total)
        return {**order, "items": items}

    def validate_checkout(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        variants = self._load_variants(items)
        results = []
        for item in items:
            quantity = item_quantity(item)
            variant = variants.get(item["variant_id"])
            if variant is None:
                results.append({
                    "variant_id": item["variant_id"], "quantity": quantity, "inStock": False,
                    "message": "Product variant not found", "currentPrice": None,
                })
                continue
            stock = variant.get("stock") or 0
            in_stock = stock >= quantity
            results.append({
                "variant_id": item["variant_id"],
                "quantity": quantity,
                "inStock": in_stock,
                "message": "In stock" if in_stock else f"Insufficient stock. Available: {stock}",
                "currentPrice": float(variant.get("price") or 0),
            })

        if all(r["inStock"] for r in results):
            total = sum(r["quantity"] * r["currentPrice"] for r in results)
            return {"isValid": True, "items": results, "total": round(total, 2), "currency": config.CURRENCY_NAME}
        return {
            "isValid": False,
            "errors": [{"variant_id": r["variant_id"], "message": r["message"]} for r in results if not r["inStock"]],
        }

    # ========================================================================
    # Status changes
    # ========================================================================

    def cancel_order(self, order_id: str, user_id: Optional[str] = None, is_admin: bool = False) -> Dict[str, Any]:
        order = self.get_order(order_id, user_id, is_admin)
        if order["status"] not in CANCELLABLE:
            raise HTTPException(status_code=400, detail=f"Order in status '{order['status']}' cannot be cancelled.")
        updated = self.db.update(
            "orders", {"id": f"eq.{order_id}"}, {"status": OrderStatus.CANCELLED.value, "updated_at": _now()}
        )[0]
        logger.info("orders: order_id=%s cancelled by=%s", order_id, "admin" if is_admin else user_id)
        return updated

    def cancel_with_reason(self, order_id: str, reason: str) -> Dict[str, Any]:
        order = self._get_row(order_id)
        if order["status"] not in CANCELLABLE:
            raise HTTPException(status_code=400, detail=f"Order in status '{order['status']}' cannot be cancelled.")
        updated = self.db.update(
            "orders",
            {"id": f"eq.{order_id}"},
            {"status": OrderStatus.CANCELLED.value, "cancellation_reason": reason, "updated_at": _now()},
        )[0]
        logger.info("orders: order_id=%s cancelled by admin reason=%r", order_id, reason)
        return self._attach_items([updated])[0]

    def _is_cod(self, order_id: str) -> bool:
        payments = self.db.select("payments", {"order_id": f"eq.{order_id}", "limit": "1"}, columns="provider")
        return bool(payments) and payments[0].get("provider") == "cod"

    def update_status(self, order_id: str, status: str) -> Dict[str, Any]:
        order = self._get_row(order_id)
        cod_dispatch = (
            order["status"] == OrderStatus.PENDING.value
            and status == OrderStatus.SHIPPED.value
            and self._is_cod(order_id)
        )
        if not cod_dispatch:
            check_transition(order["status"], status)
        updated = self.db.update("orders", {"id": f"eq.{order_id}"}, {"status": status, "updated_at": _now()})[0]
        logger.info("orders: order_id=%s status %s -> %s", order_id, order["status"], status)
        self._notify(
            updated,
            "Order Status Updated",
            f"<p>Hello,</p><p>Order {order_id} status updated: {status}</p>",
        )
        return self._attach_items([updated])[0]

    def export_csv(self, filters: OrderFilters) -> str:
        orders = self.db.select("orders", filters.params())
        if not orders:
            return "No orders found matching your criteria"
        items = self.db.select("order_items", {"order_id": in_list(o["id"] for o in orders)})
        by_order: Dict[str, List[Dict]] = {}
        for item in items:
            by_order.setdefault(item["order_id"], []).append(item)
        for order in orders:
            order["items"] = by_order.get(order["id"], [])
        return orders_to_csv(orders)

    # ========================================================================
    # Notifications
    # ========================================================================

    def _customer_email(self, order: Dict[str, Any]) -> Optional[str]:
        if order.get("contact_email"):
            return order["contact_email"]
        if not order.get("user_id"):
            return None
        user = self.db.maybe_single("users", {"id": f"eq.{order['user_id']}"}, columns="email")
        return user.get("email") if user else None

    def _notify(self, order: Dict[str, Any], subject: str, html: str) -> None:
        if self.mailer is None:
            return
        email = self._customer_email(order)
        if not email:
            logger.warning("orders: no customer email for order_id=%s", order.get("id"))
            return
        try:
            self.mailer.send_email(email, subject, html)
        except MailerError as e:
            logger.error("orders: email failed order_id=%s subject=%r error=%s", order.get("id"), subject, e)

    # ========================================================================
    # Payment flows
    # ========================================================================

    def _create_order_record(self, payment: Dict[str, Any], total: float, user_id: Optional[str]) -> Dict[str, Any]:
        billing = payment.get("billing_address") if payment.get("use_different_billing_address") else None
        record = {
            "contact_first_name": payment["contact_first_name"],
            "contact_last_name": payment["contact_last_name"],
            "contact_email": payment["contact_email"],
            "contact_phone": payment.get("contact_phone"),
            "shipping_address": payment["shipping_address"],
            "billing_address": billing or payment["shipping_address"],
            "use_different_billing_address": payment.get("use_different_billing_address", False),
            "order_notes": payment.get("order_notes"),
            "total_amount": total,
            "discount_amount": 0,
            "shipping_cost": 0,
            "tax_amount": 0,
            "status": OrderStatus.PENDING.value,
            "currency": config.CURRENCY_NAME,
        }
        if user_id:
            record["user_id"] = user_id
        return self.db.insert_one("orders", record)

    def _place_order(self, payment: Dict[str, Any], user_id: Optional[str], provider: str) -> Tuple[Dict, float]:
        if payment.get("use_different_billing_address") and not payment.get("billing_address"):
            raise HTTPException(status_code=400, detail="Billing address is required")
        lines, total = self._priced_lines(payment["cart_items"])
        order = self._create_order_record(payment, total, user_id)
        self._insert_items(order, lines)
        self.db.insert_one("payments", {
            "order_id": order["id"],
            "provider": provider,
            "payment_id": order["id"],
            "status": "pending",
            "amount": total,
            "currency": config.CURRENCY_NAME,
        })
        logger.info(
            "orders: placed order_id=%s provider=%s total=%s user=%s items=%s",
            order["id"], provider, total, user_id or "guest", len(lines),
        )
        return order, total

    def create_payment(self, payment: Dict[str, Any], user_id: Optional[str], gateway: TylGateway) -> Dict[str, Any]:
        order, total = self._place_order(payment, user_id, "tyl")
        form = gateway.create_payment_form(payment, order["id"], total)
        return {
            "success": True,
            "order_id": order["id"],
            "total_amount": total,
            "currency": config.CURRENCY_NAME,
            "payment_form": form,
        }

    def create_cod_order(self, payment: Dict[str, Any], user_id: Optional[str]) -> Dict[str, Any]:
        order, total = self._place_order(payment, user_id, "cod")
        return {
            "success": True,
            "order_id": order["id"],
            "total_amount": total,
            "currency": config.CURRENCY_NAME,
            "message": "COD order created successfully",
        }

    def handle_webhook(self, notification: Dict[str, Any], gateway: TylGateway) -> Dict[str, Any]:
        order_id = notification.get("oid")
        gateway_status = notification.get("status", "")
        approval = parse_approval_code(notification.get("approval_code"))
        logger.info("orders: webhook order_id=%s status=%s ref=%s approval=%s", order_id, gateway_status,
                    notification.get("refnumber"), approval["message"])
        if not order_id:
            raise HTTPException(status_code=400, detail="Missing order id")
        if not gateway.verify_notification(notification):
            raise HTTPException(status_code=400, detail="Invalid webhook authentication")

        self.db.update("payments", {"order_id": f"eq.{order_id}"}, {
            "status": payment_status_for(gateway_status),
            "approval_code": notification.get("approval_code"),
            "reference_number": notification.get("refnumber"),
            "transaction_datetime": notification.get("txndate_processed") or _now(),
            "response_hash": notification.get("notification_hash"),
            "processed_at": _now(),
            "payment_method": notification.get("ccbrand"),
            "card_brand": notification.get("ccbrand"),
            "failure_reason": notification.get("fail_reason"),
        })
        order_status = order_status_for(gateway_status)
        values: Dict[str, Any] = {"status": order_status, "updated_at": _now()}
        if order_status == OrderStatus.CANCELLED.value and notification.get("fail_reason"):
            values["cancellation_reason"] = f"Payment {gateway_status.lower()}: {notification['fail_reason']}"
        self.db.update("orders", {"id": f"eq.{order_id}"}, values)
        return {"success": True}

    def payment_redirect(self, data: Dict[str, Any], success: bool) -> str:
        """Frontend URL for the customer returning from the gateway; emails them best-effort."""
        base = config.FRONTEND_BASE_URL.rstrip("/")
        order_id = data.get("oid") or ""
        if success:
            url = f"{base}/payment/success?" + urlencode(
                {"orderId": order_id, "status": data.get("status", ""), "ref": data.get("refnumber", "")}
            )
            subject, html = "Order Placed Successfully", "<p>Order has been placed successfully</p>"
        else:
            url = f"{base}/payment/failure?" + urlencode({
                "orderId": order_id,
                "status": data.get("status", ""),
                "reason": data.get("fail_reason") or "Payment failed",
            })
            subject, html = "Order Failure Notification", "<p>There was a failure during payment</p>"

        order = self.db.maybe_single("orders", {"id": f"eq.{order_id}"}) if order_id else None
        if order is None:
            logger.warning("orders: payment redirect for unknown order_id=%s", order_id)
            return url
        self._notify(order, subject, html)
        return url
