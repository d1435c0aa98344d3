"""Order, checkout and payment gateway endpoints."""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront import config
from storefront.auth import CurrentUser, optional_user, require_admin, require_customer
from storefront.mailer import Mailer, get_mailer
from storefront.orders import OrderFilters, OrderService
from storefront.payments import TylGateway, get_tyl_gateway
from storefront.schemas import CheckoutAddress, OrderStatus, SortOrder
from storefront.supabase_client import SupabaseClient, get_supabase

logger = logging.getLogger("storefront.orders_api")

router = APIRouter(prefix="/orders", tags=["orders"])

ORDER_SORT_PATTERN = "^(created_at|updated_at|total_amount|status)$"


# ============================================================================
# Request Schemas
# ============================================================================

class LineQuantity(BaseModel):
    quantity: int = Field(..., ge=1)


class CheckoutItem(BaseModel):
    variant_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    property: Optional[LineQuantity] = None


class CheckoutRequest(BaseModel):
    shipping_address: CheckoutAddress
    billing_address: CheckoutAddress
    items: List[CheckoutItem] = Field(..., min_length=1)
    payment_method_id: Optional[str] = None
    session_id: Optional[str] = None


class ValidateCheckoutRequest(BaseModel):
    shipping_address: Optional[CheckoutAddress] = None
    billing_address: Optional[CheckoutAddress] = None
    items: List[CheckoutItem] = Field(..., min_length=1)
    session_id: Optional[str] = None


class StatusUpdate(BaseModel):
    status: OrderStatus


class CancelReason(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PaymentAddress(BaseModel):
    model_config = ConfigDict(extra="forbid")

    street_address: str = Field(..., min_length=1, max_length=96)
    address_line_2: Optional[str] = Field(None, max_length=96)
    city: str = Field(..., min_length=1, max_length=96)
    state: Optional[str] = Field(None, max_length=96)
    postal_code: str = Field(..., min_length=1, max_length=24)
    country: str = Field(..., pattern=r"^[A-Z]{2}$", description="2-letter ISO code")
    country_name: str = Field(..., min_length=1, max_length=96)


class PaymentItem(BaseModel):
    variant_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)


class PaymentRequest(BaseModel):
    contact_first_name: str = Field(..., min_length=1, max_length=96)
    contact_last_name: str = Field(..., min_length=1, max_length=96)
    contact_email: EmailStr
    contact_phone: Optional[str] = Field(None, max_length=32)
    shipping_address: PaymentAddress
    billing_address: Optional[PaymentAddress] = None
    use_different_billing_address: bool = False
    cart_items: List[PaymentItem] = Field(..., min_length=1)
    order_notes: Optional[str] = Field(None, max_length=1024)


# ============================================================================
# Dependencies
# ============================================================================

def get_order_service(
    supabase: SupabaseClient = Depends(get_supabase),
    mailer: Mailer = Depends(get_mailer),
) -> OrderService:
    return OrderService(supabase, mailer)


def order_filters(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sortBy: str = Query("created_at", pattern=ORDER_SORT_PATTERN),
    sortOrder: SortOrder = SortOrder.DESC,
    status: Optional[OrderStatus] = None,
    user_id: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> OrderFilters:
    return OrderFilters(
        page=page,
        limit=limit,
        sort_by=sortBy,
        sort_order=sortOrder.value,
        status=status.value if status else None,
        user_id=user_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
    )


async def _gateway_payload(request: Request) -> Dict[str, Any]:
    """The gateway posts form-encoded fields; JSON is accepted as well."""
    if request.headers.get("content-type", "").startswith("application/json"):
        return await request.json()
    form = await request.form()
    return dict(form)


# ============================================================================
# Checkout
# ============================================================================

@router.post("/checkout", status_code=201)
def process_checkout(
    body: CheckoutRequest,
    user: CurrentUser = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return service.process_checkout(user.id, body.model_dump())


@router.post("/checkout/validate")
def validate_checkout(body: ValidateCheckoutRequest, service: OrderService = Depends(get_order_service)):
    return service.validate_checkout([i.model_dump() for i in body.items])


@router.get("")
def list_my_orders(
    filters: OrderFilters = Depends(order_filters),
    user: CurrentUser = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return service.list_user_orders(user.id, filters)


# ============================================================================
# Admin (registered before /{order_id})
# ============================================================================

@router.get("/admin")
def list_all_orders(
    filters: OrderFilters = Depends(order_filters),
    user: CurrentUser = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return service.list_all_orders(filters)


@router.get("/admin/export")
def export_orders(
    filters: OrderFilters = Depends(order_filters),
    user: CurrentUser = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    body = service.export_csv(filters)
    filename = f"orders-export-{datetime.now(timezone.utc).date().isoformat()}"
    if filters.status:
        filename += f"-{filters.status}"
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}.csv"'},
    )


@router.put("/admin/{order_id}/status")
def update_order_status(
    order_id: str,
    body: StatusUpdate,
    user: CurrentUser = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return service.update_status(order_id, body.status.value)


@router.put("/admin/{order_id}/cancel")
def cancel_order_with_reason(
    order_id: str,
    body: CancelReason,
    user: CurrentUser = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return service.cancel_with_reason(order_id, body.reason)


# ============================================================================
# Payment gateway
# ============================================================================

@router.post("/create-payment")
def create_payment(
    body: PaymentRequest,
    user: Optional[CurrentUser] = Depends(optional_user),
    gateway: TylGateway = Depends(get_tyl_gateway),
    service: OrderService = Depends(get_order_service),
):
    return service.create_payment(body.model_dump(), user.id if user else None, gateway)


@router.post("/create-cod-order")
def create_cod_order(
    body: PaymentRequest,
    user: Optional[CurrentUser] = Depends(optional_user),
    service: OrderService = Depends(get_order_service),
):
    return service.create_cod_order(body.model_dump(), user.id if user else None)


@router.post("/payment/webhook")
async def payment_webhook(
    request: Request,
    gateway: TylGateway = Depends(get_tyl_gateway),
    service: OrderService = Depends(get_order_service),
):
    payload = await _gateway_payload(request)
    return await run_in_threadpool(service.handle_webhook, payload, gateway)


async def _payment_redirect(request: Request, service: OrderService, success: bool) -> RedirectResponse:
    data = await _gateway_payload(request)
    try:
        url = await run_in_threadpool(service.payment_redirect, data, success)
    except Exception:
        logger.exception("orders: payment redirect failed order_id=%s", data.get("oid"))
        url = f"{config.FRONTEND_BASE_URL.rstrip('/')}/payment/error?error=redirect_failed"
    return RedirectResponse(url, status_code=302)


@router.post("/payment/success")
async def payment_success(request: Request, service: OrderService = Depends(get_order_service)):
    return await _payment_redirect(request, service, success=True)


@router.post("/payment/failure")
async def payment_failure(request: Request, service: OrderService = Depends(get_order_service)):
    return await _payment_redirect(request, service, success=False)


# ============================================================================
# Single order
# ============================================================================

@router.get("/{order_id}")
def get_order(
    order_id: str,
    user: CurrentUser = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return service.get_order(order_id, user.id, user.is_admin)


@router.put("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    user: CurrentUser = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return service.cancel_order(order_id, user.id, user.is_admin)
