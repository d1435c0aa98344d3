"""Contact form endpoint and its admin review endpoints."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field

from storefront.auth import CurrentUser, require_admin
from storefront.contact_messages import ContactMessageService
from storefront.supabase_client import SupabaseClient, get_supabase

router = APIRouter(prefix="/contact-messages", tags=["contact-messages"])
admin_router = APIRouter(prefix="/admin/contact-messages", tags=["admin-contact-messages"])

MessageStatus = Literal["new", "read", "archived", "replied"]


class ContactMessageCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    message_text: str = Field(..., min_length=1, max_length=5000)


class ContactMessageUpdate(BaseModel):
    status: Optional[MessageStatus] = None
    admin_notes: Optional[str] = Field(None, max_length=5000)


def get_contact_service(supabase: SupabaseClient = Depends(get_supabase)) -> ContactMessageService:
    return ContactMessageService(supabase)


@router.post("", status_code=201)
def create_contact_message(
    body: ContactMessageCreate,
    service: ContactMessageService = Depends(get_contact_service),
):
    return service.create(body.model_dump())


@admin_router.get("")
def list_contact_messages(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[MessageStatus] = None,
    search: Optional[str] = None,
    user: CurrentUser = Depends(require_admin),
    service: ContactMessageService = Depends(get_contact_service),
):
    return service.list_admin(page, limit, status, search)


@admin_router.put("/{message_id}")
def update_contact_message(
    message_id: str,
    body: ContactMessageUpdate,
    user: CurrentUser = Depends(require_admin),
    service: ContactMessageService = Depends(get_contact_service),
):
    return service.update_admin(message_id, body.model_dump(exclude_unset=True))


@admin_router.delete("/{message_id}")
def delete_contact_message(
    message_id: str,
    user: CurrentUser = Depends(require_admin),
    service: ContactMessageService = Depends(get_contact_service),
):
    return service.remove_admin(message_id)
