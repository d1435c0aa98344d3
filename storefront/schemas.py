"""
Shared Pydantic models and enums used by several routers.

Feature-specific request bodies live next to their router.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    EDITOR = "editor"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DiscountType(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class ImageType(str, Enum):
    MAIN = "main"
    GALLERY = "gallery"
    SPIN_360 = "360"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PageMeta(BaseModel):
    """Pagination block returned alongside list results."""
    page: int
    limit: Optional[int]
    totalItems: int
    totalPages: int


class Paginated(BaseModel):
    items: List[Dict[str, Any]]
    meta: PageMeta


def page_meta(page: int, limit: Optional[int], total: int) -> Dict[str, Any]:
    """Meta dict for a page; without a limit everything is one page."""
    if not limit:
        return {"page": page, "limit": None, "totalItems": total, "totalPages": 1}
    return {
        "page": page,
        "limit": limit,
        "totalItems": total,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


def page_range(page: int, limit: int) -> Dict[str, str]:
    """PostgREST limit/offset params for a 1-based page."""
    page = max(page, 1)
    return {"limit": str(limit), "offset": str((page - 1) * limit)}


class CheckoutAddress(BaseModel):
    """Address snapshot stored on an order placed through /orders/checkout."""
    model_config = ConfigDict(extra="forbid")

    recipient_name: str = Field(..., min_length=1)
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone: Optional[str] = None
