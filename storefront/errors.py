"""
Global exception handlers.

Every error leaves the service in one JSON shape:
  {"statusCode", "message", "error", "details", "timestamp", "path"}
Database error codes from PostgREST are translated to HTTP statuses here, so
services can let PostgrestError propagate.
"""

import logging
import traceback
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.config import is_production
from storefront.supabase_client import AuthApiError, PostgrestError

logger = logging.getLogger("storefront.errors")

# Postgres / PostgREST error code -> (status, message)
DB_ERROR_MAP: Dict[str, tuple] = {
    "23503": (400, "Referenced resource does not exist"),
    "23502": (400, "Required fields are missing"),
    "23505": (409, "Resource already exists"),
    "PGRST116": (404, "Resource not found"),
    "42501": (403, "Permission denied to access this resource"),
}


def _reason(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def error_body(
    request: Request, status: int, message: Any, details: Any = None, error: Optional[str] = None
) -> Dict[str, Any]:
    return {
        "statusCode": status,
        "message": message,
        "error": error or _reason(status),
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
    }


def map_database_error(exc: PostgrestError) -> tuple:
    """(status, message) for a PostgREST error code."""
    if exc.code in DB_ERROR_MAP:
        return DB_ERROR_MAP[exc.code]
    return 500, "Database Error"


async def postgrest_error_handler(request: Request, exc: PostgrestError) -> JSONResponse:
    status, message = map_database_error(exc)
    details = {"code": exc.code, "details": exc.details, "hint": exc.hint}
    if status >= 500:
        logger.error("Database error on %s %s: code=%s %s", request.method, request.url.path, exc.code, exc.message)
        details["message"] = exc.message if not is_production() else None
    else:
        logger.info("Database error on %s %s: code=%s %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=status, content=error_body(request, status, message, details))


async def auth_error_handler(request: Request, exc: AuthApiError) -> JSONResponse:
    status = exc.status if 400 <= exc.status < 600 else 400
    logger.info("Auth error on %s: code=%s %s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=status, content=error_body(request, status, exc.message, {"code": exc.code}))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s %s: %s", exc.status_code, request.method, request.url.path, exc.detail)
    else:
        logger.info("HTTP %s on %s %s: %s", exc.status_code, request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "form"))
        messages.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return JSONResponse(status_code=400, content=error_body(request, 400, messages))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unhandled exceptions and return 500; stack details only outside production."""
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error("Unhandled exception: %s\n%s", exc, tb)
    details = None if is_production() else {"type": type(exc).__name__, "message": str(exc), "stack": tb}
    return JSONResponse(status_code=500, content=error_body(request, 500, "Internal server error", details))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PostgrestError, postgrest_error_handler)
    app.add_exception_handler(AuthApiError, auth_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
