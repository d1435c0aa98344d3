"""
Storefront API - FastAPI application.

Routers are mounted per feature; data lives in Supabase (PostgREST, GoTrue
and Storage). Run with `python -m storefront.main` or
`uvicorn storefront.main:app`.
"""
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse

from storefront import __version__, config, uploads
from storefront import (
    auth_api,
    cart_api,
    categories_api,
    contact_messages_api,
    discounts_api,
    orders_api,
    product_tags_api,
    products_api,
    users_api,
    wishlist_api,
)
from storefront.database import get_db, ping
from storefront.errors import register_exception_handlers
from storefront.logging_config import configure_logging, get_logger
from storefront.supabase_client import SupabaseClient, get_supabase_client

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting storefront API env=%s", config.get_environment())
    try:
        uploads.ensure_uploads_dir()
        uploads.cleanup_old_files()
    except OSError as e:
        logger.warning("Uploads directory unavailable: %s", e)
    yield
    logger.info("Storefront API shutting down")


app = FastAPI(
    title="Storefront API",
    description="E-commerce storefront backend: catalogue, cart, orders and payments over Supabase",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class LatencyLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration for every non-OPTIONS request."""

    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        if request.method == "OPTIONS":
            return await call_next(request)
        t0 = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - t0) * 1000
        logger.info(
            "[LATENCY] %s %s -> %d  %.1fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        return response


app.add_middleware(LatencyLoggingMiddleware)

register_exception_handlers(app)

app.include_router(auth_api.router)
app.include_router(categories_api.router)
app.include_router(products_api.router)
app.include_router(product_tags_api.router)
app.include_router(cart_api.router)
app.include_router(wishlist_api.router)
app.include_router(orders_api.router)
app.include_router(discounts_api.router)
app.include_router(users_api.router)
app.include_router(users_api.admin_router)
app.include_router(contact_messages_api.router)
app.include_router(contact_messages_api.admin_router)


def _platform_client() -> Optional[SupabaseClient]:
    return get_supabase_client()


@app.get("/")
def root():
    return {"service": "Storefront API", "version": __version__, "status": "operational"}


@app.get("/health")
def health_check(supabase: Optional[SupabaseClient] = Depends(_platform_client), db=Depends(get_db)):
    """Platform reachability plus a direct database ping when DATABASE_URL is set."""
    health = {"service": "healthy", "supabase": "unknown", "database": "not configured"}

    if supabase is None:
        health["supabase"] = "not configured"
        health["service"] = "degraded"
    else:
        try:
            supabase.select("categories", {"limit": "1"}, columns="id")
            health["supabase"] = "healthy"
        except Exception as e:
            health["supabase"] = f"unhealthy: {e}"
            health["service"] = "degraded"

    if db is not None:
        error = ping(db)
        health["database"] = "healthy" if error is None else f"unhealthy: {error}"
        if error is not None:
            health["service"] = "degraded"

    return health


if __name__ == "__main__":
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=config.PORT, reload=not config.is_production())
