"""
Runtime configuration for the storefront API.

Values come from the environment (a local .env file is loaded first).
Anything that tests need to flip at runtime is read through an accessor
instead of a module constant.
"""

import os

from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

DATABASE_URL: str = os.getenv("DATABASE_URL") or ""

PORT: int = int(os.getenv("PORT", "3000"))

FRONTEND_BASE_URL: str = os.getenv("FRONTEND_BASE_URL", "http://localhost:5173")
BACKEND_BASE_URL: str = os.getenv("BACKEND_BASE_URL", "http://localhost:3000")

CURRENCY_NAME: str = os.getenv("CURRENCY_NAME", "GBP")
CURRENCY_ISO_CODE: str = os.getenv("CURRENCY_ISO_CODE", "826")

# Tyl (Lloyds / Fiserv) hosted payment page
TYL_STORE_NAME: str = os.getenv("TYL_STORE_NAME", "")
TYL_SHARED_SECRET: str = os.getenv("TYL_SHARED_SECRET", "")
TYL_PAYMENT_URL: str = os.getenv(
    "TYL_PAYMENT_URL", "https://test.ipg-online.com/connect/gateway/processing"
)

# Outbound email
MAIL_PROVIDER: str = os.getenv("MAIL_PROVIDER", "sendgrid").lower()
SENDGRID_API_KEY: str = os.getenv("SENDGRID_API_KEY", "")
MAILERSEND_API_KEY: str = os.getenv("MAILERSEND_API_KEY", "")
MAIL_FROM_ADDRESS: str = os.getenv("MAIL_FROM_ADDRESS") or os.getenv("EMAIL_FROM", "no-reply@yourdomain.com")
MAIL_FROM_NAME: str = os.getenv("MAIL_FROM_NAME", "Storefront")

PUBLIC_WEBSITE_URL: str = os.getenv("PUBLIC_WEBSITE_URL", FRONTEND_BASE_URL)
PUBLIC_SUPPORT_EMAIL: str = os.getenv("PUBLIC_SUPPORT_EMAIL", "support@yourdomain.com")
PUBLIC_SUPPORT_PHONE: str = os.getenv("PUBLIC_SUPPORT_PHONE", "")

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


def get_environment() -> str:
    """Return the deployment environment name ('development' when unset)."""
    return (os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development").lower()


def is_production() -> bool:
    return get_environment() == "production"


def is_mail_sandbox() -> bool:
    """True when outbound mail should only be logged."""
    return os.getenv("MAIL_SANDBOX", "false").lower() in ("1", "true", "yes")


def get_cors_origins() -> list:
    """Allowed CORS origins: everything in development, CORS_ORIGINS in production."""
    if not is_production():
        return ["*"]
    raw = os.getenv("CORS_ORIGINS", FRONTEND_BASE_URL)
    return [o.strip() for o in raw.split(",") if o.strip()]


def get_uploads_dir() -> str:
    """Local scratch directory for multipart uploads."""
    override = os.getenv("UPLOADS_DIR")
    if override:
        return override
    if is_production():
        return "/tmp/uploads"
    return os.path.join(os.getcwd(), "uploads")
