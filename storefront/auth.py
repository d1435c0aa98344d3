"""
Authentication: provider calls and request guards.

Tokens are issued and validated by Supabase Auth (GoTrue). A request is
authenticated when its bearer token resolves to a user; role checks read the
`role` column of the public `users` table.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Header, HTTPException

from storefront import config
from storefront.mailer import Mailer
from storefront.supabase_client import AuthApiError, SupabaseClient, get_supabase

logger = logging.getLogger("storefront.auth")


@dataclass
class CurrentUser:
    id: str
    email: Optional[str]
    token: str
    role: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# ============================================================================
# Guards
# ============================================================================

def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _resolve_user(supabase: SupabaseClient, token: str) -> Optional[CurrentUser]:
    try:
        data = supabase.get_user(token)
    except AuthApiError as e:
        logger.info("auth: token rejected status=%s code=%s", e.status, e.code)
        return None
    if not data or not data.get("id"):
        return None
    return CurrentUser(
        id=data["id"],
        email=data.get("email"),
        token=token,
        user_metadata=data.get("user_metadata") or {},
    )


def get_current_user(
    authorization: Optional[str] = Header(None),
    supabase: SupabaseClient = Depends(get_supabase),
) -> CurrentUser:
    """Dependency: the authenticated user, or 401."""
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing or invalid authentication token")
    user = _resolve_user(supabase, token)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def optional_user(
    authorization: Optional[str] = Header(None),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Optional[CurrentUser]:
    """Dependency: the authenticated user when a valid token is sent, else None."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    return _resolve_user(supabase, token)


def fetch_role(supabase: SupabaseClient, user_id: str) -> Optional[str]:
    row = supabase.maybe_single("users", {"id": f"eq.{user_id}"}, columns="role")
    return row.get("role") if row else None


def require_roles(*roles: str) -> Callable[..., CurrentUser]:
    """Dependency factory: authenticated user whose `users.role` is one of `roles`."""

    def _guard(
        user: CurrentUser = Depends(get_current_user),
        supabase: SupabaseClient = Depends(get_supabase),
    ) -> CurrentUser:
        try:
            role = fetch_role(supabase, user.id)
        except Exception as e:
            logger.warning("auth: role lookup failed user_id=%s error=%s", user.id, e)
            raise HTTPException(status_code=403, detail="Failed to verify user role")
        if role not in roles:
            raise HTTPException(
                status_code=403,
                detail=f"Access denied. Required role: {' or '.join(roles)}. Your role: {role or 'none'}",
            )
        user.role = role
        return user

    return _guard


require_admin = require_roles("admin")
require_customer = require_roles("customer", "admin")


# ============================================================================
# Provider calls
# ============================================================================

_FRIENDLY_ERRORS = {
    "email_address_invalid": (400, "The email address provided is invalid. Please enter a valid email."),
    "user_already_registered": (409, "This email is already registered. Please sign in or use a different email."),
    "user_already_exists": (409, "This email is already registered. Please sign in or use a different email."),
    "invalid_credentials": (401, "Invalid email or password. Please check your credentials and try again."),
    "invalid_grant": (401, "Invalid email or password. Please check your credentials and try again."),
    "invalid_token": (401, "Your session has expired. Please sign in again."),
    "expired_token": (401, "Your session has expired. Please sign in again."),
    "bad_jwt": (401, "Your session has expired. Please sign in again."),
}


def auth_http_error(exc: AuthApiError) -> HTTPException:
    """Translate a provider error into a user-facing HTTP error."""
    status, message = _FRIENDLY_ERRORS.get(exc.code or "", (400, exc.message))
    return HTTPException(status_code=status, detail=message)


class AuthService:
    def __init__(self, supabase: SupabaseClient, mailer: Optional[Mailer] = None) -> None:
        self.supabase = supabase
        self.mailer = mailer

    def sign_up(self, email: str, password: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        metadata = dict(data or {})
        metadata.setdefault("name", email.split("@")[0])
        try:
            result = self.supabase.sign_up(email, password, metadata)
        except AuthApiError as e:
            logger.info("auth: method=sign_up email=%s result=error code=%s", email, e.code)
            raise auth_http_error(e)
        logger.info("auth: method=sign_up email=%s result=success", email)
        self._send_welcome(email, metadata["name"])
        return result

    def _send_welcome(self, email: str, name: str) -> None:
        if self.mailer is None:
            return
        first_name = (name or "").split(" ")[0] or email.split("@")[0]
        try:
            self.mailer.send_welcome_email(email, name, first_name)
        except Exception as e:
            logger.warning("auth: welcome email failed email=%s error=%s", email, e)

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        try:
            return self.supabase.sign_in_with_password(email, password)
        except AuthApiError as e:
            logger.info("auth: method=sign_in email=%s result=error code=%s", email, e.code)
            raise auth_http_error(e)

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        try:
            return self.supabase.refresh_session(refresh_token)
        except AuthApiError as e:
            raise auth_http_error(e)

    def magic_link(self, email: str) -> Dict[str, Any]:
        try:
            self.supabase.sign_in_with_otp(email, redirect_to=f"{config.FRONTEND_BASE_URL}/auth/callback")
        except AuthApiError as e:
            raise auth_http_error(e)
        return {"message": "Magic link sent. Please check your email."}

    def reset_password(self, email: str) -> Dict[str, Any]:
        try:
            self.supabase.reset_password_for_email(
                email, redirect_to=f"{config.FRONTEND_BASE_URL}/reset-password"
            )
        except AuthApiError as e:
            raise auth_http_error(e)
        return {"message": "Password reset email sent. Please check your email."}

    def sign_out(self, token: str) -> Dict[str, Any]:
        try:
            self.supabase.sign_out(token)
        except AuthApiError as e:
            raise auth_http_error(e)
        return {"message": "Signed out successfully"}

    def get_user(self, token: str, refresh_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Return the user behind `token`. When the token has expired and a refresh
        token is supplied, refresh the session and return the new session too.
        """
        try:
            return {"user": self.supabase.get_user(token)}
        except AuthApiError as e:
            if not refresh_token:
                raise auth_http_error(e)
        session = self.refresh(refresh_token)
        return {"user": session.get("user"), "session": session}

    def oauth_redirect_url(self, provider: str) -> str:
        return self.supabase.authorize_url(provider, f"{config.FRONTEND_BASE_URL}/auth/callback")
