"""Auth endpoints: sign-up, sign-in, session refresh and OAuth redirects."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, Field

from storefront.auth import AuthService, CurrentUser, get_current_user
from storefront.mailer import Mailer, get_mailer
from storefront.supabase_client import SupabaseClient, get_supabase

router = APIRouter(prefix="/auth", tags=["auth"])


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    data: Optional[Dict[str, Any]] = Field(None, description="User metadata, e.g. {'name': 'Ada'}")


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class EmailRequest(BaseModel):
    email: EmailStr


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


def get_auth_service(
    supabase: SupabaseClient = Depends(get_supabase),
    mailer: Mailer = Depends(get_mailer),
) -> AuthService:
    return AuthService(supabase, mailer)


@router.post("/signup", status_code=201)
def signup(body: SignUpRequest, service: AuthService = Depends(get_auth_service)):
    return service.sign_up(body.email, body.password, body.data)


@router.post("/signin")
def signin(body: SignInRequest, service: AuthService = Depends(get_auth_service)):
    return service.sign_in(body.email, body.password)


@router.post("/refresh")
def refresh(body: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    return service.refresh(body.refresh_token)


@router.post("/magic-link")
def magic_link(body: EmailRequest, service: AuthService = Depends(get_auth_service)):
    return service.magic_link(body.email)


@router.post("/reset-password")
def reset_password(body: EmailRequest, service: AuthService = Depends(get_auth_service)):
    return service.reset_password(body.email)


@router.post("/signout")
def signout(
    user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return service.sign_out(user.token)


@router.get("/user")
def current_user(
    authorization: Optional[str] = Header(None),
    x_refresh_token: Optional[str] = Header(None),
    service: AuthService = Depends(get_auth_service),
):
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authentication token")
    return service.get_user(authorization[7:].strip(), x_refresh_token)


@router.get("/google")
def google_login(service: AuthService = Depends(get_auth_service)):
    return RedirectResponse(service.oauth_redirect_url("google"), status_code=302)


@router.get("/facebook")
def facebook_login(service: AuthService = Depends(get_auth_service)):
    return RedirectResponse(service.oauth_redirect_url("facebook"), status_code=302)
