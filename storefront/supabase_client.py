"""
Thin HTTP client for the Supabase platform: PostgREST rows, GoTrue auth and
object storage, all over one httpx.Client.

Row filters use PostgREST query syntax directly, e.g.
  {"id": "eq.<uuid>", "order": "created_at.desc", "limit": "10"}
Pass a list of (key, value) tuples instead of a dict when the same column
needs two filters (gte + lte).
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import quote

import httpx
from fastapi import HTTPException

from storefront import config

logger = logging.getLogger("storefront.supabase")

Params = Union[Dict[str, Any], List[Tuple[str, Any]], None]

_client: Optional["SupabaseClient"] = None


# ============================================================================
# Errors
# ============================================================================

class PostgrestError(Exception):
    """Non-2xx response from the REST (PostgREST) API."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Any = None,
        hint: Any = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.status_code = status_code


class AuthApiError(Exception):
    """Non-2xx response from the GoTrue auth API."""

    def __init__(self, message: str, status: int = 400, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class StorageApiError(Exception):
    """Non-2xx response from the storage API."""

    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


# ============================================================================
# Filter helpers
# ============================================================================

_PLAIN_VALUE = re.compile(r"^[\w\-.@:]+$")


def in_list(values: Iterable[Any]) -> str:
    """Build an `in.(...)` filter; values with reserved characters are quoted."""
    parts = []
    for v in values:
        s = str(v)
        if not _PLAIN_VALUE.match(s):
            s = '"' + s.replace('"', '\\"') + '"'
        parts.append(s)
    return "in.(" + ",".join(parts) + ")"


def _as_pairs(params: Params) -> List[Tuple[str, Any]]:
    if params is None:
        return []
    if isinstance(params, dict):
        return [(k, v) for k, v in params.items() if v is not None]
    return [(k, v) for k, v in params if v is not None]


def _parse_content_range(header: Optional[str]) -> int:
    # "0-9/42" or "*/0"
    if not header or "/" not in header:
        return 0
    total = header.split("/", 1)[1]
    return int(total) if total.isdigit() else 0


# ============================================================================
# Client
# ============================================================================

class SupabaseClient:
    """REST, auth and storage access for one Supabase project."""

    def __init__(
        self,
        base_url: str,
        key: str,
        service_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._anon_key = key
        server_key = service_key or key
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={
                "apikey": server_key,
                "Authorization": f"Bearer {server_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # REST
    # ------------------------------------------------------------------

    @staticmethod
    def _check_rest(resp: httpx.Response) -> None:
        if resp.is_success:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        raise PostgrestError(
            body.get("message") or resp.text or f"HTTP {resp.status_code}",
            code=body.get("code"),
            details=body.get("details"),
            hint=body.get("hint"),
            status_code=resp.status_code,
        )

    def select(self, table: str, params: Params = None, columns: str = "*") -> List[Dict[str, Any]]:
        """GET rows matching the filters."""
        query = [("select", columns)] + _as_pairs(params)
        resp = self._client.get(f"/rest/v1/{table}", params=query)
        self._check_rest(resp)
        rows = resp.json()
        return rows if isinstance(rows, list) else []

    def select_page(
        self, table: str, params: Params = None, columns: str = "*"
    ) -> Tuple[List[Dict[str, Any]], int]:
        """GET rows plus the exact total count (ignoring limit/offset)."""
        query = [("select", columns)] + _as_pairs(params)
        resp = self._client.get(
            f"/rest/v1/{table}", params=query, headers={"Prefer": "count=exact"}
        )
        self._check_rest(resp)
        rows = resp.json()
        return (rows if isinstance(rows, list) else []), _parse_content_range(
            resp.headers.get("content-range")
        )

    def count(self, table: str, params: Params = None) -> int:
        _, total = self.select_page(table, _as_pairs(params) + [("limit", "1")], columns="id")
        return total

    def single(self, table: str, params: Params = None, columns: str = "*") -> Dict[str, Any]:
        """Exactly one row, else PostgrestError PGRST116."""
        rows = self.select(table, params, columns)
        if len(rows) != 1:
            raise PostgrestError(
                "JSON object requested, multiple (or no) rows returned",
                code="PGRST116",
                details=f"The result contains {len(rows)} rows",
                status_code=406,
            )
        return rows[0]

    def maybe_single(self, table: str, params: Params = None, columns: str = "*") -> Optional[Dict[str, Any]]:
        rows = self.select(table, params, columns)
        if len(rows) > 1:
            raise PostgrestError(
                "JSON object requested, multiple rows returned",
                code="PGRST116",
                details=f"The result contains {len(rows)} rows",
                status_code=406,
            )
        return rows[0] if rows else None

    def insert(
        self,
        table: str,
        values: Union[Dict[str, Any], List[Dict[str, Any]]],
        upsert: bool = False,
        on_conflict: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """POST one or many rows; returns the stored representation."""
        prefer = "return=representation"
        if upsert:
            prefer += ",resolution=merge-duplicates"
        params = {"on_conflict": on_conflict} if on_conflict else None
        resp = self._client.post(
            f"/rest/v1/{table}", json=values, params=params, headers={"Prefer": prefer}
        )
        self._check_rest(resp)
        return resp.json() if resp.content else []

    def insert_one(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        rows = self.insert(table, values)
        return rows[0] if rows else {}

    def update(self, table: str, params: Params, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        """PATCH rows matching the filters; returns the updated rows."""
        resp = self._client.patch(
            f"/rest/v1/{table}",
            params=_as_pairs(params),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        self._check_rest(resp)
        return resp.json() if resp.content else []

    def delete(self, table: str, params: Params) -> List[Dict[str, Any]]:
        """DELETE rows matching the filters; returns the deleted rows."""
        resp = self._client.delete(
            f"/rest/v1/{table}",
            params=_as_pairs(params),
            headers={"Prefer": "return=representation"},
        )
        self._check_rest(resp)
        return resp.json() if resp.content else []

    def rpc(self, fn: str, args: Optional[Dict[str, Any]] = None) -> Any:
        resp = self._client.post(f"/rest/v1/rpc/{fn}", json=args or {})
        self._check_rest(resp)
        return resp.json() if resp.content else None

    # ------------------------------------------------------------------
    # Auth (GoTrue)
    # ------------------------------------------------------------------

    def _auth(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
        admin: bool = False,
    ) -> Dict[str, Any]:
        headers = None
        if not admin:
            headers = {"apikey": self._anon_key, "Authorization": f"Bearer {token or self._anon_key}"}
        resp = self._client.request(
            method, f"/auth/v1/{path}", json=json, params=params, headers=headers
        )
        if resp.is_success:
            return resp.json() if resp.content else {}
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        code = body.get("error_code") or body.get("error")
        message = (
            body.get("msg")
            or body.get("error_description")
            or body.get("message")
            or resp.text
            or f"HTTP {resp.status_code}"
        )
        raise AuthApiError(message, status=resp.status_code, code=code)

    def sign_up(self, email: str, password: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._auth("POST", "signup", json={"email": email, "password": password, "data": data or {}})

    def sign_in_with_password(self, email: str, password: str) -> Dict[str, Any]:
        return self._auth(
            "POST", "token", json={"email": email, "password": password},
            params={"grant_type": "password"},
        )

    def refresh_session(self, refresh_token: str) -> Dict[str, Any]:
        return self._auth(
            "POST", "token", json={"refresh_token": refresh_token},
            params={"grant_type": "refresh_token"},
        )

    def sign_in_with_otp(self, email: str, redirect_to: Optional[str] = None) -> Dict[str, Any]:
        params = {"redirect_to": redirect_to} if redirect_to else None
        return self._auth("POST", "otp", json={"email": email, "create_user": True}, params=params)

    def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> Dict[str, Any]:
        params = {"redirect_to": redirect_to} if redirect_to else None
        return self._auth("POST", "recover", json={"email": email}, params=params)

    def sign_out(self, token: str) -> Dict[str, Any]:
        return self._auth("POST", "logout", token=token)

    def get_user(self, token: str) -> Dict[str, Any]:
        """Validate an access token; returns the auth user object."""
        return self._auth("GET", "user", token=token)

    def admin_update_user(self, user_id: str, attributes: Dict[str, Any]) -> Dict[str, Any]:
        return self._auth("PUT", f"admin/users/{user_id}", json=attributes, admin=True)

    def authorize_url(self, provider: str, redirect_to: str) -> str:
        """Browser URL that starts an OAuth sign-in with the given provider."""
        return (
            f"{self.base_url}/auth/v1/authorize?provider={quote(provider)}"
            f"&redirect_to={quote(redirect_to, safe='')}"
        )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    @staticmethod
    def _check_storage(resp: httpx.Response) -> None:
        if resp.is_success:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        message = body.get("message") or body.get("error") if isinstance(body, dict) else None
        raise StorageApiError(message or resp.text or f"HTTP {resp.status_code}", status=resp.status_code)

    def list_buckets(self) -> List[Dict[str, Any]]:
        resp = self._client.get("/storage/v1/bucket")
        self._check_storage(resp)
        return resp.json()

    def create_bucket(self, name: str, public: bool = True) -> Dict[str, Any]:
        resp = self._client.post(
            "/storage/v1/bucket", json={"id": name, "name": name, "public": public}
        )
        self._check_storage(resp)
        return resp.json()

    def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> Dict[str, Any]:
        resp = self._client.post(
            f"/storage/v1/object/{bucket}/{path}",
            content=content,
            headers={
                "Content-Type": content_type,
                "Cache-Control": "max-age=3600",
                "x-upsert": "true" if upsert else "false",
            },
        )
        self._check_storage(resp)
        return resp.json()

    def list_files(self, bucket: str, prefix: str = "", limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        resp = self._client.post(
            f"/storage/v1/object/list/{bucket}",
            json={"prefix": prefix, "limit": limit, "offset": offset},
        )
        self._check_storage(resp)
        return resp.json()

    def remove_files(self, bucket: str, paths: List[str]) -> List[Dict[str, Any]]:
        resp = self._client.request(
            "DELETE", f"/storage/v1/object/{bucket}", json={"prefixes": paths}
        )
        self._check_storage(resp)
        return resp.json()

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

    def is_storage_url(self, url: Optional[str]) -> bool:
        """True when the URL points at a public object in this project's storage."""
        if not url:
            return False
        return url.startswith(self.base_url) and "/storage/v1/object/public/" in url

    @staticmethod
    def path_from_public_url(url: str, bucket: str) -> Optional[str]:
        """Object path inside `bucket` for a public URL, or None."""
        match = re.search(rf"/storage/v1/object/public/{re.escape(bucket)}/(.+)$", url)
        if match:
            return match.group(1)
        marker = f"/{bucket}/"
        idx = url.find(marker)
        if idx != -1:
            return url[idx + len(marker):]
        return None


# ============================================================================
# Singleton / FastAPI dependency
# ============================================================================

def get_supabase_client() -> Optional[SupabaseClient]:
    """Return the shared client built from SUPABASE_* settings, or None when unset."""
    global _client
    if _client is not None:
        return _client
    if not config.SUPABASE_URL or not config.SUPABASE_ANON_KEY:
        logger.warning("SUPABASE_URL or SUPABASE_ANON_KEY not set; Supabase unavailable")
        return None
    _client = SupabaseClient(
        config.SUPABASE_URL, config.SUPABASE_ANON_KEY, config.SUPABASE_SERVICE_ROLE_KEY or None
    )
    return _client


def get_supabase() -> SupabaseClient:
    """FastAPI dependency: the shared client, or 503 when not configured."""
    client = get_supabase_client()
    if client is None:
        raise HTTPException(status_code=503, detail="Database service is not configured")
    return client
