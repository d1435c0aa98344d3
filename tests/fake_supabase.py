"""
In-memory stand-in for a Supabase project, served to SupabaseClient through
httpx.MockTransport.

Covers the slice of PostgREST, GoTrue and Storage the API talks to:
row filters (eq/neq/in/is/ilike/gt/gte/lt/lte, not., or=(...), ->>),
ordering, paging with Content-Range counts, upserts, unique constraints,
a few RPCs, password/token auth and bucket objects.
"""

import itertools
import json
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from storefront.supabase_client import SupabaseClient

BASE_URL = "http://supabase.test"

UNIQUE_KEYS: Dict[str, List[Tuple[str, ...]]] = {
    "categories": [("slug",)],
    "product_variants": [("sku",)],
    "product_tags": [("name",)],
    "discounts": [("code",)],
    "carts": [("user_id",)],
    "cart_items": [("cart_id", "variant_id")],
    "wishlists": [("user_id", "variant_id")],
    "product_tag_assignments": [("product_id", "tag_id")],
    "category_discounts": [("discount_id", "category_id")],
    "product_discounts": [("discount_id", "product_id")],
    "variant_discounts": [("discount_id", "variant_id")],
}

INT_ID_TABLES = {"user_addresses"}

_RESERVED = {"select", "order", "limit", "offset", "on_conflict", "or"}
_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _split_top(raw: str) -> List[str]:
    """Split on commas outside quotes and parentheses."""
    parts, buf, depth, quoted = [], "", 0, False
    for ch in raw:
        if ch == '"':
            quoted = not quoted
        elif not quoted and ch == "(":
            depth += 1
        elif not quoted and ch == ")":
            depth -= 1
        if ch == "," and not quoted and depth == 0:
            parts.append(buf)
            buf = ""
            continue
        buf += ch
    if buf:
        parts.append(buf)
    return parts


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1].replace('\\"', '"')
    return value


def _column(row: Dict[str, Any], column: str) -> Any:
    if "->>" in column:
        name, key = column.split("->>", 1)
        container = row.get(name)
        if not isinstance(container, dict):
            return None
        value = container.get(key)
        return None if value is None else _text(value)
    return row.get(column)


def _compare(left: Any, right: str) -> Optional[int]:
    if left is None:
        return None
    try:
        a, b = float(left), float(right)
    except (TypeError, ValueError):
        a, b = _text(left), right
    return (a > b) - (a < b)


def _matches(value: Any, expression: str) -> bool:
    negate = False
    if expression.startswith("not."):
        negate, expression = True, expression[4:]
    op, _, arg = expression.partition(".")
    if op == "eq":
        result = value is not None and _text(value) == arg
    elif op == "neq":
        result = value is not None and _text(value) != arg
    elif op == "is":
        result = _text(value) == arg
    elif op == "in":
        options = {_unquote(p) for p in _split_top(arg.strip()[1:-1])}
        result = value is not None and _text(value) in options
    elif op in ("like", "ilike"):
        pattern = "^" + ".*".join(re.escape(p) for p in arg.split("*")) + "$"
        flags = re.IGNORECASE | re.DOTALL if op == "ilike" else re.DOTALL
        result = value is not None and re.match(pattern, _text(value), flags) is not None
    elif op in ("gt", "gte", "lt", "lte"):
        cmp = _compare(value, arg)
        if cmp is None:
            result = False
        else:
            result = {"gt": cmp > 0, "gte": cmp >= 0, "lt": cmp < 0, "lte": cmp <= 0}[op]
    else:
        raise ValueError(f"unsupported filter operator: {op}")
    return not result if negate else result


def _or_matches(row: Dict[str, Any], group: str) -> bool:
    for condition in _split_top(group.strip()[1:-1]):
        column, _, expression = condition.partition(".")
        if _matches(_column(row, column), expression):
            return True
    return False


def _sort(rows: List[Dict[str, Any]], order: str) -> List[Dict[str, Any]]:
    for term in reversed(order.split(",")):
        pieces = term.split(".")
        column = pieces[0]
        descending = len(pieces) > 1 and pieces[1] == "desc"
        present = [r for r in rows if _column(r, column) is not None]
        missing = [r for r in rows if _column(r, column) is None]

        def key(r, column=column):
            v = _column(r, column)
            return (0, v) if isinstance(v, (int, float)) and not isinstance(v, bool) else (1, _text(v))

        present.sort(key=key, reverse=descending)
        rows = present + missing
    return rows


class FakeSupabase:
    """Tables are plain lists of dicts, reachable as `fake.tables[name]`."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.rpcs: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "increment_discount_usage": self._increment_discount_usage,
        }
        self.auth_users: Dict[str, Dict[str, Any]] = {}
        self.passwords: Dict[str, str] = {}
        self.tokens: Dict[str, str] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self.buckets: Dict[str, Dict[str, Any]] = {}
        self.objects: Dict[str, Dict[str, bytes]] = {}
        self.failures: Dict[Tuple[str, str], Tuple[int, Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self._clock = itertools.count()
        self._int_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def client(self) -> SupabaseClient:
        return SupabaseClient(BASE_URL, "anon-key", "service-key", transport=httpx.MockTransport(self.handle))

    def now(self) -> str:
        return (_EPOCH + timedelta(seconds=next(self._clock))).isoformat()

    def table(self, name: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def add(self, table: str, **values: Any) -> Dict[str, Any]:
        row = self._with_defaults(table, values)
        self.table(table).append(row)
        return row

    def find(self, table: str, **values: Any) -> List[Dict[str, Any]]:
        return [r for r in self.table(table) if all(r.get(k) == v for k, v in values.items())]

    def add_user(
        self,
        email: str,
        role: str = "customer",
        password: str = "secret123",
        name: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], str]:
        """Create an auth user plus its `users` row; returns (row, access token)."""
        user_id = str(uuid.uuid4())
        metadata = {"name": name or email.split("@")[0]}
        self.auth_users[user_id] = {"id": user_id, "email": email, "user_metadata": metadata}
        self.passwords[email] = password
        token = f"token-{user_id}"
        self.tokens[token] = user_id
        row = self.add("users", id=user_id, email=email, name=metadata["name"], role=role)
        return row, token

    def fail(self, method: str, table: str, code: str, status: int = 400, message: str = "forced failure") -> None:
        """Make the next `method` request on `table` (or rpc name) fail once."""
        self.failures[(method.upper(), table)] = (status, {"message": message, "code": code, "details": None, "hint": None})

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/rest/v1/rpc/"):
            return self._rpc(request, path[len("/rest/v1/rpc/"):])
        if path.startswith("/rest/v1/"):
            return self._rest(request, path[len("/rest/v1/"):])
        if path.startswith("/auth/v1/"):
            return self._auth(request, path[len("/auth/v1/"):])
        if path.startswith("/storage/v1/"):
            return self._storage(request, path[len("/storage/v1/"):])
        return httpx.Response(404, json={"message": "not found"})

    @staticmethod
    def _body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None

    def _with_defaults(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(values)
        if row.get("id") is None:
            row["id"] = next(self._int_ids) if table in INT_ID_TABLES else str(uuid.uuid4())
        stamp = self.now()
        row.setdefault("created_at", stamp)
        row.setdefault("updated_at", stamp)
        return row

    # ------------------------------------------------------------------
    # PostgREST
    # ------------------------------------------------------------------

    def _filtered(self, table: str, params: List[Tuple[str, str]]) -> List[Dict[str, Any]]:
        rows = list(self.table(table))
        for key, value in params:
            if key == "or":
                rows = [r for r in rows if _or_matches(r, value)]
            elif key not in _RESERVED:
                rows = [r for r in rows if _matches(_column(r, key), value)]
        return rows

    def _conflict(self, table: str, row: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        for columns in UNIQUE_KEYS.get(table, []):
            if any(row.get(c) is None for c in columns):
                continue
            for existing in self.table(table):
                if existing is ignore or existing is row:
                    continue
                if all(existing.get(c) == row.get(c) for c in columns):
                    return existing
        return None

    @staticmethod
    def _duplicate(table: str) -> httpx.Response:
        return httpx.Response(409, json={
            "message": f'duplicate key value violates unique constraint "{table}_key"',
            "code": "23505", "details": None, "hint": None,
        })

    def _rest(self, request: httpx.Request, table: str) -> httpx.Response:
        failure = self.failures.pop((request.method, table), None)
        if failure is not None:
            return httpx.Response(failure[0], json=failure[1])
        params = list(request.url.params.multi_items())
        if request.method == "GET":
            return self._get(request, table, params)
        if request.method == "POST":
            return self._post(request, table, params)
        if request.method == "PATCH":
            values = self._body(request) or {}
            rows = self._filtered(table, params)
            for row in rows:
                candidate = {**row, **values}
                if self._conflict(table, candidate, ignore=row) is not None:
                    return self._duplicate(table)
            for row in rows:
                row.update(values)
            return httpx.Response(200, json=rows)
        if request.method == "DELETE":
            rows = self._filtered(table, params)
            ids = {id(r) for r in rows}
            self.tables[table] = [r for r in self.table(table) if id(r) not in ids]
            return httpx.Response(200, json=rows)
        return httpx.Response(405, json={"message": "method not allowed"})

    def _get(self, request: httpx.Request, table: str, params: List[Tuple[str, str]]) -> httpx.Response:
        rows = self._filtered(table, params)
        query = dict(params)
        if "order" in query:
            rows = _sort(rows, query["order"])
        total = len(rows)
        offset = int(query.get("offset", 0))
        rows = rows[offset:]
        if "limit" in query:
            rows = rows[:int(query["limit"])]
        headers = {}
        if "count=exact" in request.headers.get("prefer", ""):
            end = offset + len(rows) - 1
            headers["content-range"] = f"{offset}-{end}/{total}" if rows else f"*/{total}"
        return httpx.Response(200, json=rows, headers=headers)

    def _post(self, request: httpx.Request, table: str, params: List[Tuple[str, str]]) -> httpx.Response:
        body = self._body(request)
        incoming = body if isinstance(body, list) else [body]
        upsert = "merge-duplicates" in request.headers.get("prefer", "")
        on_conflict = dict(params).get("on_conflict")
        stored = []
        for values in incoming:
            existing = None
            if upsert and on_conflict:
                columns = on_conflict.split(",")
                existing = next(
                    (r for r in self.table(table) if all(r.get(c) == values.get(c) for c in columns)),
                    None,
                )
            if existing is not None:
                existing.update(values)
                stored.append(existing)
                continue
            row = self._with_defaults(table, values)
            if self._conflict(table, row) is not None:
                return self._duplicate(table)
            self.table(table).append(row)
            stored.append(row)
        return httpx.Response(201, json=stored)

    def _rpc(self, request: httpx.Request, name: str) -> httpx.Response:
        failure = self.failures.pop(("POST", name), None)
        if failure is not None:
            return httpx.Response(failure[0], json=failure[1])
        fn = self.rpcs.get(name)
        if fn is None:
            return httpx.Response(404, json={
                "message": f"Could not find the function public.{name}",
                "code": "PGRST202", "details": None, "hint": None,
            })
        return httpx.Response(200, json=fn(self._body(request) or {}))

    def _increment_discount_usage(self, args: Dict[str, Any]) -> None:
        for row in self.find("discounts", id=args.get("discount_id")):
            row["usage_count"] = (row.get("usage_count") or 0) + 1
        return None

    # ------------------------------------------------------------------
    # GoTrue
    # ------------------------------------------------------------------

    def _session(self, user_id: str) -> Dict[str, Any]:
        token = f"token-{user_id}"
        refresh = f"refresh-{uuid.uuid4()}"
        self.tokens[token] = user_id
        self.refresh_tokens[refresh] = user_id
        return {
            "access_token": token,
            "refresh_token": refresh,
            "token_type": "bearer",
            "expires_in": 3600,
            "user": self.auth_users[user_id],
        }

    def _auth(self, request: httpx.Request, path: str) -> httpx.Response:
        body = self._body(request) or {}
        if path == "signup" and request.method == "POST":
            if body.get("email") in self.passwords:
                return httpx.Response(422, json={"code": 422, "error_code": "user_already_exists", "msg": "User already registered"})
            row, _ = self.add_user(body["email"], password=body.get("password", ""), name=(body.get("data") or {}).get("name"))
            self.auth_users[row["id"]]["user_metadata"] = body.get("data") or {}
            return httpx.Response(200, json=self._session(row["id"]))
        if path == "token":
            grant = request.url.params.get("grant_type")
            if grant == "password":
                email = body.get("email")
                if self.passwords.get(email) != body.get("password"):
                    return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})
                user_id = next(uid for uid, u in self.auth_users.items() if u["email"] == email)
                return httpx.Response(200, json=self._session(user_id))
            user_id = self.refresh_tokens.pop(body.get("refresh_token"), None)
            if user_id is None:
                return httpx.Response(400, json={"error_code": "refresh_token_not_found", "msg": "Invalid Refresh Token: Refresh Token Not Found"})
            return httpx.Response(200, json=self._session(user_id))
        if path in ("otp", "recover"):
            return httpx.Response(200, json={})
        if path == "logout":
            self.tokens.pop(self._bearer(request), None)
            return httpx.Response(204)
        if path == "user":
            user_id = self.tokens.get(self._bearer(request))
            if user_id is None:
                return httpx.Response(401, json={"code": 401, "error_code": "bad_jwt", "msg": "invalid JWT"})
            return httpx.Response(200, json=self.auth_users[user_id])
        if path.startswith("admin/users/") and request.method == "PUT":
            user = self.auth_users.get(path.rsplit("/", 1)[1])
            if user is None:
                return httpx.Response(404, json={"code": 404, "error_code": "user_not_found", "msg": "User not found"})
            user["user_metadata"] = {**user["user_metadata"], **(body.get("user_metadata") or {})}
            return httpx.Response(200, json=user)
        return httpx.Response(404, json={"msg": "not found"})

    @staticmethod
    def _bearer(request: httpx.Request) -> str:
        return request.headers.get("authorization", "").partition(" ")[2]

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _storage(self, request: httpx.Request, path: str) -> httpx.Response:
        if path == "bucket":
            if request.method == "GET":
                return httpx.Response(200, json=list(self.buckets.values()))
            body = self._body(request) or {}
            if body["name"] in self.buckets:
                return httpx.Response(409, json={"statusCode": "409", "error": "Duplicate", "message": "The resource already exists"})
            self.buckets[body["name"]] = {"id": body["id"], "name": body["name"], "public": body.get("public", False)}
            self.objects.setdefault(body["name"], {})
            return httpx.Response(200, json={"name": body["name"]})
        if path.startswith("object/list/"):
            bucket = path[len("object/list/"):]
            prefix = ((self._body(request) or {}).get("prefix") or "").strip("/")
            return httpx.Response(200, json=self._listing(bucket, prefix))
        if path.startswith("object/") and request.method == "POST":
            bucket, _, key = path[len("object/"):].partition("/")
            if bucket not in self.buckets:
                return httpx.Response(404, json={"statusCode": "404", "error": "Bucket not found", "message": "Bucket not found"})
            objects = self.objects.setdefault(bucket, {})
            if key in objects and request.headers.get("x-upsert") != "true":
                return httpx.Response(409, json={"statusCode": "409", "error": "Duplicate", "message": "The resource already exists"})
            objects[key] = request.content
            return httpx.Response(200, json={"Key": f"{bucket}/{key}"})
        if path.startswith("object/") and request.method == "DELETE":
            bucket = path[len("object/"):]
            objects = self.objects.setdefault(bucket, {})
            removed = [p for p in (self._body(request) or {}).get("prefixes", []) if objects.pop(p, None) is not None]
            return httpx.Response(200, json=[{"name": p} for p in removed])
        return httpx.Response(404, json={"message": "not found"})

    def _listing(self, bucket: str, prefix: str) -> List[Dict[str, Any]]:
        entries: Dict[str, Dict[str, Any]] = {}
        lead = f"{prefix}/" if prefix else ""
        for key in sorted(self.objects.get(bucket, {})):
            if not key.startswith(lead):
                continue
            head, sep, _ = key[len(lead):].partition("/")
            if sep:
                entries.setdefault(head, {"name": head, "id": None})
            else:
                entries[head] = {"name": head, "id": str(uuid.uuid4()), "metadata": {}}
        return list(entries.values())
