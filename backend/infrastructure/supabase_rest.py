"""
Supabase REST Wrapper: PostgREST over httpx, no SDK dependency
Mimics supabase-py's .table().select().eq().execute() chaining
using httpx + PostgREST query params.

Unlike the SDK defaults, failures are raised as typed errors so callers
can branch on unique-constraint conflicts.

Used by: services/subscription_store.py
"""

import logging
import httpx
from typing import Any, Dict, List, Optional, Tuple

from infrastructure.errors import ConflictError, DatabaseError, ExternalServiceError

logger = logging.getLogger("SupabaseREST")

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class QueryResult:
    """Mimics supabase execute() result with .data attribute"""
    def __init__(self, data):
        self.data = data if data else []


class TableQuery:
    """Chainable query builder for PostgREST API"""

    def __init__(self, client: "SupabaseREST", table: str):
        self._client = client
        self._table = table
        self._params: Dict[str, Any] = {}
        self._filters: List[Tuple[str, str]] = []
        self._method = "GET"
        self._body = None
        self._want_single = False

    # ── Query builders ──

    def select(self, columns: str = "*"):
        self._method = "GET"
        self._params["select"] = columns
        return self

    def insert(self, data):
        self._method = "POST"
        self._body = data
        return self

    def update(self, data: dict):
        self._method = "PATCH"
        self._body = data
        return self

    def delete(self):
        self._method = "DELETE"
        return self

    # ── Filters ──

    def eq(self, column: str, value):
        self._filters.append((column, f"eq.{value}"))
        return self

    def lt(self, column: str, value):
        self._filters.append((column, f"lt.{value}"))
        return self

    def not_is(self, column: str, value: str = "null"):
        self._filters.append((column, f"not.is.{value}"))
        return self

    # ── Modifiers ──

    def order(self, column: str):
        self._params["order"] = f"{column}.asc"
        return self

    def single(self):
        """Return single row (first match) or None"""
        self._want_single = True
        self._params["limit"] = "1"
        return self

    @property
    def method(self) -> str:
        return self._method

    @property
    def params(self) -> List[Tuple[str, str]]:
        # PostgREST accepts repeated keys, one filter each
        return list(self._params.items()) + list(self._filters)

    # ── Execute ──

    async def execute(self) -> QueryResult:
        """Execute the query via the shared async httpx client"""
        return await self._client.request(self)

    def _request_args(self) -> Dict[str, Any]:
        args: Dict[str, Any] = {"params": self.params}
        if self._body is not None and self._method in ("POST", "PATCH"):
            args["json"] = self._body
        return args

    def _parse(self, resp: httpx.Response) -> QueryResult:
        data = resp.json() if resp.content else []

        # Single mode: return first row as .data
        if self._want_single and isinstance(data, list):
            data = data[0] if data else None

        return QueryResult(data)


class SupabaseREST:
    """Lightweight async Supabase REST client mimicking the SDK interface."""

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = (url or "").rstrip("/")
        self._key = key or ""
        self._http = httpx.AsyncClient(
            base_url=f"{self._url}/rest/v1" if self._url else "http://supabase.invalid/rest/v1",
            timeout=timeout,
            transport=transport,
        )

        if self._url and self._key:
            logger.info(f"[SupabaseREST] Configured for {self._url[:40]}...")
        else:
            logger.warning("[SupabaseREST] Missing SUPABASE_URL or service key")

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def request(self, query: TableQuery) -> QueryResult:
        path = f"/{query._table}"
        try:
            resp = await self._http.request(
                query.method, path, headers=self._headers(), **query._request_args()
            )
        except httpx.TimeoutException as e:
            logger.error(f"[SupabaseREST] {query.method} {path} timed out")
            raise ExternalServiceError("supabase", "Database request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"[SupabaseREST] Request failed: {e}")
            raise ExternalServiceError("supabase", f"Database request failed: {e}") from e

        if resp.status_code in (200, 201, 204):
            return query._parse(resp)

        body = resp.text[:300]
        logger.error(f"[SupabaseREST] {query.method} {path}: {resp.status_code} {body}")

        if resp.status_code == 409 or _pg_code(resp) == UNIQUE_VIOLATION:
            raise ConflictError(f"Duplicate record in {query._table}", details={"table": query._table})
        raise DatabaseError(
            f"{query.method} {query._table} failed with status {resp.status_code}",
            details={"table": query._table, "status": resp.status_code}
        )

    async def close(self):
        await self._http.aclose()


def _pg_code(resp: httpx.Response) -> Optional[str]:
    try:
        payload = resp.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        return payload.get("code")
    return None
