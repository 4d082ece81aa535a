"""Cloudflare D1 over HTTP: the remote implementation of query(sql, params).

Learn: D1 is SQLite hosted by Cloudflare. There are two ways in:

1. Worker proxy: a small Worker bound to the database exposes
   POST {worker}/query {sql, params}, guarded by an x-worker-secret header.
   It answers {success, results} for SELECTs and {success, result} otherwise.

2. REST API: POST {api}/accounts/{account}/d1/databases/{db}/query with a
   Bearer token. The configured database may be a name rather than a uuid,
   and the token may belong to a different account than the one
   configured. A 404 / "Route not found" therefore triggers discovery:
   list the configured account's databases; if that listing itself fails,
   list every account the token can see and search each one. The
   resolved (account, database) pair is cached on the client.

No retries: timeouts and 5xx surface as D1Error straight away.
"""

from typing import Any, Optional, Sequence

import httpx
import structlog

logger = structlog.get_logger()

DEFAULT_API_BASE = "https://api.cloudflare.com/client/v4"
_DB_ID_KEYS = ("id", "database_id", "databaseId", "uuid")
_DB_MATCH_KEYS = ("id", "uuid", "name", "database_name", "database_id")


class D1Error(Exception):
    """A D1 request failed. `status` is the HTTP status when there was one."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload


# ─── Response shape helpers ──────────────────────────────


def normalize_rows(data: Any) -> list:
    """Flatten the response shapes D1 has been seen to return into a row list.

    [...]                          → as is
    {results: [...]}               → results
    {result: {results: [...]}}     → result.results
    {result: [{results: [...]}]}   → every statement's results, concatenated
    {result: [...]}                → result
    {result: {...}}                → [result]
    {...}                          → [object]
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []

    if isinstance(data.get("results"), list):
        return data["results"]

    result = data.get("result")
    if isinstance(result, dict) and isinstance(result.get("results"), list):
        return result["results"]
    if isinstance(result, list):
        if result and all(
            isinstance(item, dict) and isinstance(item.get("results"), list)
            for item in result
        ):
            rows: list = []
            for statement in result:
                rows.extend(statement["results"])
            return rows
        return result
    if isinstance(result, dict):
        return [result]
    return [data]


def _extract_list(payload: Any, *paths: tuple[str, ...]) -> list:
    """Return the first list found along `paths`, else the payload itself as a list."""
    for path in paths:
        node = payload
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if isinstance(node, list):
            return node
        if isinstance(node, dict) and path:
            return list(node.values())
    if isinstance(payload, list):
        return payload
    return []


def _database_list(payload: Any) -> list:
    return _extract_list(
        payload, ("result", "databases"), ("result",), ("databases",), ("results",)
    )


def _matches(database: dict, wanted: str) -> bool:
    return any(database.get(key) == wanted for key in _DB_MATCH_KEYS)


def _database_identifier(database: dict) -> Optional[str]:
    for key in (*_DB_ID_KEYS, "database_name", "name"):
        if database.get(key):
            return database[key]
    return None


def _error_messages(payload: Any) -> str:
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if errors is None and isinstance(payload, dict) and isinstance(payload.get("result"), dict):
        errors = payload["result"].get("errors")
    if isinstance(errors, list) and errors:
        return "; ".join(
            e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors
        )
    return str(payload)


def _is_route_not_found(response: httpx.Response) -> bool:
    return response.status_code == 404 or "Route not found" in response.text


# ─── Client ──────────────────────────────────────────────


class D1Client:
    """Executes SQL against Cloudflare D1 through a worker proxy or the REST API."""

    def __init__(
        self,
        account_id: str = "",
        database: str = "",
        api_token: str = "",
        api_base: str = DEFAULT_API_BASE,
        use_worker: bool = False,
        worker_url: str = "",
        worker_secret: str = "",
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.account_id = account_id
        self.database = database
        self.api_token = api_token
        self.api_base = api_base.rstrip("/")
        self.use_worker = use_worker
        self.worker_url = worker_url.rstrip("/")
        self.worker_secret = worker_secret
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http is None
        # Resolved target; starts as configured, replaced by discovery.
        self._resolved_account = account_id
        self._resolved_database = database

    @classmethod
    def from_settings(cls, settings, http: Optional[httpx.AsyncClient] = None) -> "D1Client":
        return cls(
            account_id=settings.d1_account_id,
            database=settings.d1_database,
            api_token=settings.d1_api_token,
            api_base=settings.d1_api_base,
            use_worker=settings.d1_use_worker,
            worker_url=settings.d1_worker_url,
            worker_secret=settings.d1_worker_secret,
            http=http,
        )

    @property
    def target(self) -> tuple[str, str]:
        """(account id, database id) the REST mode currently sends queries to."""
        return self._resolved_account, self._resolved_database

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> list:
        body = {"sql": sql, "params": list(params or [])}
        try:
            if self.use_worker:
                return await self._query_worker(body)
            return await self._query_rest(body)
        except httpx.HTTPError as e:
            raise D1Error(f"D1 request failed: {e}") from e

    # ─── Worker proxy ───────────────────────────────────

    async def _query_worker(self, body: dict) -> list:
        if not self.worker_url or not self.worker_secret:
            raise D1Error("Worker proxy not configured")

        response = await self._http.post(
            f"{self.worker_url}/query",
            json=body,
            headers={"x-worker-secret": self.worker_secret},
        )
        if response.is_error:
            raise D1Error(
                f"Worker proxy query failed: {response.status_code} - {response.text}",
                status=response.status_code,
            )

        payload = response.json()
        if not payload.get("success"):
            raise D1Error(
                f"Worker error: {payload.get('error') or payload}", payload=payload
            )
        if payload.get("results") is not None:
            return payload["results"]
        result = payload.get("result")
        if result:
            return result if isinstance(result, list) else [result]
        return []

    # ─── REST API ───────────────────────────────────────

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_token}"}

    def _query_url(self, account_id: str, database_id: str) -> str:
        return f"{self.api_base}/accounts/{account_id}/d1/databases/{database_id}/query"

    async def _post_query(self, body: dict) -> httpx.Response:
        account_id, database_id = self.target
        return await self._http.post(
            self._query_url(account_id, database_id), json=body, headers=self._headers()
        )

    async def _query_rest(self, body: dict) -> list:
        if not (self._resolved_account and self._resolved_database and self.api_token):
            raise D1Error("Cloud D1 not configured")

        response = await self._post_query(body)
        if response.is_error:
            if not _is_route_not_found(response):
                raise D1Error(
                    f"D1 query failed: {response.status_code} - {response.text}",
                    status=response.status_code,
                )
            await self._discover()
            response = await self._post_query(body)
            if response.is_error:
                raise D1Error(
                    f"D1 query failed: {response.status_code} - {response.text}",
                    status=response.status_code,
                )

        payload = response.json()
        if isinstance(payload, dict) and payload.get("success") is False:
            raise D1Error(f"D1 API error: {_error_messages(payload)}", payload=payload)
        return normalize_rows(payload)

    async def _list_databases(self, account_id: str) -> tuple[bool, Any]:
        response = await self._http.get(
            f"{self.api_base}/accounts/{account_id}/d1/databases", headers=self._headers()
        )
        try:
            payload = response.json()
        except ValueError:
            payload = None
        return not response.is_error, payload

    async def _discover(self) -> None:
        """Resolve the configured database name/id to a reachable (account, db)."""
        logger.info("d1.discovering_database", database=self.database)
        ok, listing = await self._list_databases(self.account_id)
        if ok:
            found = next(
                (d for d in _database_list(listing) if isinstance(d, dict) and _matches(d, self.database)),
                None,
            )
            if not found:
                raise D1Error(
                    f"D1 database '{self.database}' not found in account {self.account_id}",
                    status=404,
                    payload=listing,
                )
            self._resolved_account = self.account_id
            self._resolved_database = _database_identifier(found)
            logger.info("d1.database_resolved", account_id=self.account_id)
            return

        # The configured account is not usable with this token: search every
        # account the token can see.
        response = await self._http.get(f"{self.api_base}/accounts", headers=self._headers())
        if response.is_error:
            raise D1Error(
                f"D1 list failed for account {self.account_id} and listing accounts "
                f"failed: {response.status_code}",
                status=response.status_code,
                payload=listing,
            )
        accounts = _extract_list(response.json(), ("result",), ("results",))
        for account in accounts:
            if not isinstance(account, dict):
                continue
            account_id = account.get("id") or account.get("account_id") or account.get("accountId")
            if not account_id:
                continue
            ok, account_listing = await self._list_databases(account_id)
            if not ok:
                continue
            for database in _database_list(account_listing):
                if isinstance(database, dict) and _matches(database, self.database):
                    self._resolved_account = account_id
                    self._resolved_database = _database_identifier(database)
                    logger.info("d1.database_resolved", account_id=account_id)
                    return

        raise D1Error(
            f"D1 database '{self.database}' not found in any account visible to the token",
            status=404,
            payload={"accounts": accounts},
        )
