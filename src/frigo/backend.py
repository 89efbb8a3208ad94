from __future__ import annotations
import logging
from typing import Any, Optional
import httpx
from frigo.config import Config
from frigo.errors import BackendError

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def _filters(eq: Optional[dict[str, Any]], ilike: Optional[dict[str, str]] = None) -> list[tuple[str, str]]:
    params = []
    for column, value in (eq or {}).items():
        params.append((column, "is.null" if value is None else f"eq.{value}"))
    for column, pattern in (ilike or {}).items():
        params.append((column, f"ilike.{pattern}"))
    return params


class SupabaseBackend:
    def __init__(self, url: str, key: str, timeout: float = 20.0, client: httpx.Client | None = None):
        if not url or not key:
            raise BackendError("SUPABASE_URL and SUPABASE_KEY must be set to read or write recipes.")
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_config(cls, config: Config) -> "SupabaseBackend":
        return cls(config.supabase_url, config.supabase_key, timeout=config.backend_timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SupabaseBackend":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, table: str, **kwargs) -> Any:
        url = f"{self.base_url}/{table}"
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise BackendError(f"Request to {table} timed out.") from e
        except httpx.HTTPError as e:
            raise BackendError(f"Could not reach the database: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = (body.get("message") if isinstance(body, dict) else None) or response.text
            raise BackendError(f"{method} {table} failed ({response.status_code}): {detail}", response.status_code)
        if not response.content:
            return []
        return response.json()

    def select(
        self,
        table: str,
        columns: str = "*",
        eq: Optional[dict[str, Any]] = None,
        ilike: Optional[dict[str, str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        params = [("select", columns)] + _filters(eq, ilike)
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))
        rows = self._request("GET", table, params=params)
        logger.debug("Selected %d row(s) from %s", len(rows), table)
        return rows

    def insert(self, table: str, rows: Row | list[Row]) -> list[Row]:
        payload = rows if isinstance(rows, list) else [rows]
        if not payload:
            return []
        inserted = self._request(
            "POST", table, json=payload, headers={"Prefer": "return=representation"}
        )
        logger.debug("Inserted %d row(s) into %s", len(inserted), table)
        return inserted

    def delete(self, table: str, eq: dict[str, Any]) -> list[Row]:
        if not eq:
            raise BackendError(f"Refusing to delete from {table} without a filter.")
        deleted = self._request(
            "DELETE", table, params=_filters(eq), headers={"Prefer": "return=representation"}
        )
        logger.debug("Deleted %d row(s) from %s", len(deleted), table)
        return deleted
