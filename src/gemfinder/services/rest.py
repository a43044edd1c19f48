"""Hosted data store client for gemfinder.

Talks to a PostgREST endpoint (the REST layer of hosted Postgres backends)
at ``<url>/rest/v1/<table>``. Only the CRUD subset used by gemfinder is
implemented; change notifications are published in-process after each
successful write.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from gemfinder import __version__
from gemfinder.services.store import (
    TABLES,
    DataStore,
    DuplicateRecordError,
    Filters,
    RecordNotFoundError,
    Row,
    StoreError,
)

logger = logging.getLogger("gemfinder.rest")

SINGLE_OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"

# PostgREST / Postgres error codes
NO_ROWS_CODE = "PGRST116"
UNIQUE_VIOLATION_CODE = "23505"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_filter_params(filters: Filters | None) -> dict[str, str]:
    """Translate equality / membership filters to PostgREST query params.

    Args:
        filters: Column to value (or list of values) mapping.

    Returns:
        Query parameters, e.g. {"user_id": "eq.u1", "id": 'in.("1","2")'}.
    """
    params: dict[str, str] = {}
    for column, expected in (filters or {}).items():
        if expected is None:
            params[column] = "is.null"
        elif isinstance(expected, (list, tuple, set, frozenset)):
            quoted = ",".join(f'"{_format_value(v)}"' for v in expected)
            params[column] = f"in.({quoted})"
        else:
            params[column] = f"eq.{_format_value(expected)}"
    return params


class RestStore(DataStore):
    """Data store backed by a hosted PostgREST API."""

    def __init__(
        self,
        url: str,
        api_key: str = "",
        access_token: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the REST store.

        Args:
            url: Base URL of the hosted project (trailing slash stripped).
            api_key: Project API key sent as the ``apikey`` header.
            access_token: User access token; defaults to the API key.
            timeout: Request timeout in seconds.
            session: Optional pre-configured requests session.
        """
        super().__init__()
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "User-Agent": f"gemfinder/{__version__}",
        })

    def _table_url(self, table: str) -> str:
        if table not in TABLES:
            raise StoreError(f"Unknown table: {table}")
        return f"{self.url}/rest/v1/{table}"

    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        url = self._table_url(table)
        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreError(f"{method} {table} failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_error(method, table, response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"{method} {table} returned invalid JSON") from e

    def _raise_for_error(self, method: str, table: str, response: requests.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        code = str(body.get("code", ""))
        message = body.get("message") or response.reason or "request failed"

        if code == NO_ROWS_CODE:
            raise RecordNotFoundError(f"No {table} row found: {message}")
        if code == UNIQUE_VIOLATION_CODE or response.status_code == 409:
            raise DuplicateRecordError(f"Duplicate {table} row: {message}")
        raise StoreError(f"{method} {table} failed ({response.status_code}): {message}")

    def select(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        params = {"select": "*", **build_filter_params(filters)}
        if order_by:
            direction = "desc" if descending else "asc"
            params["order"] = f"{order_by}.{direction}.nullslast"
        if limit is not None:
            params["limit"] = str(limit)

        rows = self._request("GET", table, params=params)
        return list(rows or [])

    def select_one(self, table: str, filters: Filters) -> Row:
        params = {"select": "*", **build_filter_params(filters)}
        row = self._request(
            "GET",
            table,
            params=params,
            headers={"Accept": SINGLE_OBJECT_MEDIA_TYPE},
        )
        if not row:
            raise RecordNotFoundError(f"No {table} row matching {filters}")
        return row

    def insert(self, table: str, row: Row) -> Row:
        rows = self._request(
            "POST",
            table,
            json_body=row,
            headers={"Prefer": "return=representation"},
        )
        stored = rows[0] if isinstance(rows, list) and rows else dict(row)
        self.changes.publish(table, "INSERT", stored)
        return stored

    def update(self, table: str, filters: Filters, values: Row) -> list[Row]:
        rows = self._request(
            "PATCH",
            table,
            params=build_filter_params(filters),
            json_body=values,
            headers={"Prefer": "return=representation"},
        )
        updated = list(rows or [])
        for r in updated:
            self.changes.publish(table, "UPDATE", r)
        return updated

    def delete(self, table: str, filters: Filters) -> list[Row]:
        if not filters:
            raise StoreError(f"Refusing to delete every row of {table}")
        rows = self._request(
            "DELETE",
            table,
            params=build_filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        removed = list(rows or [])
        for r in removed:
            self.changes.publish(table, "DELETE", r)
        return removed

    def close(self) -> None:
        self.session.close()
