"""Async PostgREST gateway for the pipeline tables.

Stage logic reads and writes the pipeline tables (``topic_sources``,
``ingest_items``, ``topic_drafts``, ``question_drafts``) through this
client. It deliberately rides on the invocation's instrumented
``httpx.AsyncClient`` so every database round trip is accounted as ``db``
time.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import httpx

from .connection import SupabaseConfig

logger = logging.getLogger(__name__)


class RestError(RuntimeError):
    """Raised when PostgREST answers with a non-2xx status."""

    def __init__(self, status: int, message: str, *, table: Optional[str] = None):
        self.status = status
        self.table = table
        super().__init__(f"PostgREST {status} on {table or 'request'}: {message}")


def in_filter(values: Iterable[Any]) -> str:
    """Build a PostgREST ``in.(...)`` filter expression."""
    rendered = []
    for value in values:
        text = str(value)
        if any(ch in text for ch in ',()"'):
            text = '"' + text.replace('"', '\\"') + '"'
        rendered.append(text)
    return f"in.({','.join(rendered)})"


class RestClient:
    """Thin async wrapper around the PostgREST endpoints of one project."""

    def __init__(self, config: SupabaseConfig, http_client: httpx.AsyncClient) -> None:
        self.config = config
        self._http = http_client
        self._headers = {
            "apikey": config.key,
            "Authorization": f"Bearer {config.key}",
            "Content-Type": "application/json",
        }
        if config.schema and config.schema != "public":
            self._headers["Accept-Profile"] = config.schema
            self._headers["Content-Profile"] = config.schema

    def table_url(self, table: str) -> str:
        return f"{self.config.rest_url}/{table}"

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Mapping[str, str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows of ``table`` matching ``filters``.

        Filters map a column to a PostgREST operator expression, e.g.
        ``{"status": "eq.new"}``.
        """
        params: Dict[str, Any] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = int(limit)
        response = await self._http.get(
            self.table_url(table), params=params, headers=self._headers
        )
        return self._rows(response, table)

    async def insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]] | Mapping[str, Any],
    ) -> List[Dict[str, Any]]:
        """Insert ``rows`` and return the stored representation."""
        headers = {**self._headers, "Prefer": "return=representation"}
        response = await self._http.post(
            self.table_url(table), json=_as_list(rows), headers=headers
        )
        return self._rows(response, table)

    async def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]] | Mapping[str, Any],
        *,
        on_conflict: Optional[str] = None,
        ignore_duplicates: bool = False,
    ) -> List[Dict[str, Any]]:
        """Insert or merge ``rows``.

        With ``ignore_duplicates`` only rows that did not exist yet are
        returned, which makes the returned length the number of new rows.
        """
        resolution = "ignore-duplicates" if ignore_duplicates else "merge-duplicates"
        headers = {
            **self._headers,
            "Prefer": f"resolution={resolution},return=representation",
        }
        params = {"on_conflict": on_conflict} if on_conflict else None
        response = await self._http.post(
            self.table_url(table), json=_as_list(rows), params=params, headers=headers
        )
        return self._rows(response, table)

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        filters: Mapping[str, str],
    ) -> List[Dict[str, Any]]:
        """PATCH rows matching ``filters`` and return the updated rows."""
        if not filters:
            raise ValueError("update requires at least one filter")
        headers = {**self._headers, "Prefer": "return=representation"}
        response = await self._http.patch(
            self.table_url(table), json=dict(values), params=dict(filters), headers=headers
        )
        return self._rows(response, table)

    @staticmethod
    def _rows(response: httpx.Response, table: str) -> List[Dict[str, Any]]:
        if response.status_code >= 400:
            message = response.text[:300]
            logger.warning("PostgREST %s for %s: %s", response.status_code, table, message)
            raise RestError(response.status_code, message, table=table)
        if not response.content:
            return []
        payload = response.json()
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            return [payload]
        return []


def _as_list(rows: Sequence[Mapping[str, Any]] | Mapping[str, Any]) -> List[Dict[str, Any]]:
    if isinstance(rows, Mapping):
        return [dict(rows)]
    return [dict(row) for row in rows]
