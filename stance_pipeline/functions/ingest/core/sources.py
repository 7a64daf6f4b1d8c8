"""Readers and writers for the source registry and the ingest queue."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from stance_pipeline.shared.db.rest import RestClient

from .contracts import ITEMS_TABLE, SOURCES_TABLE, FeedEntry

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Selects due sources and records their health after each poll."""

    def __init__(self, db: RestClient, table_name: str = SOURCES_TABLE):
        self.db = db
        self.table_name = table_name

    async def fetch_due_sources(
        self,
        limit: int,
        source_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return enabled RSS sources, least recently polled first.

        Args:
            limit: Maximum number of sources to return
            source_id: Restrict the selection to a single source

        Returns:
            Source rows
        """
        filters = {"is_enabled": "is.true", "kind": "eq.rss"}
        if source_id:
            filters["id"] = f"eq.{source_id}"
        return await self.db.select(
            self.table_name,
            columns="id,name,kind,endpoint,success_count,failure_count",
            filters=filters,
            order="last_polled_at.asc.nullsfirst",
            limit=limit,
        )

    async def record_success(self, source: Dict[str, Any], polled_at: str) -> None:
        await self.db.update(
            self.table_name,
            {
                "last_polled_at": polled_at,
                "last_status": "ok",
                "last_error": None,
                "success_count": int(source.get("success_count") or 0) + 1,
            },
            filters={"id": f"eq.{source['id']}"},
        )

    async def record_failure(self, source: Dict[str, Any], error: str, polled_at: str) -> None:
        logger.warning(f"Source {source.get('name') or source['id']} failed: {error}")
        await self.db.update(
            self.table_name,
            {
                "last_polled_at": polled_at,
                "last_status": "error",
                "last_error": error[:500],
                "failure_count": int(source.get("failure_count") or 0) + 1,
            },
            filters={"id": f"eq.{source['id']}"},
        )


class ItemWriter:
    """Inserts feed entries into the ingest queue, skipping known URLs."""

    def __init__(self, db: RestClient, table_name: str = ITEMS_TABLE):
        self.db = db
        self.table_name = table_name

    async def insert_new(
        self,
        source_id: str,
        entries: Sequence[FeedEntry],
        created_at: str,
    ) -> int:
        """
        Insert entries whose URL is not in the queue yet.

        Returns:
            Number of rows actually inserted
        """
        if not entries:
            return 0
        rows = [entry.to_row(source_id, created_at) for entry in entries]
        inserted = await self.db.upsert(
            self.table_name,
            rows,
            on_conflict="url",
            ignore_duplicates=True,
        )
        return len(inserted)
