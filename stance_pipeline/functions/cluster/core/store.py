"""Reads and writes for the cluster stage tables."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from stance_pipeline.shared.db.rest import RestClient, in_filter

from .contracts import (
    ITEM_STATUS_CLUSTERED,
    ITEM_STATUS_NEW,
    ITEM_STATUS_REJECTED,
    ITEMS_TABLE,
    TOPIC_STATUS_PENDING,
    TOPICS_TABLE,
    QueuedItem,
)

logger = logging.getLogger(__name__)


class ClusterStore:
    """Loads queued items and pending topics; persists group assignments."""

    def __init__(self, db: RestClient):
        self.db = db

    async def fetch_new_items(self, limit: int) -> List[QueuedItem]:
        rows = await self.db.select(
            ITEMS_TABLE,
            columns="id,title,summary",
            filters={"status": f"eq.{ITEM_STATUS_NEW}"},
            order="created_at.asc",
            limit=limit,
        )
        return [QueuedItem.from_row(row) for row in rows]

    async def fetch_pending_topics(self, limit: int) -> List[Dict[str, Any]]:
        return await self.db.select(
            TOPICS_TABLE,
            columns="id,title,centroid,item_count",
            filters={"status": f"eq.{TOPIC_STATUS_PENDING}"},
            order="updated_at.desc",
            limit=limit,
        )

    async def create_topic(
        self,
        title: str,
        keywords: Sequence[str],
        centroid: Sequence[float],
        item_count: int,
        now_iso: str,
    ) -> str:
        """Insert a pending topic draft and return its id."""
        rows = await self.db.insert(
            TOPICS_TABLE,
            {
                "title": title,
                "keywords": list(keywords),
                "centroid": list(centroid),
                "item_count": item_count,
                "status": TOPIC_STATUS_PENDING,
                "created_at": now_iso,
                "updated_at": now_iso,
            },
        )
        if not rows or "id" not in rows[0]:
            raise RuntimeError("Topic insert returned no id")
        return str(rows[0]["id"])

    async def update_topic(
        self,
        topic_id: str,
        keywords: Sequence[str],
        centroid: Sequence[float],
        item_count: int,
        now_iso: str,
    ) -> None:
        await self.db.update(
            TOPICS_TABLE,
            {
                "keywords": list(keywords),
                "centroid": list(centroid),
                "item_count": item_count,
                "updated_at": now_iso,
            },
            filters={"id": f"eq.{topic_id}", "status": f"eq.{TOPIC_STATUS_PENDING}"},
        )

    async def reject_items(self, item_ids: Sequence[str]) -> int:
        """Mark still-new items that carry no usable text as rejected."""
        if not item_ids:
            return 0
        rows = await self.db.update(
            ITEMS_TABLE,
            {"status": ITEM_STATUS_REJECTED},
            filters={"id": in_filter(item_ids), "status": f"eq.{ITEM_STATUS_NEW}"},
        )
        return len(rows)

    async def assign_items(self, topic_id: str, item_ids: Sequence[str]) -> int:
        """
        Move still-new items into a topic.

        Returns:
            Number of rows that actually changed
        """
        if not item_ids:
            return 0
        rows = await self.db.update(
            ITEMS_TABLE,
            {"status": ITEM_STATUS_CLUSTERED, "topic_id": topic_id},
            filters={"id": in_filter(item_ids), "status": f"eq.{ITEM_STATUS_NEW}"},
        )
        if len(rows) < len(item_ids):
            logger.info(
                f"Topic {topic_id}: {len(item_ids) - len(rows)} items were already clustered"
            )
        return len(rows)
