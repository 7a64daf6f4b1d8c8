"""Reads and writes for the generate stage tables."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from stance_pipeline.shared.db.rest import RestClient

from .contracts import (
    ITEMS_TABLE,
    QUESTIONS_TABLE,
    TOPIC_STATUS_PENDING,
    TOPICS_TABLE,
    GeneratedQuestion,
)

logger = logging.getLogger(__name__)


class QuestionStore:
    """Loads pending topics and stores drafted questions."""

    def __init__(self, db: RestClient):
        self.db = db

    async def fetch_pending_topics(self, limit: int) -> List[Dict[str, Any]]:
        return await self.db.select(
            TOPICS_TABLE,
            columns="id,title,keywords",
            filters={"status": f"eq.{TOPIC_STATUS_PENDING}"},
            order="created_at.asc",
            limit=limit,
        )

    async def fetch_headlines(self, topic_id: str, limit: int) -> List[str]:
        rows = await self.db.select(
            ITEMS_TABLE,
            columns="title",
            filters={"topic_id": f"eq.{topic_id}"},
            order="published_at.desc.nullslast",
            limit=limit,
        )
        return [row["title"] for row in rows if row.get("title")]

    async def has_question(self, topic_id: str) -> bool:
        rows = await self.db.select(
            QUESTIONS_TABLE,
            columns="id",
            filters={"topic_id": f"eq.{topic_id}"},
            limit=1,
        )
        return bool(rows)

    async def save_question(
        self, topic_id: str, question: GeneratedQuestion, created_at: str
    ) -> None:
        """Insert or replace the question drafted for ``topic_id``."""
        await self.db.upsert(
            QUESTIONS_TABLE,
            question.to_row(topic_id, created_at),
            on_conflict="topic_id",
        )

    async def mark_topic(self, topic_id: str, status: str, now_iso: str) -> bool:
        """
        Move a pending topic to ``status``.

        Returns:
            False when the topic was no longer pending
        """
        rows = await self.db.update(
            TOPICS_TABLE,
            {"status": status, "updated_at": now_iso},
            filters={"id": f"eq.{topic_id}", "status": f"eq.{TOPIC_STATUS_PENDING}"},
        )
        if not rows:
            logger.info(f"Topic {topic_id} was no longer pending; status left unchanged")
        return bool(rows)
