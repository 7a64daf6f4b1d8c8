"""Cluster stage: group newly ingested items into pending topic drafts."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List

from stance_pipeline.shared.db.rest import RestError
from stance_pipeline.shared.runtime import COMPUTE, StageContext
from stance_pipeline.shared.utils.config_validator import validate_float_env, validate_int_env

from .clustering import TopicGroup, TopicGrouper, tokenize, vectorize
from .contracts import ClusterResult, QueuedItem
from .store import ClusterStore


@dataclass
class ClusterLogic:
    """Assigns each new item to the most similar pending topic.

    Items are processed oldest first in small chunks with a budget check
    between chunks. Assignments are written with a ``status=eq.new`` guard,
    so an item that another run already clustered is never moved twice.
    """

    batch_size: int = 50
    chunk_size: int = 10
    similarity_threshold: float = 0.35
    topic_window: int = 100

    @classmethod
    def from_env(cls) -> "ClusterLogic":
        return cls(
            batch_size=validate_int_env("CLUSTER_BATCH_SIZE", default=50, min_value=1),
            chunk_size=validate_int_env("CLUSTER_CHUNK_SIZE", default=10, min_value=1),
            similarity_threshold=validate_float_env(
                "CLUSTER_SIMILARITY_THRESHOLD", default=0.35, min_value=0.0, max_value=1.0
            ),
            topic_window=validate_int_env("CLUSTER_TOPIC_WINDOW", default=100, min_value=1),
        )

    async def run(self, ctx: StageContext) -> Dict[str, Any]:
        store = ClusterStore(ctx.require_db())
        result = ClusterResult()

        items = await store.fetch_new_items(self.batch_size)
        if not items:
            ctx.log.info("cluster.nothing_queued")
            return result.to_dict()

        grouper = TopicGrouper(similarity_threshold=self.similarity_threshold)
        grouper.load_existing_groups(await store.fetch_pending_topics(self.topic_window))

        empty: List[str] = []
        chunks = ctx.chunk(items, self.chunk_size)
        for index, part in enumerate(chunks):
            if ctx.should_stop():
                result.skipped += sum(len(rest) for rest in chunks[index:])
                ctx.log.info("cluster.budget_exhausted", skipped=result.skipped)
                break
            with ctx.tracer.measure(COMPUTE):
                empty.extend(self._assign_chunk(grouper, part))
            result.items += len(part)

        if empty:
            try:
                result.updated += await store.reject_items(empty)
                ctx.log.info("cluster.rejected_empty", count=len(empty))
            except RestError as exc:
                result.record_error(f"rejecting empty items: {exc}", count=len(empty))

        groups = grouper.touched_groups()
        outcomes = await asyncio.gather(
            *(
                ctx.limit(lambda group=group: self._persist_group(ctx, store, group))
                for group in groups
            ),
            return_exceptions=True,
        )
        for group, outcome in zip(groups, outcomes):
            if isinstance(outcome, Exception):
                result.record_error(
                    f"{group.topic_id or group.title}: {outcome}", count=len(group.members)
                )
                continue
            result.clusters += 1
            result.updated += outcome

        return result.to_dict()

    @staticmethod
    def _assign_chunk(grouper: TopicGrouper, part: List[QueuedItem]) -> List[str]:
        """Assign a chunk of items; return ids of items with no usable text."""
        empty = []
        for item in part:
            tokens = tokenize(item.text)
            if not tokens:
                empty.append(item.id)
                continue
            grouper.assign(item.id, vectorize(tokens), item.title, tokens)
        return empty

    @staticmethod
    async def _persist_group(ctx: StageContext, store: ClusterStore, group: TopicGroup) -> int:
        """Move the group's items, then write the topic's count and centroid.

        A new topic is created with a zero count. Counts only grow by the
        rows that actually moved out of ``new``.
        """
        keywords = group.keywords()
        created = group.is_new
        if created:
            group.topic_id = await store.create_topic(
                group.title or "Untitled topic",
                keywords,
                group.centroid,
                0,
                ctx.now_iso,
            )
        moved = await store.assign_items(group.topic_id, group.member_ids)
        if moved:
            await store.update_topic(
                group.topic_id,
                keywords,
                group.centroid,
                group.stored_count + moved,
                ctx.now_iso,
            )
        ctx.log.debug(
            "cluster.topic_saved",
            topic_id=group.topic_id,
            new=created,
            members=len(group.member_ids),
            moved=moved,
        )
        return moved
