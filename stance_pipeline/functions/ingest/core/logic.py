"""Ingest stage: poll enabled sources and queue new items for clustering."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Set

from stance_pipeline.shared.db.rest import RestError
from stance_pipeline.shared.runtime import COMPUTE, StageContext
from stance_pipeline.shared.utils.config_validator import validate_int_env

from .contracts import FeedEntry, IngestResult, SourceOutcome
from .feeds import is_valid_url, parse_feed
from .sources import ItemWriter, SourceRegistry

USER_AGENT = "stance-pipeline-ingest/1.0"


@dataclass
class IngestLogic:
    """Polls a bounded batch of RSS sources per invocation.

    Sources are taken least-recently-polled first, so sources not reached
    before the budget runs out are first in line on the next run. Items are
    upserted on ``url`` with duplicates ignored, which keeps re-runs from
    queueing the same item twice.
    """

    source_limit: int = 10
    max_items_per_source: int = 25

    @classmethod
    def from_env(cls) -> "IngestLogic":
        return cls(
            source_limit=validate_int_env("INGEST_SOURCE_LIMIT", default=10, min_value=1),
            max_items_per_source=validate_int_env(
                "INGEST_MAX_ITEMS_PER_SOURCE", default=25, min_value=1
            ),
        )

    async def run(self, ctx: StageContext) -> Dict[str, Any]:
        db = ctx.require_db()
        registry = SourceRegistry(db)
        writer = ItemWriter(db)

        source_id = ctx.payload.get("source_id")
        sources = await registry.fetch_due_sources(
            self.source_limit, str(source_id) if source_id else None
        )
        ctx.log.info("ingest.sources", count=len(sources))

        result = IngestResult()
        seen_urls: Set[str] = set()
        batches = ctx.chunk(sources, ctx.concurrency)

        for index, batch in enumerate(batches):
            if ctx.should_stop():
                result.skipped += sum(len(rest) for rest in batches[index:])
                ctx.log.info("ingest.budget_exhausted", skipped=result.skipped)
                break

            outcomes = await asyncio.gather(
                *(
                    ctx.limit(
                        lambda source=source: self._ingest_source(
                            ctx, registry, writer, source, seen_urls
                        )
                    )
                    for source in batch
                ),
                return_exceptions=True,
            )
            for source, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    outcome = SourceOutcome(
                        source_id=str(source["id"]),
                        error=str(outcome) or outcome.__class__.__name__,
                    )
                result.add(outcome)

        return result.to_dict()

    async def _ingest_source(
        self,
        ctx: StageContext,
        registry: SourceRegistry,
        writer: ItemWriter,
        source: Dict[str, Any],
        seen_urls: Set[str],
    ) -> SourceOutcome:
        outcome = SourceOutcome(source_id=str(source["id"]))
        name = source.get("name") or outcome.source_id
        try:
            endpoint = source.get("endpoint")
            if not is_valid_url(endpoint):
                raise ValueError(f"Invalid feed URL: {endpoint!r}")

            response = await ctx.http.get(endpoint, headers={"User-Agent": USER_AGENT})
            response.raise_for_status()

            with ctx.tracer.measure(COMPUTE):
                entries = parse_feed(response.content, name, self.max_items_per_source)
            outcome.fetched = len(entries)

            fresh: list[FeedEntry] = []
            for entry in entries:
                if entry.url in seen_urls:
                    outcome.deduped += 1
                    continue
                seen_urls.add(entry.url)
                fresh.append(entry)

            outcome.inserted = await writer.insert_new(outcome.source_id, fresh, ctx.now_iso)
            outcome.deduped += len(fresh) - outcome.inserted
        except Exception as exc:  # noqa: BLE001
            outcome.error = str(exc) or exc.__class__.__name__
            try:
                await registry.record_failure(source, outcome.error, ctx.now_iso)
            except RestError as health_exc:
                ctx.log.warning(
                    "ingest.health_write_failed", source=name, error=str(health_exc)
                )
            return outcome

        try:
            await registry.record_success(source, ctx.now_iso)
        except RestError as exc:
            ctx.log.warning("ingest.health_write_failed", source=name, error=str(exc))
            outcome.error = str(exc)
            return outcome

        ctx.log.debug(
            "ingest.source_done",
            source=name,
            fetched=outcome.fetched,
            inserted=outcome.inserted,
        )
        return outcome
