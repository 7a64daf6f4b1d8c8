"""Data contracts for the ingest stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SOURCES_TABLE = "topic_sources"
ITEMS_TABLE = "ingest_items"

STATUS_NEW = "new"
MAX_ERRORS_REPORTED = 10


@dataclass
class FeedEntry:
    """One entry parsed from a source feed."""

    url: str
    title: str
    summary: Optional[str] = None
    published_at: Optional[str] = None

    def to_row(self, source_id: str, created_at: str) -> Dict[str, Any]:
        return {
            "source_id": source_id,
            "url": self.url,
            "title": self.title,
            "summary": self.summary,
            "published_at": self.published_at,
            "status": STATUS_NEW,
            "created_at": created_at,
        }


@dataclass
class SourceOutcome:
    """What happened while polling one source."""

    source_id: str
    fetched: int = 0
    inserted: int = 0
    deduped: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class IngestResult:
    """Counters returned by the ingest stage."""

    fetched: int = 0
    inserted: int = 0
    deduped: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, outcome: SourceOutcome) -> None:
        self.fetched += outcome.fetched
        self.inserted += outcome.inserted
        self.deduped += outcome.deduped
        if not outcome.ok:
            self.failed += 1
            if len(self.errors) < MAX_ERRORS_REPORTED:
                self.errors.append(f"{outcome.source_id}: {outcome.error}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fetched": self.fetched,
            "inserted": self.inserted,
            "deduped": self.deduped,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }
