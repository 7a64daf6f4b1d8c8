"""Data contracts for the cluster stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ITEMS_TABLE = "ingest_items"
TOPICS_TABLE = "topic_drafts"

ITEM_STATUS_NEW = "new"
ITEM_STATUS_CLUSTERED = "clustered"
ITEM_STATUS_REJECTED = "rejected"
TOPIC_STATUS_PENDING = "pending"

MAX_ERRORS_REPORTED = 10


@dataclass
class QueuedItem:
    """An ``ingest_items`` row waiting to be clustered."""

    id: str
    title: str
    summary: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QueuedItem":
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            summary=row.get("summary"),
        )

    @property
    def text(self) -> str:
        return f"{self.title} {self.summary or ''}".strip()


@dataclass
class ClusterResult:
    """Counters returned by the cluster stage."""

    clusters: int = 0
    items: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def record_error(self, message: str, count: int = 1) -> None:
        self.failed += count
        if len(self.errors) < MAX_ERRORS_REPORTED:
            self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clusters": self.clusters,
            "items": self.items,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }
