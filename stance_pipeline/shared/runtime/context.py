"""The per-invocation context handed to stage logic."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import httpx

from stance_pipeline.shared.db.rest import RestClient
from stance_pipeline.shared.utils.logging import StageLogger

from .limiter import ConcurrencyLimiter
from .tracer import Tracer

T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


@dataclass
class StageContext:
    """Everything one stage logic execution may use.

    Created by the stage runtime at the start of a request and discarded
    when the response is sent; never persisted.
    """

    stage: str
    tracer: Tracer
    budget_ms: int
    limiter: ConcurrencyLimiter
    log: StageLogger
    http: httpx.AsyncClient
    db: Optional[RestClient] = None
    now_iso: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def trace_id(self) -> str:
        return self.tracer.trace_id

    @property
    def started_at(self) -> float:
        return self.tracer.t0

    @property
    def concurrency(self) -> int:
        return self.limiter.max_concurrency

    def should_stop(self) -> bool:
        """True once compute+db time (elapsed minus external) exceeds the budget.

        Advisory only: logic must call this between chunks. Time spent on
        external calls is not charged, so a stage blocked on one slow
        upstream call never reports the budget as exhausted.
        """
        return self.tracer.compute_elapsed_ms() > self.budget_ms

    async def limit(self, task: Callable[[], Awaitable[T]]) -> T:
        return await self.limiter.limit(task)

    @staticmethod
    def chunk(items: Sequence[T], size: int) -> List[List[T]]:
        return chunk(items, size)

    def require_db(self) -> RestClient:
        """Return the database gateway or fail when it is not configured."""
        if self.db is None:
            raise RuntimeError(
                "Database access is not configured; set PROJECT_URL and SERVICE_ROLE_KEY"
            )
        return self.db
