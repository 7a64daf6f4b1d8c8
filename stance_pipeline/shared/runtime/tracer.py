"""Per-invocation performance spans.

A ``Tracer`` accumulates wall-clock milliseconds per span category for one
stage invocation and produces the summary that is returned to the caller
and written to the metrics table.
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

EXTERNAL = "external"
DB = "db"
COMPUTE = "compute"
CATEGORIES = (EXTERNAL, DB, COMPUTE)

Clock = Callable[[], float]


class Tracer:
    """Tracks external/db/compute spans for a single invocation.

    Attributes:
        trace_id: Opaque identifier threaded through logs, response and metrics
        t0: Clock reading (seconds) when the invocation started
        spans: Accumulated milliseconds per category
    """

    def __init__(self, trace_id: Optional[str] = None, clock: Clock = time.perf_counter):
        self._clock = clock
        self.trace_id = trace_id or str(uuid.uuid4())
        self.t0 = clock()
        self.spans: Dict[str, float] = {}

    @classmethod
    def start(cls, clock: Clock = time.perf_counter) -> "Tracer":
        """Return a tracer bound to a fresh trace id and the current time."""
        return cls(clock=clock)

    def incr(self, category: str, ms: float) -> None:
        _check_category(category)
        self.spans[category] = self.spans.get(category, 0.0) + ms

    def span(self, category: str) -> Callable[[], None]:
        """Open a span; the returned ``end()`` records the elapsed time.

        A span whose ``end()`` is never called is simply not recorded.
        """
        _check_category(category)
        s0 = self._clock()

        def end() -> None:
            self.incr(category, (self._clock() - s0) * 1000.0)

        return end

    @contextmanager
    def measure(self, category: str = COMPUTE) -> Iterator[None]:
        """Context manager form of :meth:`span`; records even on error."""
        end = self.span(category)
        try:
            yield
        finally:
            end()

    def elapsed_ms(self) -> float:
        return (self._clock() - self.t0) * 1000.0

    def compute_elapsed_ms(self) -> float:
        """Elapsed time excluding time spent waiting on external services."""
        return self.elapsed_ms() - self.spans.get(EXTERNAL, 0.0)

    def finish(self, meta: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Build the invocation summary merged with ``meta``.

        Category totals are rounded to whole milliseconds and omitted when
        the category was never recorded.
        """
        done: Dict[str, Any] = {
            "traceId": self.trace_id,
            "duration_ms": int(round(self.elapsed_ms())),
        }
        for category in CATEGORIES:
            if category in self.spans:
                done[f"{category}_ms"] = int(round(self.spans[category]))
        done.update(meta or {})
        return done


def _check_category(category: str) -> None:
    if category not in CATEGORIES:
        raise ValueError(f"Unknown span category: {category!r} (expected one of {CATEGORIES})")
