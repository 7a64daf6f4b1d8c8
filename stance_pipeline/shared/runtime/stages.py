"""Stage definitions and the stage logic contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol, Tuple

if TYPE_CHECKING:
    from .context import StageContext


class StageLogic(Protocol):
    """Contract implemented by each stage's domain logic.

    ``run`` must select a bounded batch of pending work, use ``ctx.limit``
    for per-item concurrent work, consult ``ctx.should_stop()`` between
    chunks and return partial counters instead of overrunning the budget.
    """

    async def run(self, ctx: "StageContext") -> Mapping[str, Any]:
        ...


@dataclass(frozen=True)
class StageDefinition:
    """Static description of one pipeline stage."""

    name: str
    result_keys: Tuple[str, ...]
    item_keys: Tuple[str, ...]
    budget_env: str
    default_budget_ms: int
    concurrency_env: str
    default_concurrency: int
    noop_result: Mapping[str, Any] = field(default_factory=dict)

    def summarize(self, result: Any) -> Optional[Dict[str, Any]]:
        """Keep only the allow-listed counters from a logic result.

        Returns None when ``result`` is not a mapping or carries none of the
        known keys.
        """
        if not isinstance(result, Mapping):
            return None
        summary = {key: result[key] for key in self.result_keys if key in result}
        return summary or None

    def item_count(self, summary: Optional[Mapping[str, Any]]) -> Optional[int]:
        """First non-null counter among ``item_keys`` for the metrics row."""
        if not summary:
            return None
        for key in self.item_keys:
            value = summary.get(key)
            if value is not None:
                return value
        return None


class NoopLogic:
    """Stand-in used when a stage's logic cannot be built."""

    def __init__(self, definition: StageDefinition):
        self.definition = definition

    async def run(self, ctx: "StageContext") -> Dict[str, Any]:
        return dict(self.definition.noop_result)


INGEST = StageDefinition(
    name="ingest",
    result_keys=("fetched", "inserted", "processed", "deduped", "skipped", "failed", "errors"),
    item_keys=("processed", "inserted"),
    budget_env="INGEST_BUDGET_MS",
    default_budget_ms=2000,
    concurrency_env="INGEST_CONCURRENCY",
    default_concurrency=4,
    noop_result={"fetched": 0, "inserted": 0, "skipped": 0},
)

CLUSTER = StageDefinition(
    name="cluster",
    result_keys=("clusters", "items", "updated", "skipped", "failed", "errors"),
    item_keys=("items",),
    budget_env="CLUSTER_BUDGET_MS",
    default_budget_ms=1000,
    concurrency_env="CLUSTER_PARALLEL",
    default_concurrency=4,
    noop_result={"clusters": 0, "items": 0, "updated": 0, "skipped": 0},
)

GENERATE = StageDefinition(
    name="generate",
    result_keys=("drafts_created", "drafts_updated", "skipped", "failed", "errors"),
    item_keys=("drafts_created", "drafts_updated"),
    budget_env="GEN_BUDGET_MS",
    default_budget_ms=2000,
    concurrency_env="GEN_PARALLEL",
    default_concurrency=3,
    noop_result={"drafts_created": 0, "drafts_updated": 0, "skipped": 0},
)

STAGES: Dict[str, StageDefinition] = {
    stage.name: stage for stage in (INGEST, CLUSTER, GENERATE)
}


def get_stage(name: str) -> StageDefinition:
    try:
        return STAGES[name]
    except KeyError as exc:
        raise ValueError(f"Unknown stage {name!r}; expected one of {sorted(STAGES)}") from exc
