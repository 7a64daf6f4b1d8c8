"""Timeboxed stage runtime shared by the ingest, cluster and generate functions.

Provides:
- Tracer: per-invocation external/db/compute spans
- ConcurrencyLimiter: FIFO-bounded in-flight sub-tasks
- InstrumentedTransport / build_http_client: db-vs-external timing of outbound calls
- StageContext: budget, limiter, chunking and trace-bound logging for stage logic
- StageRuntime: method/secret checks, dispatch, summarization, metrics emission

Usage:
    from stance_pipeline.shared.runtime import StageRuntime, CLUSTER
    runtime = StageRuntime(CLUSTER, ClusterLogic)
"""

from .config import StageSettings
from .context import StageContext, chunk
from .handler import StageResponse, StageRuntime
from .http import InstrumentedTransport, build_http_client, classify_url
from .limiter import ConcurrencyLimiter
from .metrics import MetricsRow, emit_metrics
from .stages import (
    CLUSTER,
    GENERATE,
    INGEST,
    STAGES,
    NoopLogic,
    StageDefinition,
    StageLogic,
    get_stage,
)
from .tracer import COMPUTE, DB, EXTERNAL, Tracer

__all__ = [
    "StageSettings",
    "StageContext",
    "chunk",
    "StageResponse",
    "StageRuntime",
    "InstrumentedTransport",
    "build_http_client",
    "classify_url",
    "ConcurrencyLimiter",
    "MetricsRow",
    "emit_metrics",
    "CLUSTER",
    "GENERATE",
    "INGEST",
    "STAGES",
    "NoopLogic",
    "StageDefinition",
    "StageLogic",
    "get_stage",
    "COMPUTE",
    "DB",
    "EXTERNAL",
    "Tracer",
]
