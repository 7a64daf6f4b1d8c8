"""Best-effort emission of per-invocation metrics rows."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional

import httpx

from stance_pipeline.shared.db.connection import SupabaseConfig

logger = logging.getLogger(__name__)

METRICS_TABLE = "admin_fn_perf"


@dataclass
class MetricsRow:
    """One invocation's outcome as stored in ``admin_fn_perf``."""

    func: str
    trace_id: str
    duration_ms: int
    external_ms: Optional[int] = None
    db_ms: Optional[int] = None
    compute_ms: Optional[int] = None
    items: Optional[int] = None
    ok: bool = True
    note: Optional[str] = None

    @classmethod
    def from_summary(
        cls,
        func: str,
        done: Mapping[str, Any],
        *,
        items: Optional[int] = None,
        ok: bool = True,
        note: Optional[str] = None,
    ) -> "MetricsRow":
        return cls(
            func=func,
            trace_id=done["traceId"],
            duration_ms=done["duration_ms"],
            external_ms=done.get("external_ms"),
            db_ms=done.get("db_ms"),
            compute_ms=done.get("compute_ms"),
            items=items,
            ok=ok,
            note=note,
        )


async def emit_metrics(
    row: MetricsRow,
    config: Optional[SupabaseConfig],
    http_client: httpx.AsyncClient,
) -> bool:
    """Write ``row`` to the metrics table.

    Never raises: a missing configuration or any failure is logged and
    reported as ``False`` so metrics can never change an invocation's
    outcome.
    """
    if config is None:
        logger.warning(
            "perf_emit_skip_env | func=%s traceId=%s",
            row.func,
            row.trace_id,
        )
        return False

    endpoint = f"{config.rest_url}/{METRICS_TABLE}"
    headers = {
        "Content-Type": "application/json",
        "apikey": config.key,
        "Authorization": f"Bearer {config.key}",
        "Prefer": "resolution=merge-duplicates",
    }
    try:
        response = await http_client.post(endpoint, json=[asdict(row)], headers=headers)
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "perf_emit_error | func=%s traceId=%s error=%s",
            row.func,
            row.trace_id,
            exc,
        )
        return False

    ok = response.status_code < 400
    logger.log(
        logging.INFO if ok else logging.WARNING,
        "perf_emit_result | func=%s traceId=%s status=%s response_preview=%s",
        row.func,
        row.trace_id,
        response.status_code,
        response.text[:200],
    )
    return ok
