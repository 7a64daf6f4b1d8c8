"""Shared request handler used by the ingest, cluster and generate functions.

One invocation walks a fixed sequence: method check, shared-secret check,
tracer start, context construction, body peek, logic dispatch, result
summarization, then either the success or the failure finalization. Only
the last two steps write a metrics row.
"""

from __future__ import annotations

import asyncio
import hmac
import json
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import flask
import httpx

from stance_pipeline.shared.db.rest import RestClient
from stance_pipeline.shared.utils.config_validator import ConfigurationError
from stance_pipeline.shared.utils.logging import StageLogger

from .config import StageSettings
from .context import StageContext
from .http import build_http_client
from .limiter import ConcurrencyLimiter
from .metrics import MetricsRow, emit_metrics
from .stages import NoopLogic, StageDefinition, StageLogic
from .tracer import Clock, Tracer

SECRET_HEADER = "x-cron-secret"
TRACE_HEADER = "x-trace-id"
BODY_PREVIEW_CHARS = 500
STACK_PREVIEW_CHARS = 1500

LogicFactory = Callable[[], StageLogic]


@dataclass
class StageResponse:
    """Status, JSON body and extra headers of one invocation."""

    status: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(self.body, ensure_ascii=False, default=str)

    def to_flask(self) -> flask.Response:
        response = flask.make_response(self.to_json(), self.status)
        response.headers["Content-Type"] = "application/json"
        for name, value in self.headers.items():
            response.headers[name] = value
        return response


class StageRuntime:
    """Authenticates, traces and runs one stage's logic per request."""

    def __init__(
        self,
        definition: StageDefinition,
        logic_factory: Optional[LogicFactory] = None,
        *,
        settings: Optional[StageSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = time.perf_counter,
    ) -> None:
        """
        Args:
            definition: The stage being served
            logic_factory: Builds the stage logic; failures while building
                fall back to the stage's no-op logic
            settings: Fixed settings; when None they are read from the
                environment on every request
            transport: Underlying HTTP transport for outbound calls
            clock: Monotonic clock in seconds (tests inject a fake)
        """
        self.definition = definition
        self._logic_factory = logic_factory
        self._settings = settings
        self._transport = transport
        self._clock = clock
        self._log = StageLogger(__name__, definition.name)

    async def handle(
        self,
        method: str,
        headers: Mapping[str, str],
        body: bytes | str | None = None,
    ) -> StageResponse:
        if (method or "").upper() != "POST":
            return StageResponse(405, {"ok": False, "error": "Method Not Allowed"})

        incoming = _header(headers, SECRET_HEADER)
        expected = self._expected_secret()
        if not expected or incoming is None or not hmac.compare_digest(
            incoming.encode("utf-8"), expected.encode("utf-8")
        ):
            self._log.warning("unauthorized", hasExpected=bool(expected))
            return StageResponse(401, {"ok": False, "error": "Unauthorized"})

        tracer = Tracer.start(clock=self._clock)
        try:
            settings = self._settings or StageSettings.from_env(self.definition)
        except ConfigurationError as exc:
            trace_id = tracer.trace_id
            self._log.bind(trace_id).error("config_error", error=str(exc))
            return StageResponse(
                500,
                {"ok": False, "traceId": trace_id, "error": str(exc)},
                {TRACE_HEADER: trace_id},
            )

        http_client = build_http_client(
            tracer,
            settings.project_url,
            timeout=settings.timeout_seconds,
            transport=self._transport,
        )
        try:
            return await self._invoke(tracer, http_client, settings, headers, body)
        finally:
            await http_client.aclose()

    async def _invoke(
        self,
        tracer: Tracer,
        http_client: httpx.AsyncClient,
        settings: StageSettings,
        headers: Mapping[str, str],
        body: bytes | str | None,
    ) -> StageResponse:
        definition = self.definition
        trace_id = tracer.trace_id
        log = self._log.bind(trace_id)
        supabase = settings.supabase_config()

        ctx = StageContext(
            stage=definition.name,
            tracer=tracer,
            budget_ms=settings.budget_ms,
            limiter=ConcurrencyLimiter(settings.concurrency),
            log=log,
            http=http_client,
            db=RestClient(supabase, http_client) if supabase else None,
            now_iso=datetime.now(timezone.utc).isoformat(),
        )

        log.info(
            "env_check",
            hasProjectUrl=bool(settings.project_url),
            hasServiceRoleKey=bool(settings.service_key),
            budgetMs=settings.budget_ms,
            concurrency=settings.concurrency,
        )
        log.info("start", ua=_header(headers, "user-agent"))

        try:
            self._peek_body(body, ctx)
            logic = self._build_logic(log)
            result = await logic.run(ctx)

            summary = definition.summarize(result)
            done = tracer.finish(summary or {})
            await emit_metrics(
                MetricsRow.from_summary(
                    definition.name, done, items=definition.item_count(summary), ok=True
                ),
                supabase,
                http_client,
            )
            log.info("done", **done)

            return StageResponse(
                200,
                {
                    "ok": True,
                    "traceId": trace_id,
                    **done,
                    "result": summary if summary is not None else result,
                },
                {TRACE_HEADER: trace_id},
            )
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or exc.__class__.__name__
            done = tracer.finish({"error": message})
            await emit_metrics(
                MetricsRow.from_summary(definition.name, done, ok=False, note=message),
                supabase,
                http_client,
            )
            log.error("exception", **done, stack=traceback.format_exc()[:STACK_PREVIEW_CHARS])
            return StageResponse(
                500,
                {"ok": False, "traceId": trace_id, "error": message},
                {TRACE_HEADER: trace_id},
            )

    def _expected_secret(self) -> str:
        if self._settings is not None:
            return self._settings.cron_secret
        return StageSettings.secret_from_env()

    def _build_logic(self, log: StageLogger) -> StageLogic:
        """Build the stage logic, falling back to the no-op logic on failure.

        Only construction is guarded; errors raised by ``run`` propagate.
        """
        if self._logic_factory is None:
            return NoopLogic(self.definition)
        try:
            return self._logic_factory()
        except Exception as exc:  # noqa: BLE001
            log.warning("logic_unavailable", error=str(exc), fallback="noop")
            return NoopLogic(self.definition)

    @staticmethod
    def _peek_body(body: bytes | str | None, ctx: StageContext) -> None:
        """Log a preview of the request body and expose JSON objects as payload."""
        try:
            raw = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else (body or "")
            if not raw:
                return
            ctx.log.info("request.body", preview=raw[:BODY_PREVIEW_CHARS])
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                ctx.payload = parsed
        except (ValueError, TypeError) as exc:
            ctx.log.debug("request.body_unparsed", error=str(exc))

    def flask_handler(self, request: flask.Request) -> flask.Response:
        """Adapter for Cloud Function / Flask request objects."""
        try:
            body = request.get_data(cache=True)
        except Exception as exc:  # noqa: BLE001
            self._log.debug("request.body_unavailable", error=str(exc))
            body = None
        response = _run_async(self.handle(request.method, request.headers, body))
        return response.to_flask()


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def _run_async(coro):
    """Run an async coroutine in a new or existing event loop."""
    try:
        return asyncio.run(coro)
    except RuntimeError as exc:
        if "event loop" in str(exc).lower():
            loop = asyncio.new_event_loop()
            try:
                asyncio.set_event_loop(loop)
                return loop.run_until_complete(coro)
            finally:
                loop.close()
        raise
