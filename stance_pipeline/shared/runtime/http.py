"""Instrumented outbound HTTP for stage invocations.

Every request issued through the client built here is timed into the
invocation's tracer: requests to the project's own base URL count as
``db``, everything else (feeds, model APIs) as ``external``.
"""

from __future__ import annotations

from typing import Optional

import httpx

from stance_pipeline.shared.db.connection import normalize_url

from .tracer import DB, EXTERNAL, Tracer

DEFAULT_TIMEOUT_SECONDS = 20.0


def classify_url(url: str, project_url: str) -> str:
    """Return ``db`` when ``url`` targets the project endpoint, else ``external``."""
    base = normalize_url(project_url)
    if base and str(url).startswith(base):
        return DB
    return EXTERNAL


class InstrumentedTransport(httpx.AsyncBaseTransport):
    """Transport decorator that opens a db/external span around each request.

    The span covers the request until response headers arrive and is
    closed in ``finally``, so failed requests are measured too and their
    exceptions reach the caller untouched.
    """

    def __init__(
        self,
        tracer: Tracer,
        project_url: Optional[str],
        wrapped: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.tracer = tracer
        self.project_url = normalize_url(project_url)
        self._owns_wrapped = wrapped is None
        self._wrapped = wrapped or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        end = self.tracer.span(classify_url(str(request.url), self.project_url))
        try:
            return await self._wrapped.handle_async_request(request)
        finally:
            end()

    async def aclose(self) -> None:
        if self._owns_wrapped:
            await self._wrapped.aclose()


def build_http_client(
    tracer: Tracer,
    project_url: Optional[str],
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the invocation's ``httpx.AsyncClient``.

    Args:
        tracer: Tracer receiving the spans
        project_url: Project base URL used for db classification
        timeout: Per-request timeout in seconds
        transport: Underlying transport (tests pass ``httpx.MockTransport``)
    """
    return httpx.AsyncClient(
        transport=InstrumentedTransport(tracer, project_url, transport),
        timeout=httpx.Timeout(timeout, connect=min(5.0, timeout)),
        follow_redirects=True,
    )
