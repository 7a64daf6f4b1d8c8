import asyncio

import httpx
import pytest

from stance_pipeline.shared.db import RestClient, RestError, SupabaseConfig, in_filter
from tests.fakes import PROJECT_URL, SERVICE_KEY, FakePostgrest


def _run(handler, call):
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RestClient(SupabaseConfig(url=PROJECT_URL + "/", key=SERVICE_KEY), http)
            return await call(client)

    return asyncio.run(main())


def test_select_sends_filters_order_and_auth_headers():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[{"id": "1"}])

    rows = _run(
        handler,
        lambda db: db.select(
            "ingest_items",
            columns="id,title",
            filters={"status": "eq.new"},
            order="created_at.asc",
            limit=5,
        ),
    )

    assert rows == [{"id": "1"}]
    request = seen[0]
    assert str(request.url).startswith(f"{PROJECT_URL}/rest/v1/ingest_items?")
    assert request.url.params["status"] == "eq.new"
    assert request.url.params["select"] == "id,title"
    assert request.url.params["limit"] == "5"
    assert request.headers["apikey"] == SERVICE_KEY
    assert request.headers["authorization"] == f"Bearer {SERVICE_KEY}"


def test_upsert_ignoring_duplicates_returns_only_new_rows():
    pg = FakePostgrest({"ingest_items": [{"id": "1", "url": "https://a"}]})

    rows = _run(
        pg,
        lambda db: db.upsert(
            "ingest_items",
            [{"url": "https://a"}, {"url": "https://b"}],
            on_conflict="url",
            ignore_duplicates=True,
        ),
    )

    assert [row["url"] for row in rows] == ["https://b"]
    assert "resolution=ignore-duplicates" in pg.requests[0].headers["prefer"]
    assert len(pg.rows("ingest_items")) == 2


def test_update_requires_a_filter():
    with pytest.raises(ValueError):
        _run(FakePostgrest(), lambda db: db.update("topic_drafts", {"status": "failed"}, filters={}))


def test_error_status_raises_rest_error():
    pg = FakePostgrest()
    pg.fail[("GET", "topic_drafts")] = 401

    with pytest.raises(RestError) as excinfo:
        _run(pg, lambda db: db.select("topic_drafts"))

    assert excinfo.value.status == 401
    assert excinfo.value.table == "topic_drafts"


def test_non_public_schema_sets_profile_headers():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RestClient(SupabaseConfig(url=PROJECT_URL, key=SERVICE_KEY, schema="pipeline"), http)
            await client.select("topic_sources")

    asyncio.run(main())

    assert seen[0].headers["accept-profile"] == "pipeline"


def test_in_filter_quotes_reserved_characters():
    assert in_filter(["a", "b"]) == "in.(a,b)"
    assert in_filter(["x,y"]) == 'in.("x,y")'
