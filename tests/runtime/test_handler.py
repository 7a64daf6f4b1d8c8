import asyncio
import json

import flask
import pytest

from stance_pipeline.shared.runtime import CLUSTER, GENERATE, INGEST, StageRuntime, StageSettings
from stance_pipeline.shared.runtime.handler import SECRET_HEADER, TRACE_HEADER
from tests.fakes import PROJECT_URL, SERVICE_KEY, FakeClock, FakeWeb

SECRET = "s3cret"
METRICS = "admin_fn_perf"


class FakeLogic:
    def __init__(self, result=None, error=None, on_run=None):
        self.result = result if result is not None else {}
        self.error = error
        self.on_run = on_run
        self.contexts = []

    async def run(self, ctx):
        self.contexts.append(ctx)
        if self.on_run:
            await self.on_run(ctx)
        if self.error:
            raise self.error
        return self.result


def _settings(**overrides):
    values = dict(
        cron_secret=SECRET,
        project_url=PROJECT_URL,
        service_key=SERVICE_KEY,
        budget_ms=1000,
        concurrency=4,
    )
    values.update(overrides)
    return StageSettings(**values)


def _runtime(definition, logic=None, web=None, factory=None, **settings):
    web = web or FakeWeb()
    if factory is None and logic is not None:
        factory = lambda: logic  # noqa: E731
    runtime = StageRuntime(
        definition,
        factory,
        settings=_settings(**settings),
        transport=web.transport(),
        clock=FakeClock(),
    )
    return runtime, web


def _invoke(runtime, method="POST", secret=SECRET, body=None):
    headers = {SECRET_HEADER: secret} if secret is not None else {}
    return asyncio.run(runtime.handle(method, headers, body))


@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "OPTIONS"])
def test_non_post_is_rejected_without_metrics(method):
    runtime, web = _runtime(CLUSTER, FakeLogic())

    response = _invoke(runtime, method=method)

    assert response.status == 405
    assert response.body["ok"] is False
    assert web.postgrest.requests == []


@pytest.mark.parametrize("secret", [None, "", "wrong"])
def test_bad_secret_is_rejected_without_metrics(secret):
    logic = FakeLogic({"clusters": 1})
    runtime, web = _runtime(CLUSTER, logic)

    response = _invoke(runtime, secret=secret)

    assert response.status == 401
    assert response.body == {"ok": False, "error": "Unauthorized"}
    assert logic.contexts == []
    assert web.postgrest.rows(METRICS) == []


def test_unset_secret_rejects_every_call():
    runtime, web = _runtime(INGEST, FakeLogic(), cron_secret="")

    assert _invoke(runtime, secret="").status == 401
    assert _invoke(runtime, secret="anything").status == 401


def test_success_returns_summary_and_writes_metrics():
    logic = FakeLogic({"clusters": 2, "items": 5, "updated": 5, "skipped": 0})
    runtime, web = _runtime(CLUSTER, logic)

    response = _invoke(runtime)

    assert response.status == 200
    body = response.body
    assert body["ok"] is True
    assert body["result"] == {"clusters": 2, "items": 5, "updated": 5, "skipped": 0}
    assert response.headers[TRACE_HEADER] == body["traceId"]
    assert isinstance(body["duration_ms"], int)

    [row] = web.postgrest.rows(METRICS)
    assert row["func"] == "cluster"
    assert row["trace_id"] == body["traceId"]
    assert row["items"] == 5
    assert row["ok"] is True
    assert row["note"] is None


def test_result_keys_outside_allow_list_are_dropped():
    logic = FakeLogic({"fetched": 3, "inserted": 2, "debug": "internal", "secret": "x"})
    runtime, web = _runtime(INGEST, logic)

    response = _invoke(runtime)

    assert response.body["result"] == {"fetched": 3, "inserted": 2}
    assert "debug" not in response.body
    [row] = web.postgrest.rows(METRICS)
    assert row["items"] == 2


def test_generate_items_fall_back_to_updated_drafts():
    logic = FakeLogic({"drafts_updated": 4, "skipped": 1})
    runtime, web = _runtime(GENERATE, logic)

    _invoke(runtime)

    [row] = web.postgrest.rows(METRICS)
    assert row["items"] == 4


def test_non_mapping_result_is_returned_raw():
    runtime, web = _runtime(CLUSTER, FakeLogic(["a", "b"]))

    response = _invoke(runtime)

    assert response.status == 200
    assert response.body["result"] == ["a", "b"]
    [row] = web.postgrest.rows(METRICS)
    assert row["items"] is None


def test_logic_error_returns_500_and_failed_metrics_row():
    runtime, web = _runtime(CLUSTER, FakeLogic(error=RuntimeError("rate limited")))

    response = _invoke(runtime)

    assert response.status == 500
    assert response.body == {
        "ok": False,
        "traceId": response.body["traceId"],
        "error": "rate limited",
    }
    assert response.headers[TRACE_HEADER] == response.body["traceId"]
    [row] = web.postgrest.rows(METRICS)
    assert row["ok"] is False
    assert row["note"] == "rate limited"


def test_logic_build_failure_falls_back_to_noop():
    def factory():
        raise ImportError("missing optional module")

    runtime, web = _runtime(GENERATE, factory=factory)

    response = _invoke(runtime)

    assert response.status == 200
    assert response.body["result"] == {"drafts_created": 0, "drafts_updated": 0, "skipped": 0}


def test_missing_factory_uses_noop_result():
    runtime, _ = _runtime(INGEST)

    response = _invoke(runtime)

    assert response.body["result"] == {"fetched": 0, "inserted": 0, "skipped": 0}


def test_metrics_failure_does_not_change_outcome():
    web = FakeWeb()
    web.postgrest.fail[("POST", METRICS)] = 503
    runtime, _ = _runtime(CLUSTER, FakeLogic({"clusters": 1}), web=web)

    response = _invoke(runtime)

    assert response.status == 200
    assert response.body["ok"] is True


def test_missing_project_config_skips_metrics_and_db():
    logic = FakeLogic({"clusters": 0})
    runtime, web = _runtime(CLUSTER, logic, project_url="", service_key="")

    response = _invoke(runtime)

    assert response.status == 200
    assert logic.contexts[0].db is None
    assert web.postgrest.requests == []


def test_context_carries_budget_concurrency_and_payload():
    logic = FakeLogic({"clusters": 0})
    runtime, _ = _runtime(CLUSTER, logic, budget_ms=250, concurrency=3)

    _invoke(runtime, body=json.dumps({"source_id": "abc"}))

    ctx = logic.contexts[0]
    assert ctx.stage == "cluster"
    assert ctx.budget_ms == 250
    assert ctx.concurrency == 3
    assert ctx.payload == {"source_id": "abc"}
    assert ctx.db is not None


@pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b"", None])
def test_unusable_body_leaves_payload_empty(body):
    logic = FakeLogic({"clusters": 0})
    runtime, _ = _runtime(CLUSTER, logic)

    response = _invoke(runtime, body=body)

    assert response.status == 200
    assert logic.contexts[0].payload == {}


def test_db_time_is_reported_in_summary():
    async def touch_db(ctx):
        await ctx.db.select("topic_drafts")

    runtime, _ = _runtime(CLUSTER, FakeLogic({"clusters": 0}, on_run=touch_db))

    response = _invoke(runtime)

    assert "db_ms" in response.body
    assert "external_ms" not in response.body


def test_settings_are_read_from_environment(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", SECRET)
    monkeypatch.setenv("PROJECT_URL", PROJECT_URL + "/")
    monkeypatch.setenv("SERVICE_ROLE_KEY", SERVICE_KEY)
    monkeypatch.setenv("CLUSTER_PARALLEL", "2")
    monkeypatch.setenv("CLUSTER_BUDGET_MS", "750")
    logic = FakeLogic({"clusters": 0})
    web = FakeWeb()
    runtime = StageRuntime(CLUSTER, lambda: logic, transport=web.transport())

    response = _invoke(runtime)

    assert response.status == 200
    assert logic.contexts[0].concurrency == 2
    assert logic.contexts[0].budget_ms == 750
    assert len(web.postgrest.rows(METRICS)) == 1


@pytest.mark.parametrize("value", ["abc", "0", "-3"])
def test_invalid_override_is_a_configuration_error(monkeypatch, value):
    monkeypatch.setenv("CRON_SECRET", SECRET)
    monkeypatch.setenv("INGEST_CONCURRENCY", value)
    logic = FakeLogic()
    runtime = StageRuntime(INGEST, lambda: logic, transport=FakeWeb().transport())

    response = _invoke(runtime)

    assert response.status == 500
    assert response.body["ok"] is False
    assert "INGEST_CONCURRENCY" in response.body["error"]
    assert response.headers[TRACE_HEADER] == response.body["traceId"]
    assert logic.contexts == []


def test_auth_is_checked_before_configuration(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", SECRET)
    monkeypatch.setenv("INGEST_BUDGET_MS", "lots")
    runtime = StageRuntime(INGEST, FakeLogic, transport=FakeWeb().transport())

    assert _invoke(runtime, secret="wrong").status == 401


def test_flask_adapter_round_trip():
    logic = FakeLogic({"clusters": 1, "items": 2, "updated": 2, "skipped": 0})
    runtime, _ = _runtime(CLUSTER, logic)
    app = flask.Flask(__name__)

    with app.test_request_context(
        "/cluster",
        method="POST",
        headers={"X-Cron-Secret": SECRET},
        data=json.dumps({"hint": 1}),
        content_type="application/json",
    ):
        response = runtime.flask_handler(flask.request)

    assert response.status_code == 200
    payload = json.loads(response.get_data(as_text=True))
    assert payload["result"]["items"] == 2
    assert response.headers[TRACE_HEADER] == payload["traceId"]
    assert logic.contexts[0].payload == {"hint": 1}


def test_flask_adapter_rejects_get():
    runtime, _ = _runtime(CLUSTER, FakeLogic())
    app = flask.Flask(__name__)

    with app.test_request_context("/cluster", method="GET"):
        response = runtime.flask_handler(flask.request)

    assert response.status_code == 405
