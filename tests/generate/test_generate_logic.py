import asyncio

import pytest

from stance_pipeline.functions.generate.core import GeneratedQuestion, GenerateLogic, build_generate_logic
from stance_pipeline.functions.generate.core.llm import QuestionGenerationError
from stance_pipeline.shared.utils.config_validator import ConfigurationError
from tests.fakes import FakeClock, FakePostgrest, FakeWeb, run_stage_logic


class FakeGenerator:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.bundles = []

    async def generate(self, bundle):
        self.bundles.append(bundle)
        if bundle.topic_id in self.fail_for:
            raise QuestionGenerationError("model refused")
        return GeneratedQuestion(
            question=f"Where do you stand on {bundle.title}?",
            stance_labels=["Support", "Oppose", "Unsure"],
            rationale="Coverage shows clear disagreement.",
        )


def _topic(topic_id, title, created_at, status="pending"):
    return {
        "id": topic_id,
        "title": title,
        "keywords": ["civic"],
        "status": status,
        "created_at": created_at,
    }


def _web():
    pg = FakePostgrest(
        {
            "topic_drafts": [
                _topic("t1", "the transit levy", "2026-10-05T01:00:00"),
                _topic("t2", "the parks budget", "2026-10-05T02:00:00"),
                _topic("t3", "an old topic", "2026-10-01T00:00:00", status="generated"),
                _topic("t4", "a troublesome topic", "2026-10-05T03:00:00"),
            ],
            "ingest_items": [
                {"id": "i1", "topic_id": "t1", "title": "Levy vote splits council", "published_at": "2026-10-05"},
                {"id": "i2", "topic_id": "t1", "title": "Council delays levy", "published_at": "2026-10-04"},
                {"id": "i3", "topic_id": "t2", "title": "Parks budget cut", "published_at": None},
            ],
            "question_drafts": [
                {"id": "q-old", "topic_id": "t2", "question": "Old draft?", "status": "draft"},
            ],
        }
    )
    return pg, FakeWeb(pg)


def _logic(generator, **kwargs):
    return GenerateLogic(generator_factory=lambda http: generator, **kwargs)


def _statuses(pg):
    return {row["id"]: row["status"] for row in pg.rows("topic_drafts")}


def test_generate_drafts_questions_for_pending_topics():
    pg, web = _web()
    generator = FakeGenerator(fail_for={"t4"})

    result, _ = asyncio.run(run_stage_logic(_logic(generator), web, stage="generate"))

    assert result == {
        "drafts_created": 1,
        "drafts_updated": 1,
        "skipped": 0,
        "failed": 1,
        "errors": ["t4: model refused"],
    }
    assert _statuses(pg) == {"t1": "generated", "t2": "generated", "t3": "generated", "t4": "failed"}

    questions = {row["topic_id"]: row for row in pg.rows("question_drafts")}
    assert set(questions) == {"t1", "t2"}
    assert questions["t1"]["stance_labels"] == ["Support", "Oppose", "Unsure"]
    assert questions["t2"]["id"] == "q-old"
    assert questions["t2"]["question"] == "Where do you stand on the parks budget?"

    levy = next(bundle for bundle in generator.bundles if bundle.topic_id == "t1")
    assert levy.headlines == ["Levy vote splits council", "Council delays levy"]
    assert "t3" not in {bundle.topic_id for bundle in generator.bundles}


def test_generate_rerun_is_a_no_op():
    pg, web = _web()
    asyncio.run(run_stage_logic(_logic(FakeGenerator(fail_for={"t4"})), web, stage="generate"))
    generator = FakeGenerator()

    result, _ = asyncio.run(run_stage_logic(_logic(generator), web, stage="generate"))

    assert result["drafts_created"] == 0
    assert result["drafts_updated"] == 0
    assert generator.bundles == []
    assert len(pg.rows("question_drafts")) == 2


def test_generate_stops_between_batches():
    pg, web = _web()
    clock = FakeClock()

    def slow_db(request):
        if request.method == "PATCH":
            clock.advance(50)
        return pg(request)

    web.postgrest = slow_db

    result, _ = asyncio.run(
        run_stage_logic(
            _logic(FakeGenerator()), web, stage="generate", budget_ms=40, concurrency=1, clock=clock
        )
    )

    assert result["drafts_created"] == 1
    assert result["skipped"] == 2
    assert _statuses(pg)["t2"] == "pending"


def test_topic_without_any_text_is_marked_failed():
    pg, web = _web()
    pg.rows("topic_drafts").append(_topic("t5", None, "2026-10-05T04:00:00"))

    result, _ = asyncio.run(run_stage_logic(_logic(FakeGenerator()), web, stage="generate"))

    assert result["failed"] == 1
    assert _statuses(pg)["t5"] == "failed"


def test_save_failure_leaves_topic_pending():
    pg, web = _web()
    pg.fail[("POST", "question_drafts")] = 500

    result, _ = asyncio.run(run_stage_logic(_logic(FakeGenerator()), web, stage="generate"))

    assert result["failed"] == 3
    assert _statuses(pg)["t1"] == "pending"


def test_status_write_failure_is_counted_not_raised():
    pg, web = _web()
    pg.fail[("PATCH", "topic_drafts")] = 503

    result, _ = asyncio.run(
        run_stage_logic(_logic(FakeGenerator(fail_for={"t4"})), web, stage="generate")
    )

    assert result["drafts_created"] == 0
    assert result["drafts_updated"] == 0
    assert result["failed"] == 3
    assert "t4: model refused" in result["errors"]
    assert _statuses(pg) == {"t1": "pending", "t2": "pending", "t3": "generated", "t4": "pending"}


def test_batch_size_limits_topics():
    pg, web = _web()
    generator = FakeGenerator()

    asyncio.run(run_stage_logic(_logic(generator, batch_size=1), web, stage="generate"))

    assert [bundle.topic_id for bundle in generator.bundles] == ["t1"]


def test_build_requires_openai_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        build_generate_logic()


def test_build_reads_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("GEN_BATCH_SIZE", "4")

    logic = build_generate_logic()

    assert logic.batch_size == 4
