"""Generate stage: draft a stance question for each pending topic."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from stance_pipeline.shared.db.rest import RestError
from stance_pipeline.shared.runtime import StageContext
from stance_pipeline.shared.utils.config_validator import (
    check_config_override,
    get_env_or_default,
    validate_int_env,
)

from .contracts import (
    TOPIC_STATUS_FAILED,
    TOPIC_STATUS_GENERATED,
    GenerateResult,
    GenerationOptions,
    QuestionGenerator,
    TopicBundle,
)
from .llm import OpenAIQuestionGenerator, QuestionGenerationError
from .store import QuestionStore

GeneratorFactory = Callable[[httpx.AsyncClient], QuestionGenerator]

CREATED = "created"
UPDATED = "updated"


@dataclass
class GenerateLogic:
    """Drafts one question per pending topic, oldest topics first.

    Questions are upserted on ``topic_id`` so re-running a topic replaces
    its draft instead of adding a second one. A topic whose generation
    fails is marked ``failed`` and left out of later runs.
    """

    generator_factory: GeneratorFactory
    batch_size: int = 10
    max_headlines: int = 12

    async def run(self, ctx: StageContext) -> Dict[str, Any]:
        store = QuestionStore(ctx.require_db())
        generator = self.generator_factory(ctx.http)
        result = GenerateResult()

        topics = await store.fetch_pending_topics(self.batch_size)
        ctx.log.info("generate.topics", count=len(topics))

        batches = ctx.chunk(topics, ctx.concurrency)
        for index, batch in enumerate(batches):
            if ctx.should_stop():
                result.skipped += sum(len(rest) for rest in batches[index:])
                ctx.log.info("generate.budget_exhausted", skipped=result.skipped)
                break

            outcomes = await asyncio.gather(
                *(
                    ctx.limit(
                        lambda topic=topic: self._generate_topic(ctx, store, generator, topic)
                    )
                    for topic in batch
                ),
                return_exceptions=True,
            )
            for topic, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    outcome, error = None, str(outcome) or outcome.__class__.__name__
                else:
                    outcome, error = outcome
                if outcome == CREATED:
                    result.drafts_created += 1
                elif outcome == UPDATED:
                    result.drafts_updated += 1
                else:
                    result.record_error(f"{topic['id']}: {error}")

        return result.to_dict()

    async def _generate_topic(
        self,
        ctx: StageContext,
        store: QuestionStore,
        generator: QuestionGenerator,
        topic: Dict[str, Any],
    ) -> tuple[Optional[str], Optional[str]]:
        topic_id = str(topic["id"])
        try:
            headlines = await store.fetch_headlines(topic_id, self.max_headlines)
            bundle = TopicBundle(
                topic_id=topic_id,
                title=topic.get("title"),
                keywords=list(topic.get("keywords") or []),
                headlines=headlines,
            )
            question = await generator.generate(bundle)
        except (QuestionGenerationError, ValidationError) as exc:
            ctx.log.warning("generate.topic_failed", topic_id=topic_id, error=str(exc))
            try:
                await store.mark_topic(topic_id, TOPIC_STATUS_FAILED, ctx.now_iso)
            except RestError as mark_exc:
                ctx.log.warning(
                    "generate.mark_failed_error", topic_id=topic_id, error=str(mark_exc)
                )
            return None, str(exc)
        except RestError as exc:
            ctx.log.warning("generate.topic_db_error", topic_id=topic_id, error=str(exc))
            return None, str(exc)

        try:
            existed = await store.has_question(topic_id)
            await store.save_question(topic_id, question, ctx.now_iso)
            await store.mark_topic(topic_id, TOPIC_STATUS_GENERATED, ctx.now_iso)
        except RestError as exc:
            ctx.log.warning("generate.save_failed", topic_id=topic_id, error=str(exc))
            return None, str(exc)

        ctx.log.debug("generate.topic_done", topic_id=topic_id, updated=existed)
        return (UPDATED if existed else CREATED), None


def build_generate_logic() -> GenerateLogic:
    """Build the generate logic from the environment.

    Raises:
        ConfigurationError: If OPENAI_API_KEY is not set
    """
    api_key = check_config_override(None, "OPENAI_API_KEY", required=True)
    options = GenerationOptions(model=get_env_or_default("GEN_MODEL", "gpt-4o-mini"))

    def generator_factory(http_client: httpx.AsyncClient) -> QuestionGenerator:
        return OpenAIQuestionGenerator(
            api_key=api_key, options=options, http_client=http_client
        )

    return GenerateLogic(
        generator_factory=generator_factory,
        batch_size=validate_int_env("GEN_BATCH_SIZE", default=10, min_value=1),
        max_headlines=options.max_headlines,
    )
