"""Contracts for stance question generation."""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, field_validator, model_validator

TOPICS_TABLE = "topic_drafts"
ITEMS_TABLE = "ingest_items"
QUESTIONS_TABLE = "question_drafts"

TOPIC_STATUS_PENDING = "pending"
TOPIC_STATUS_GENERATED = "generated"
TOPIC_STATUS_FAILED = "failed"
QUESTION_STATUS_DRAFT = "draft"

MIN_STANCE_LABELS = 2
MAX_STANCE_LABELS = 7
MAX_ERRORS_REPORTED = 10


class GenerationOptions(BaseModel):
    """Configuration for question generation."""

    model: str = Field(default="gpt-4o-mini", description="OpenAI model identifier")
    temperature: float | None = Field(default=0.3, description="Sampling temperature")
    max_output_tokens: int = Field(default=600, ge=50, le=4000)
    max_headlines: int = Field(default=12, ge=1, le=50)

    @field_validator("temperature")
    @classmethod
    def _validate_temperature(cls, value: float | None) -> float | None:
        if value is None:
            return None
        if not (0.0 <= value <= 2.0):
            msg = "temperature must be between 0.0 and 2.0"
            raise ValueError(msg)
        return value


class TopicBundle(BaseModel):
    """A pending topic and the headlines of its member items."""

    topic_id: str = Field(..., min_length=1)
    title: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    headlines: list[str] = Field(default_factory=list)

    @field_validator("headlines", "keywords")
    @classmethod
    def _clean(cls, value: list[str]) -> list[str]:
        return [text.strip() for text in value if text and text.strip()]

    @model_validator(mode="after")
    def _require_text(self) -> "TopicBundle":
        if not self.headlines and not (self.title and self.title.strip()):
            msg = "Topic bundle needs a title or at least one headline"
            raise ValueError(msg)
        return self


class GeneratedQuestion(BaseModel):
    """A stance question drafted for one topic."""

    question: str = Field(..., min_length=10, max_length=300)
    stance_labels: list[str]
    rationale: str = ""

    @field_validator("question")
    @classmethod
    def _strip_question(cls, value: str) -> str:
        return value.strip()

    @field_validator("stance_labels")
    @classmethod
    def _validate_labels(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for label in value:
            text = (label or "").strip()
            if text and text.lower() not in {existing.lower() for existing in cleaned}:
                cleaned.append(text)
        if not MIN_STANCE_LABELS <= len(cleaned) <= MAX_STANCE_LABELS:
            msg = (
                f"stance_labels must contain between {MIN_STANCE_LABELS} and "
                f"{MAX_STANCE_LABELS} distinct labels (got {len(cleaned)})"
            )
            raise ValueError(msg)
        return cleaned

    def to_row(self, topic_id: str, created_at: str) -> Dict[str, Any]:
        return {
            "topic_id": topic_id,
            "question": self.question,
            "stance_labels": list(self.stance_labels),
            "rationale": self.rationale,
            "status": QUESTION_STATUS_DRAFT,
            "created_at": created_at,
        }


class QuestionGenerator(Protocol):
    """Anything that can draft a stance question for a topic."""

    async def generate(self, bundle: TopicBundle) -> GeneratedQuestion:
        ...


@dataclass
class GenerateResult:
    """Counters returned by the generate stage."""

    drafts_created: int = 0
    drafts_updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = dataclass_field(default_factory=list)

    def record_error(self, message: str) -> None:
        self.failed += 1
        if len(self.errors) < MAX_ERRORS_REPORTED:
            self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "drafts_created": self.drafts_created,
            "drafts_updated": self.drafts_updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }
