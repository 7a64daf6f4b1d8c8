"""OpenAI client for stance question generation."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx
from openai import APIError, AsyncOpenAI
from pydantic import ValidationError

from stance_pipeline.shared.utils.config_validator import ConfigurationError, check_config_override

from ..contracts import GeneratedQuestion, GenerationOptions, TopicBundle
from .prompts import SYSTEM_PROMPT, build_prompt


class QuestionGenerationError(RuntimeError):
    """Raised when the model call fails or returns an unusable question."""


class OpenAIQuestionGenerator:
    """Wraps chat completions with JSON output and contract validation."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        options: GenerationOptions | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._options = options or GenerationOptions()
        try:
            self._api_key = check_config_override(api_key, "OPENAI_API_KEY", required=True)
        except ConfigurationError as e:
            raise ConfigurationError(
                f"{e}\nRequired for stance question generation. "
                "See .env.example for configuration template."
            )
        self._client = AsyncOpenAI(
            api_key=self._api_key,
            http_client=http_client,
            max_retries=0,
        )
        self._logger = logger or logging.getLogger(__name__)

    @property
    def model(self) -> str:
        return self._options.model

    async def generate(self, bundle: TopicBundle) -> GeneratedQuestion:
        request_kwargs: dict[str, Any] = {
            "model": self._options.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(bundle, self._options)},
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": self._options.max_output_tokens,
        }
        if self._options.temperature is not None:
            request_kwargs["temperature"] = self._options.temperature

        try:
            response = await self._client.chat.completions.create(**request_kwargs)
        except APIError as exc:
            self._logger.error("OpenAI API error for topic %s: %s", bundle.topic_id, exc)
            raise QuestionGenerationError(f"OpenAI API error: {exc}") from exc

        payload = self._extract_payload(response)
        try:
            return GeneratedQuestion.model_validate(payload)
        except ValidationError as exc:
            self._logger.warning(
                "Rejected generated question for topic %s: %s", bundle.topic_id, exc
            )
            raise QuestionGenerationError(f"Invalid question payload: {exc.error_count()} errors") from exc

    @staticmethod
    def _extract_payload(response: Any) -> dict[str, Any]:
        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            text = getattr(message, "content", None)
            if not text:
                continue
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                return payload
        raise QuestionGenerationError("OpenAI response did not contain a JSON object")
