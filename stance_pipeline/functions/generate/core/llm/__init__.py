"""LLM access for question generation."""

from .openai_client import OpenAIQuestionGenerator, QuestionGenerationError
from .prompts import SYSTEM_PROMPT, build_prompt

__all__ = [
    "OpenAIQuestionGenerator",
    "QuestionGenerationError",
    "SYSTEM_PROMPT",
    "build_prompt",
]
