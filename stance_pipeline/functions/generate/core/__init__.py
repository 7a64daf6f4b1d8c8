"""Generate stage core: topic bundles, question contracts and the LLM client."""

from .contracts import GeneratedQuestion, GenerateResult, GenerationOptions, TopicBundle
from .logic import GenerateLogic, build_generate_logic
from .store import QuestionStore

__all__ = [
    "GeneratedQuestion",
    "GenerateResult",
    "GenerationOptions",
    "TopicBundle",
    "GenerateLogic",
    "build_generate_logic",
    "QuestionStore",
]
