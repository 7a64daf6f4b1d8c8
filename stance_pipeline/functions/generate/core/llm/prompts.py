"""Prompt builder for stance question generation."""

from __future__ import annotations

from textwrap import dedent

from ..contracts import MAX_STANCE_LABELS, MIN_STANCE_LABELS, GenerationOptions, TopicBundle

SYSTEM_PROMPT = (
    "You are a neutral editor who turns news topics into balanced opinion questions. "
    "You never take sides, never invent facts, and always answer with JSON only."
)


def build_prompt(bundle: TopicBundle, options: GenerationOptions) -> str:
    """Create the user prompt for one topic."""

    headlines = bundle.headlines[: options.max_headlines]
    headline_block = "\n".join(f"- {headline}" for headline in headlines) or "- (none)"
    keywords = ", ".join(bundle.keywords) or "(none)"
    topic = f"Topic: {bundle.title or headlines[0]}\nKeywords: {keywords}\n\nHeadlines:\n{headline_block}"
    instructions = dedent(
        f"""
        Draft one question that asks readers where they stand on this topic.
        - The question must be answerable by picking a stance, not by looking up a fact.
        - Offer {MIN_STANCE_LABELS} to {MAX_STANCE_LABELS} short, mutually exclusive stance labels covering the main positions.
        - Keep the wording neutral; do not lead the reader toward any label.
        - Explain in one or two sentences why the topic is contested.
        - Respond strictly with valid JSON using the schema:
            {{
                "question": string,
                "stance_labels": [string, ...],
                "rationale": string
            }}
        """
    ).strip()
    return f"{instructions}\n\n{topic}"
