"""Canned prompt templates for common page tasks."""

from __future__ import annotations

from typing import Any

from pilot_llm.types import GenerationParams


def summarize(
    page_title: str,
    url: str,
    word_limit: int = 200,
    tone: str = "neutral",
    language: str = "English",
) -> str:
    return (
        f'You are PilotX, an accurate researcher. Summarize the current page titled '
        f'"{page_title}" ({url}). Provide:\n'
        f"1. Key bullet points (max 6)\n"
        f"2. TL;DR (<= {word_limit} words)\n"
        f"3. Structured outline with headings when available.\n"
        f"Maintain a {tone} tone and reply in {language}. "
        f"Never fabricate facts and mention when context is missing."
    )


def qa(question: str, language: str = "English") -> str:
    return (
        "Answer the question using ONLY the provided context. "
        "If the answer is not present, say you are unsure.\n"
        f"Question: {question}\n"
        f"Reply in {language}."
    )


def rewrite(goal: str, audience: str = "general", language: str = "English") -> str:
    return (
        f"Rewrite the provided text for {audience}. Goal: {goal}. "
        f"Keep factual accuracy and reply in {language}."
    )


def email_draft(receiver: str = "the recipient", language: str = "English") -> str:
    return (
        f"Draft a concise email to {receiver}. Include subject and body. "
        f"Keep it courteous, clear, and in {language}."
    )


def meeting_minutes(language: str = "English") -> str:
    return (
        "Summarize the notes as meeting minutes. Provide agenda, decisions, "
        f"action items, and open questions. Respond in {language}."
    )


def build_params(
    prompt: str,
    context: str | None = None,
    **overrides: Any,
) -> GenerationParams:
    """Streaming ``GenerationParams`` for *prompt*; *overrides* win."""
    fields: dict[str, Any] = {"prompt": prompt, "context": context, "stream": True}
    fields.update(overrides)
    return GenerationParams(**fields)
