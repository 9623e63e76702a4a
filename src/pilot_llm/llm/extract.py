"""Schema-tolerant text extraction from chat-completion payloads.

Rules, tried in order:

1. ``choices`` list present: look at the first choice, preferring its
   ``delta``, then ``message``, then the choice itself.  A bare string is
   used as-is; otherwise ``content`` (flattened), else ``text``.
2. No ``choices``: top-level ``message.content``, ``delta.content`` or
   ``content`` (flattened).

Anything else yields ``""``.
"""

from __future__ import annotations

from typing import Any


def flatten_content(content: Any) -> str:
    """Flatten a ``content`` value that may be a string or a list of parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "".join(parts)
    if isinstance(content, dict) and isinstance(content.get("text"), str):
        return content["text"]
    return ""


def _from_choice(choice: Any) -> str:
    if not isinstance(choice, (dict, str)):
        return ""
    value: Any = choice
    if isinstance(choice, dict):
        for key in ("delta", "message"):
            if choice.get(key) is not None:
                value = choice[key]
                break
    if isinstance(value, str):
        return value
    if not isinstance(value, dict):
        return ""
    if value.get("content"):
        return flatten_content(value["content"])
    text = value.get("text")
    return text if isinstance(text, str) else ""


def extract_text(payload: Any) -> str:
    """Return the text carried by *payload*, or ``""`` if there is none."""
    if not isinstance(payload, dict):
        return ""

    choices = payload.get("choices")
    if isinstance(choices, list):
        return _from_choice(choices[0]) if choices else ""

    for key in ("message", "delta"):
        nested = payload.get(key)
        if isinstance(nested, dict) and nested.get("content"):
            return flatten_content(nested["content"])
    if payload.get("content"):
        return flatten_content(payload["content"])
    return ""
