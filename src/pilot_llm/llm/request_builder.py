"""Turn a profile, generation params and conversation into a wire request.

Pure functions: nothing here touches the network.
"""

from __future__ import annotations

from typing import Any, Sequence

from pilot_llm.config import ProviderKind, ProviderProfile
from pilot_llm.types import ChatTurn, GenerationParams, Role, WireRequest

# Only this many trailing conversation turns are sent; older ones are dropped.
MAX_HISTORY_TURNS = 6
DEFAULT_TEMPERATURE = 0.4

CONTEXT_PREFIX = (
    "Context provided by the page. "
    "Answer faithfully and cite uncertainty when needed.\n"
)


def build_url(profile: ProviderProfile) -> str:
    base = profile.base_url.rstrip("/")
    if profile.kind is ProviderKind.AZURE:
        return (
            f"{base}/openai/deployments/{profile.deployment}"
            f"/chat/completions?api-version={profile.api_version}"
        )
    return f"{base}/chat/completions"


def build_headers(profile: ProviderProfile) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    kind = profile.kind
    if kind in (ProviderKind.OPENAI, ProviderKind.OPENROUTER):
        headers["Authorization"] = f"Bearer {profile.api_key}"
        if kind is ProviderKind.OPENROUTER:
            headers["HTTP-Referer"] = profile.referer
    elif kind is ProviderKind.AZURE:
        headers["api-key"] = profile.api_key
    elif profile.api_key:
        headers["Authorization"] = f"Bearer {profile.api_key}"
    # Overrides last so they can shadow anything above
    headers.update(profile.extra_headers)
    return headers


def build_messages(
    params: GenerationParams,
    conversation: Sequence[ChatTurn] = (),
) -> list[dict[str, str]]:
    """Assemble the OpenAI-style message list.

    Order: system, context, the last ``MAX_HISTORY_TURNS`` turns, then the
    new user prompt.  Timestamps are not transmitted.
    """
    messages: list[dict[str, str]] = []
    if params.system:
        messages.append({"role": Role.SYSTEM.value, "content": params.system})
    if params.context:
        messages.append({
            "role": Role.SYSTEM.value,
            "content": CONTEXT_PREFIX + params.context,
        })
    for turn in list(conversation)[-MAX_HISTORY_TURNS:]:
        messages.append({"role": Role(turn.role).value, "content": turn.content})
    messages.append({"role": Role.USER.value, "content": params.prompt})
    return messages


def build_body(
    profile: ProviderProfile,
    params: GenerationParams,
    conversation: Sequence[ChatTurn] = (),
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": profile.model,
        "stream": params.stream,
        "temperature": (
            params.temperature if params.temperature is not None
            else DEFAULT_TEMPERATURE
        ),
    }
    if params.max_tokens is not None:
        body["max_tokens"] = params.max_tokens
    body["messages"] = build_messages(params, conversation)
    return body


def build_request(
    profile: ProviderProfile,
    params: GenerationParams,
    conversation: Sequence[ChatTurn] = (),
) -> WireRequest:
    """Build URL, headers and JSON body for one chat-completions call."""
    return WireRequest(
        url=build_url(profile),
        headers=build_headers(profile),
        body=build_body(profile, params, conversation),
    )
