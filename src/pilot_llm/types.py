"""Shared data types for pilot-llm."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, Union


# ---------------------------------------------------------------------------
# Request inputs
# ---------------------------------------------------------------------------

class Role(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class ChatTurn:
    """One prior message of a conversation."""

    role: Role
    content: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class GenerationParams:
    """What to generate.  Immutable once submitted to a call."""

    prompt: str
    system: str | None = None
    context: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    stream: bool = True


@dataclass(frozen=True)
class WireRequest:
    """A fully built HTTP request, ready to send."""

    url: str
    headers: dict[str, str]
    body: dict[str, Any]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ErrorKind(enum.Enum):
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    ABORTED = "aborted"
    EMPTY_RESPONSE = "empty_response"
    INVALID_RESPONSE = "invalid_response"


@dataclass(frozen=True)
class ErrorInfo:
    """Details delivered to ``on_error`` or carried by ``LLMError.info``."""

    kind: ErrorKind
    message: str
    http_status: int | None = None
    provider_id: str | None = None
    endpoint: str | None = None
    raw_body: str | None = None


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenEvent:
    text: str


@dataclass(frozen=True)
class DoneEvent:
    pass


@dataclass(frozen=True)
class ErrorEvent:
    info: ErrorInfo


StreamEvent = Union[TokenEvent, DoneEvent, ErrorEvent]


class SessionState(enum.Enum):
    """Lifecycle of a streaming session."""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.DONE, SessionState.ERROR, SessionState.CANCELLED)


class StreamCallbacks(Protocol):
    """Receiver for a streaming session.

    Methods may be plain functions or coroutines.  ``on_token`` calls all
    happen before exactly one of ``on_done`` / ``on_error``.
    """

    def on_token(self, text: str) -> Any:
        ...

    def on_done(self) -> Any:
        ...

    def on_error(self, info: ErrorInfo) -> Any:
        ...
