"""Chat-completion protocol layer: request building, SSE decoding, sessions."""

from pilot_llm.llm.cancel import CancelToken
from pilot_llm.llm.client import CompletionClient, StreamHandle, StreamSession
from pilot_llm.llm.extract import extract_text
from pilot_llm.llm.request_builder import MAX_HISTORY_TURNS, build_request
from pilot_llm.llm.sse import FrameParser, iter_events

__all__ = [
    "CancelToken",
    "CompletionClient",
    "FrameParser",
    "MAX_HISTORY_TURNS",
    "StreamHandle",
    "StreamSession",
    "build_request",
    "extract_text",
    "iter_events",
]
