"""Async chat-completion client: streaming sessions and one-shot completions.

Uses a shared ``httpx.AsyncClient`` for connection pooling; every call is
otherwise independent.  Each call hits the transport exactly once, with no
retries.  Timeouts and caller cancellation both go through a single
``CancelToken`` per call.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

import httpx

from pilot_llm.config import ProviderProfile
from pilot_llm.errors import (
    AbortedFailure,
    EmptyResponseFailure,
    HttpStatusFailure,
    InvalidResponseFailure,
    LLMError,
    TransportFailure,
)
from pilot_llm.types import (
    ChatTurn,
    DoneEvent,
    ErrorEvent,
    ErrorInfo,
    ErrorKind,
    GenerationParams,
    SessionState,
    StreamCallbacks,
    StreamEvent,
    TokenEvent,
    WireRequest,
)

from .cancel import CANCELLED_BY_CALLER, CancelToken
from .extract import extract_text
from .request_builder import build_request
from .sse import iter_events

_logger = logging.getLogger(__name__)

_T = TypeVar("_T")

# Connect phase only; the per-profile watchdog bounds the whole call
_CONNECT_TIMEOUT = 30


# ---------------------------------------------------------------------------
# Cancellation helpers
# ---------------------------------------------------------------------------

def _arm_watchdog(token: CancelToken, timeout: float) -> asyncio.TimerHandle:
    loop = asyncio.get_running_loop()
    return loop.call_later(timeout, token.cancel, f"timed out after {timeout:g}s")


def _aborted(reason: str, profile: ProviderProfile, endpoint: str) -> AbortedFailure:
    return AbortedFailure(
        f"Request aborted: {reason}",
        provider_id=profile.kind.value,
        endpoint=endpoint,
    )


async def _race(
    work: Coroutine[Any, Any, _T],
    token: CancelToken,
    *,
    profile: ProviderProfile,
    endpoint: str,
) -> _T:
    """Await *work* unless *token* fires first.

    On cancellation the work task is cancelled at its pending suspension
    point (closing any open response) and ``AbortedFailure`` is raised.
    """
    if token.cancelled:
        work.close()
        raise _aborted(token.reason, profile, endpoint)
    task = asyncio.ensure_future(work)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if task.done() and not token.cancelled:
            return task.result()
        # Cancellation wins even if the work finished in the same step
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise _aborted(token.reason, profile, endpoint)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()


def _http_failure(
    profile: ProviderProfile,
    request: WireRequest,
    status: int,
    body: str,
    reason: str,
) -> HttpStatusFailure:
    return HttpStatusFailure(
        body or reason or f"Request failed with status {status}",
        http_status=status,
        provider_id=profile.kind.value,
        endpoint=request.url,
        raw_body=body,
    )


def _transport_failure(
    profile: ProviderProfile,
    request: WireRequest,
    exc: Exception,
) -> TransportFailure:
    return TransportFailure(
        str(exc) or type(exc).__name__,
        provider_id=profile.kind.value,
        endpoint=request.url,
    )


async def _deliver(fn: Callable[..., Any], *args: Any) -> None:
    """Invoke a sync or async callback; failures are logged, not raised."""
    try:
        result = fn(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        _logger.exception(
            "Stream callback %s raised",
            getattr(fn, "__name__", fn),
        )


# ---------------------------------------------------------------------------
# Streaming session
# ---------------------------------------------------------------------------

class StreamSession:
    """One streaming request, from dispatch to its single terminal callback.

    States: IDLE -> REQUESTING -> STREAMING -> DONE | ERROR | CANCELLED
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        profile: ProviderProfile,
        params: GenerationParams,
        callbacks: StreamCallbacks,
        conversation: Sequence[ChatTurn] = (),
        cancel_token: CancelToken | None = None,
    ) -> None:
        self.profile = profile
        self.request = build_request(
            profile, dataclasses.replace(params, stream=True), conversation,
        )
        self.state = SessionState.IDLE
        self.terminal_event: StreamEvent | None = None
        self._http = http
        self._callbacks = callbacks
        self._parent_token = cancel_token
        self._token = cancel_token.child() if cancel_token else CancelToken()
        self._watchdog: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[StreamEvent] | None = None

    def start(self) -> StreamHandle:
        """Dispatch the request now.  Requires a running event loop."""
        if self._task is not None:
            raise RuntimeError("StreamSession already started")
        self._watchdog = _arm_watchdog(self._token, self.profile.timeout)
        self.state = SessionState.REQUESTING
        self._task = asyncio.get_running_loop().create_task(self._run())
        return StreamHandle(self)

    def cancel(self, reason: str = CANCELLED_BY_CALLER) -> None:
        self._token.cancel(reason)

    @property
    def task(self) -> asyncio.Task[StreamEvent]:
        if self._task is None:
            raise RuntimeError("StreamSession not started")
        return self._task

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self) -> StreamEvent:
        try:
            await _race(
                self._drive(), self._token,
                profile=self.profile, endpoint=self.request.url,
            )
        except AbortedFailure as e:
            _logger.info("Stream %s aborted: %s", self.request.url, self._token.reason)
            await self._finish(ErrorEvent(e.info), SessionState.CANCELLED)
        except LLMError as e:
            _logger.warning("Stream %s failed: %s", self.request.url, e)
            await self._finish(ErrorEvent(e.info), SessionState.ERROR)
        except asyncio.CancelledError:
            # Task torn down from outside (e.g. loop shutdown)
            await self._finish(
                ErrorEvent(_aborted("task cancelled", self.profile, self.request.url).info),
                SessionState.CANCELLED,
            )
            raise
        except Exception as e:
            _logger.exception("Unexpected error in stream %s", self.request.url)
            info = ErrorInfo(
                kind=ErrorKind.TRANSPORT,
                message=str(e) or type(e).__name__,
                provider_id=self.profile.kind.value,
                endpoint=self.request.url,
            )
            await self._finish(ErrorEvent(info), SessionState.ERROR)
        else:
            await self._finish(DoneEvent(), SessionState.DONE)
        finally:
            if self._watchdog is not None:
                self._watchdog.cancel()
            if self._parent_token is not None:
                self._parent_token.detach(self._token)
        assert self.terminal_event is not None
        return self.terminal_event

    async def _drive(self) -> None:
        request = self.request
        _logger.debug(
            "Streaming %s (model=%s, messages=%d)",
            request.url, request.body["model"], len(request.body["messages"]),
        )
        try:
            async with self._http.stream(
                "POST", request.url, headers=request.headers, json=request.body,
            ) as resp:
                if not resp.is_success:
                    raw = (await resp.aread()).decode("utf-8", errors="replace")
                    raise _http_failure(
                        self.profile, request, resp.status_code, raw, resp.reason_phrase,
                    )
                self.state = SessionState.STREAMING
                async for event in iter_events(resp.aiter_bytes()):
                    # Buffered frames are delivered without yielding to the loop
                    self._raise_if_cancelled()
                    if isinstance(event, TokenEvent):
                        await _deliver(self._callbacks.on_token, event.text)
                self._raise_if_cancelled()
        except httpx.HTTPError as e:
            raise _transport_failure(self.profile, request, e) from e

    def _raise_if_cancelled(self) -> None:
        if self._token.cancelled:
            raise _aborted(self._token.reason, self.profile, self.request.url)

    async def _finish(self, event: StreamEvent, state: SessionState) -> None:
        if self.state.is_terminal:
            _logger.debug("Ignoring second terminal event %r", event)
            return
        self.terminal_event = event
        self.state = state
        if isinstance(event, ErrorEvent):
            await _deliver(self._callbacks.on_error, event.info)
        else:
            await _deliver(self._callbacks.on_done)


class StreamHandle:
    """Caller-side view of a running ``StreamSession``."""

    def __init__(self, session: StreamSession) -> None:
        self._session = session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def terminal_event(self) -> StreamEvent | None:
        return self._session.terminal_event

    def cancel(self, reason: str = CANCELLED_BY_CALLER) -> None:
        """Abort the session; ``on_error`` fires with an ABORTED error."""
        self._session.cancel(reason)

    def done(self) -> bool:
        return self._session.task.done()

    async def wait(self) -> StreamEvent:
        """Wait for and return the terminal event."""
        return await asyncio.shield(self._session.task)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class CompletionClient:
    """Client for OpenAI-style chat-completions endpoints.

    Parameters
    ----------
    http:
        Optional pre-built ``httpx.AsyncClient`` (e.g. with a mock
        transport).  If ``None``, one is created and owned by this client.
    """

    def __init__(self, http: httpx.AsyncClient | None = None) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=_CONNECT_TIMEOUT),
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def start(
        self,
        profile: ProviderProfile,
        params: GenerationParams,
        callbacks: StreamCallbacks,
        conversation: Sequence[ChatTurn] = (),
        cancel_token: CancelToken | None = None,
    ) -> StreamHandle:
        """Start a streaming session and return its handle immediately."""
        session = StreamSession(
            self._http, profile, params, callbacks, conversation, cancel_token,
        )
        return session.start()

    async def stream(
        self,
        profile: ProviderProfile,
        params: GenerationParams,
        callbacks: StreamCallbacks,
        conversation: Sequence[ChatTurn] = (),
        cancel_token: CancelToken | None = None,
    ) -> StreamEvent:
        """Run a streaming session to completion; return its terminal event."""
        handle = self.start(profile, params, callbacks, conversation, cancel_token)
        return await handle.wait()

    # ------------------------------------------------------------------
    # One-shot
    # ------------------------------------------------------------------

    async def complete(
        self,
        profile: ProviderProfile,
        params: GenerationParams,
        conversation: Sequence[ChatTurn] = (),
        cancel_token: CancelToken | None = None,
    ) -> str:
        """Send a non-streaming request and return the answer text.

        Raises an ``LLMError`` subclass on any failure, including an empty
        answer.
        """
        request = build_request(
            profile, dataclasses.replace(params, stream=False), conversation,
        )
        token = cancel_token.child() if cancel_token else CancelToken()
        watchdog = _arm_watchdog(token, profile.timeout)
        try:
            return await _race(
                self._complete_once(profile, request), token,
                profile=profile, endpoint=request.url,
            )
        finally:
            watchdog.cancel()
            if cancel_token is not None:
                cancel_token.detach(token)

    async def _complete_once(
        self,
        profile: ProviderProfile,
        request: WireRequest,
    ) -> str:
        _logger.debug(
            "Completing %s (model=%s, messages=%d)",
            request.url, request.body["model"], len(request.body["messages"]),
        )
        try:
            resp = await self._http.post(
                request.url, headers=request.headers, json=request.body,
            )
        except httpx.HTTPError as e:
            raise _transport_failure(profile, request, e) from e

        if not resp.is_success:
            raise _http_failure(
                profile, request, resp.status_code, resp.text, resp.reason_phrase,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise InvalidResponseFailure(
                "Invalid JSON response",
                http_status=resp.status_code,
                provider_id=profile.kind.value,
                endpoint=request.url,
                raw_body=resp.text,
            ) from e

        text = extract_text(data)
        if not text:
            raise EmptyResponseFailure(
                "Empty response",
                http_status=resp.status_code,
                provider_id=profile.kind.value,
                endpoint=request.url,
                raw_body=resp.text,
            )
        return text

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> CompletionClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
