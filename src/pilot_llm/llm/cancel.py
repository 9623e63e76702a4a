"""Cooperative cancellation signal shared by callers and the timeout watchdog."""

from __future__ import annotations

import asyncio
from typing import Callable

CANCELLED_BY_CALLER = "cancelled by caller"


class CancelToken:
    """One-shot cancellation flag that can be awaited.

    ``cancel()`` must be called from the event loop's thread; from another
    thread use ``loop.call_soon_threadsafe(token.cancel)``.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""
        self._listeners: list[Callable[[str], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = CANCELLED_BY_CALLER) -> None:
        """Trigger the token.  Only the first call has any effect."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(reason)

    def child(self) -> CancelToken:
        """Return a token that fires when this one does (but not vice versa)."""
        token = CancelToken()
        if self.cancelled:
            token.cancel(self._reason)
        else:
            self._listeners.append(token.cancel)
        return token

    def detach(self, token: CancelToken) -> None:
        """Stop propagating to *token* (a previous ``child()``)."""
        try:
            self._listeners.remove(token.cancel)
        except ValueError:
            pass

    async def wait(self) -> str:
        """Block until cancelled; return the reason."""
        await self._event.wait()
        return self._reason
