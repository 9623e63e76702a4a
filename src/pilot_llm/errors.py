"""Error types raised or reported by the completion client."""

from __future__ import annotations

from pilot_llm.types import ErrorInfo, ErrorKind


class ConfigError(ValueError):
    """Configuration file could not be understood."""


class LLMError(Exception):
    """Base class for call-level failures.  ``info`` carries the details."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        provider_id: str | None = None,
        endpoint: str | None = None,
        raw_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.info = ErrorInfo(
            kind=self.kind,
            message=message,
            http_status=http_status,
            provider_id=provider_id,
            endpoint=endpoint,
            raw_body=raw_body,
        )


class TransportFailure(LLMError):
    """Connection, DNS or TLS failure before a response arrived."""

    kind = ErrorKind.TRANSPORT


class HttpStatusFailure(LLMError):
    """Non-2xx response."""

    kind = ErrorKind.HTTP_STATUS


class AbortedFailure(LLMError):
    """Cancelled by the caller or by the timeout watchdog."""

    kind = ErrorKind.ABORTED


class EmptyResponseFailure(LLMError):
    """One-shot call succeeded but yielded no extractable text."""

    kind = ErrorKind.EMPTY_RESPONSE


class InvalidResponseFailure(LLMError):
    """One-shot call succeeded but the body was not JSON."""

    kind = ErrorKind.INVALID_RESPONSE
