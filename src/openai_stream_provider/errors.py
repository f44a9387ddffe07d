from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    MALFORMED_PAYLOAD = "malformed_payload"
    UPSTREAM = "upstream"
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


class ProviderError(Exception):
    """Base error for provider failures."""

    kind: ErrorKind = ErrorKind.INTERNAL

    @property
    def retryable(self) -> bool:
        return False


class ConfigurationError(ProviderError):
    kind = ErrorKind.CONFIGURATION


class TransportError(ProviderError):
    """Connection-level failure before or while reading the response body."""

    kind = ErrorKind.TRANSPORT

    @property
    def retryable(self) -> bool:
        return True


class RequestTimeoutError(TransportError):
    """Request or stream deadline exceeded."""

    kind = ErrorKind.TIMEOUT


class StreamCancelledError(TransportError):
    kind = ErrorKind.CANCELLED

    @property
    def retryable(self) -> bool:
        return False


class UpstreamProtocolError(ProviderError):
    """Unexpected upstream response shape / contract mismatch."""

    kind = ErrorKind.MALFORMED_PAYLOAD


class UpstreamAPIError(ProviderError):
    """Upstream answered with an explicit error (status code or error payload)."""

    kind = ErrorKind.UPSTREAM

    def __init__(
        self,
        message: str = "Upstream error",
        *,
        status_code: int | None = None,
        error_type: str | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type
        self.code = code

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return False
        return self.status_code in (408, 409) or self.status_code >= 500


class AuthenticationError(UpstreamAPIError):
    kind = ErrorKind.AUTHENTICATION

    @property
    def retryable(self) -> bool:
        return False


class RateLimitError(UpstreamAPIError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, retry_after_seconds: int | None = None, message: str = "Rate limited", **kwargs):
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds

    @property
    def retryable(self) -> bool:
        return True
