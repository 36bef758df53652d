"""BreakWatch error types."""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Error classification codes."""

    UPSTREAM_FAILURE = "upstream_failure"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    INVALID_RESPONSE = "invalid_response"
    STORE_FAILURE = "store_failure"


class BreakWatchError(Exception):
    """Base exception with error code and retryable flag.

    Attributes:
        message: Human-readable error description.
        code: Structured error code for programmatic handling.
        retryable: Whether the operation may succeed if attempted again.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UPSTREAM_FAILURE,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class UpstreamError(BreakWatchError):
    """NSE request failed or returned something unusable."""


class StoreError(BreakWatchError):
    """Durable state backend read or write failed."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message, ErrorCode.STORE_FAILURE, retryable)
