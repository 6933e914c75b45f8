"""Custom exceptions for Gmail Subscription Scanner."""

from __future__ import annotations


class ScannerError(Exception):
    """Base exception for all scanner errors."""


class GmailAPIError(ScannerError):
    """A Gmail API call failed.

    ``status`` is the HTTP status code when the server answered, ``None`` for
    failures that never produced a response.
    """

    def __init__(self, message: str, status: int | None = None, retry_after: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


class TransportError(GmailAPIError):
    """Connection-level failure (DNS, socket, TLS, malformed URL)."""


class RateLimitedError(GmailAPIError):
    """HTTP 429 from Gmail."""


class UnauthorizedError(GmailAPIError):
    """HTTP 401: the bearer token must be refreshed before retrying."""


class NotFoundError(GmailAPIError):
    """HTTP 404 from Gmail."""


class ServerError(GmailAPIError):
    """Any other non-2xx response."""


class CursorExpiredError(ScannerError):
    """The stored history id is too old for an incremental sync."""


class CircuitOpenError(ScannerError):
    """The circuit breaker rejected the request without calling the network."""


class MaxRetriesExceededError(ScannerError):
    """A request kept failing after the retry ceiling was reached."""
