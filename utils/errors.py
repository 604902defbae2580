"""Application error taxonomy.

Every error that can reach the HTTP boundary carries a status code and a
stable machine-readable ``code``.  Adapter-level errors are absorbed before
they get that far; only :class:`SummarizationError` and request validation
failures normally surface to callers.
"""

from __future__ import annotations

from datetime import datetime


class AppError(Exception):
    """Base class for errors with an HTTP mapping."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class UpstreamUnavailableError(AppError):
    """A third-party source could not be reached or answered with an error."""

    status_code = 502
    code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, service: str, message: str, status_code: int | None = None):
        super().__init__(f"{service} API error: {message}")
        self.service = service
        self.upstream_status = status_code


class UpstreamRateLimitedError(AppError):
    """A third-party source reported its request quota as exhausted."""

    status_code = 429
    code = "UPSTREAM_RATE_LIMITED"

    def __init__(self, service: str, reset_at: datetime | None, retry_after: int | None):
        when = reset_at.isoformat() if reset_at else "unknown"
        super().__init__(f"{service} rate limit exceeded. Resets at {when}")
        self.service = service
        self.reset_at = reset_at
        self.retry_after = retry_after


class CacheError(AppError):
    """Raised by cache backends; always absorbed by :class:`CacheService`."""

    code = "CACHE_ERROR"


class SummarizationError(AppError):
    """The summarization call failed; no analysis can be produced."""

    status_code = 502
    code = "SUMMARIZATION_FAILED"
