from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None = None
    trace_id: str | None = None
    status_code: int = 0
    raw_payload: object | None = None

    retryable = False

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class NetworkError(ApiError):
    """Transport failure before an HTTP response was returned."""

    retryable = True


class ValidationError(ApiError):
    """400/422: the request was rejected as sent; not worth retrying."""


class UnauthorizedError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    """The referenced id no longer exists."""


class ConflictError(ApiError):
    pass


class RateLimitError(ApiError):
    retryable = True


class ServerError(ApiError):
    """5xx server-side failures."""

    retryable = True
