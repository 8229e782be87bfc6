from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..clients.admin_api_sdk.exceptions import ApiError

if TYPE_CHECKING:
    from .mutations import MutationResult


class PartialBulkFailure(Exception):
    """Raised on request when a bulk mutation only partly succeeded."""

    def __init__(self, result: "MutationResult") -> None:
        self.result = result
        super().__init__(result.summary())

    @property
    def succeeded_count(self) -> int:
        return self.result.succeeded_count

    @property
    def requested_count(self) -> int:
        return self.result.requested_count


class ErrorMapper:
    _KNOWN_CODES = {
        "NETWORK_ERROR": ("The Resource API is unreachable.", "Check your connection and retry."),
        "TIMEOUT_ERROR": ("The server took too long to answer.", "Retry; the same operation key will be reused."),
        "INTERNAL_ERROR": ("Internal error while processing the request.", "Retry in a few seconds."),
        "IDEMPOTENT_REPLAY": ("This operation was already processed.", "Refresh the list before sending it again."),
    }

    _STATUS_HINTS = {
        401: ("UNAUTHORIZED", "Your session is no longer valid.", "Sign in again."),
        403: ("PERMISSION_DENIED", "You are not allowed to perform this operation.", "Ask an administrator for access."),
        404: ("NOT_FOUND", "The item no longer exists.", "Refresh the list."),
        409: ("CONFLICT", "The item was changed by someone else.", "Refresh the list and retry."),
        429: ("RATE_LIMITED", "Too many requests.", "Wait a moment and retry."),
        500: ("SERVER_ERROR", "The server failed to process the request.", "Retry and share the trace_id if it persists."),
    }

    @classmethod
    def to_payload(cls, error: Exception) -> dict[str, Any]:
        if isinstance(error, PartialBulkFailure):
            return {
                "code": "PARTIAL_BULK_FAILURE",
                "message": error.result.summary(),
                "details": {
                    "succeeded_count": error.result.succeeded_count,
                    "requested_count": error.result.requested_count,
                    "failed_ids": list(error.result.failed_ids),
                    "unattributed_ids": list(error.result.unattributed_ids),
                },
                "trace_id": None,
                "suggestion": "Retry the items that are still selected.",
                "retryable": True,
            }
        if isinstance(error, ApiError):
            status_code = error.status_code or -1
            if status_code in {400, 422}:
                # Validation messages are shown exactly as the server wrote them.
                return {
                    "code": error.code,
                    "message": error.message,
                    "details": error.details,
                    "trace_id": error.trace_id,
                    "suggestion": "Fix the highlighted fields and submit again.",
                    "retryable": False,
                }
            mapped = cls._STATUS_HINTS.get(status_code)
            if mapped is None and status_code >= 500:
                mapped = cls._STATUS_HINTS[500]
            if mapped is not None:
                code, message, suggestion = mapped
            else:
                message, suggestion = cls._KNOWN_CODES.get(
                    error.code,
                    (error.message, "Contact support with the trace_id."),
                )
                code = error.code
            return {
                "code": code,
                "message": message,
                "details": error.details,
                "trace_id": error.trace_id,
                "suggestion": suggestion,
                "retryable": error.retryable,
            }
        return {
            "code": "INTERNAL_ERROR",
            "message": str(error),
            "details": None,
            "trace_id": None,
            "suggestion": "Retry and report the incident if it persists.",
            "retryable": False,
        }

    @classmethod
    def to_display_message(cls, error: Exception) -> str:
        payload = cls.to_payload(error)
        message = f"[{payload['code']}] {payload['message']}"
        if payload["trace_id"]:
            message += f" (trace_id={payload['trace_id']})"
        if payload["retryable"]:
            message += f" {payload['suggestion']}"
        return message
