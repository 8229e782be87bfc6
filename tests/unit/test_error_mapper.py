from listing_control.app.errors import ErrorMapper, PartialBulkFailure
from listing_control.app.mutations import MutationKind, MutationRequest, MutationResult
from listing_control.clients.admin_api_sdk.error_mapper import map_error
from listing_control.clients.admin_api_sdk.exceptions import (
    ApiError,
    ForbiddenError,
    NetworkError,
    RateLimitError,
    ServerError,
    UnauthorizedError,
    ValidationError,
)


def test_map_error_reads_details_and_trace_id() -> None:
    error = map_error(422, {"code": "VALIDATION_ERROR", "message": "Email is taken", "errors": {"email": ["taken"]}}, "t-1")

    assert isinstance(error, ValidationError)
    assert error.details == {"email": ["taken"]}
    assert error.trace_id == "t-1"


def test_map_error_prefers_payload_trace_id() -> None:
    error = map_error(500, {"traceId": "from-body"}, "from-header")

    assert isinstance(error, ServerError)
    assert error.trace_id == "from-body"
    assert error.message == "Request failed"


def test_map_error_status_classes() -> None:
    assert isinstance(map_error(401, {}, None), UnauthorizedError)
    assert isinstance(map_error(403, {}, None), ForbiddenError)
    assert isinstance(map_error(429, {}, None), RateLimitError)
    assert type(map_error(418, {}, None)) is ApiError


def test_validation_message_is_shown_verbatim() -> None:
    error = ValidationError(code="VALIDATION_ERROR", message="Username must be unique", status_code=400)

    payload = ErrorMapper.to_payload(error)

    assert payload["message"] == "Username must be unique"
    assert payload["retryable"] is False
    assert ErrorMapper.to_display_message(error) == "[VALIDATION_ERROR] Username must be unique"


def test_server_error_payload_carries_retry_suggestion() -> None:
    error = ServerError(code="HTTP_ERROR", message="boom", trace_id="trace-9", status_code=503)

    payload = ErrorMapper.to_payload(error)

    assert payload["code"] == "SERVER_ERROR"
    assert payload["retryable"] is True
    message = ErrorMapper.to_display_message(error)
    assert "trace_id=trace-9" in message
    assert "Retry" in message


def test_network_error_uses_known_code() -> None:
    error = NetworkError(code="NETWORK_ERROR", message="down", status_code=0)

    payload = ErrorMapper.to_payload(error)

    assert payload["message"] == "The Resource API is unreachable."
    assert payload["retryable"] is True


def test_partial_bulk_failure_payload_reports_both_counts() -> None:
    request = MutationRequest(kind=MutationKind.DELETE, affected_ids=(1, 2, 3), bulk=True)
    result = MutationResult(request=request, succeeded_ids=(1, 2), failed_ids=(3,), succeeded_count=2)

    payload = ErrorMapper.to_payload(PartialBulkFailure(result))

    assert payload["code"] == "PARTIAL_BULK_FAILURE"
    assert payload["message"] == "2 of 3 deleted; 1 failed"
    assert payload["details"]["failed_ids"] == [3]


def test_unknown_exception_maps_to_internal_error() -> None:
    payload = ErrorMapper.to_payload(RuntimeError("oops"))

    assert payload["code"] == "INTERNAL_ERROR"
    assert payload["message"] == "oops"
