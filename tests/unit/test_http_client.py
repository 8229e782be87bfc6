import json

import httpx
import pytest

from listing_control.clients.admin_api_sdk.config import ClientConfig
from listing_control.clients.admin_api_sdk.exceptions import (
    ApiError,
    ConflictError,
    NetworkError,
    NotFoundError,
    ServerError,
    ValidationError,
)
from listing_control.clients.admin_api_sdk.http_client import AsyncHttpClient

BASE_URL = "http://api.test/api/v1/"


def _client(handler, *, retries: int = 2) -> AsyncHttpClient:
    config = ClientConfig(base_url=BASE_URL, retries=retries, retry_backoff_seconds=0)
    transport = httpx.MockTransport(handler)
    return AsyncHttpClient(config, client=httpx.AsyncClient(transport=transport, base_url=BASE_URL))


@pytest.mark.asyncio
async def test_get_joins_base_url_and_sends_trace_header() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"items": []})

    async with _client(handler) as http:
        payload = await http.request("GET", "/logs", params={"page": 2})

    assert payload == {"items": []}
    assert str(seen[0].url) == "http://api.test/api/v1/logs?page=2"
    assert seen[0].headers["X-Trace-ID"]


@pytest.mark.asyncio
async def test_empty_success_body_returns_none() -> None:
    async with _client(lambda request: httpx.Response(204)) as http:
        assert await http.request("DELETE", "logs/7") is None


@pytest.mark.asyncio
async def test_delete_can_carry_a_json_body() -> None:
    bodies: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.content)
        return httpx.Response(200, json={"deletedCount": 2})

    async with _client(handler) as http:
        payload = await http.request("DELETE", "logs/batch", json_body=[1, 2])

    assert payload == {"deletedCount": 2}
    assert json.loads(bodies[0]) == [1, 2]


@pytest.mark.asyncio
async def test_get_retries_server_errors_then_succeeds() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] < 3:
            return httpx.Response(503, json={"message": "busy"})
        return httpx.Response(200, json={"ok": True})

    async with _client(handler, retries=2) as http:
        assert await http.request("GET", "logs") == {"ok": True}

    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_mutations_are_not_retried() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(500, json={"message": "boom"})

    async with _client(handler, retries=3) as http:
        with pytest.raises(ServerError):
            await http.request("POST", "permission-requests/1/approve")

    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_transport_failure_becomes_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler, retries=1) as http:
        with pytest.raises(NetworkError) as exc_info:
            await http.request("GET", "logs")

    assert exc_info.value.status_code == 0
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "expected"),
    [(400, ValidationError), (422, ValidationError), (404, NotFoundError), (409, ConflictError), (502, ServerError)],
)
async def test_error_status_maps_to_exception(status: int, expected: type[ApiError]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status,
            json={"code": "X", "title": "Problem title", "traceId": "trace-123"},
        )

    async with _client(handler, retries=0) as http:
        with pytest.raises(expected) as exc_info:
            await http.request("POST", "logs")

    assert exc_info.value.status_code == status
    assert exc_info.value.message == "Problem title"
    assert exc_info.value.trace_id == "trace-123"


@pytest.mark.asyncio
async def test_non_json_error_body_keeps_text() -> None:
    async with _client(lambda request: httpx.Response(400, text="bad filter")) as http:
        with pytest.raises(ValidationError) as exc_info:
            await http.request("GET", "logs")

    assert exc_info.value.message == "bad filter"
    assert exc_info.value.retryable is False
