from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from .config import ClientConfig
from .error_mapper import map_error
from .exceptions import NetworkError
from .tracing import TRACE_HEADER, new_trace_id, trace_id_from_response

logger = logging.getLogger(__name__)

JsonPayload = dict[str, Any] | list[Any] | int | None


class AsyncHttpClient:
    """Thin JSON transport over ``httpx.AsyncClient``.

    Only idempotent reads are retried; mutations surface the first failure so
    the caller decides whether to re-issue them.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._client = client or httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/") + "/",
            timeout=self.config.timeout_seconds,
            verify=self.config.verify_ssl,
        )
        self._retries = max(0, self.config.retries)
        self._retry_backoff_seconds = max(0.0, self.config.retry_backoff_seconds)

    async def __aenter__(self) -> "AsyncHttpClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> JsonPayload:
        normalized_method = method.upper()
        request_headers = {"Accept": "application/json", TRACE_HEADER: new_trace_id()}
        if headers:
            request_headers.update(headers)
        url = path.lstrip("/")
        attempts = self._retries + 1 if normalized_method in {"GET", "HEAD"} else 1

        response: httpx.Response | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(
                    normalized_method,
                    url,
                    json=json_body,
                    params=params,
                    headers=request_headers,
                )
            except httpx.TransportError as exc:
                if attempt >= attempts:
                    raise NetworkError(
                        code="NETWORK_ERROR",
                        message=f"Network error calling {normalized_method} {path}",
                        details={"type": type(exc).__name__, "reason": str(exc)},
                        trace_id=request_headers[TRACE_HEADER],
                        status_code=0,
                    ) from exc
                logger.warning(
                    "retrying %s %s after %s (attempt %s/%s)", normalized_method, path, type(exc).__name__, attempt, attempts
                )
                await self._backoff(attempt)
                continue

            if response.status_code >= 500 and attempt < attempts:
                logger.warning(
                    "retrying %s %s after HTTP %s (attempt %s/%s)", normalized_method, path, response.status_code, attempt, attempts
                )
                await self._backoff(attempt)
                continue
            break

        if response is None:
            raise RuntimeError(f"HTTP request {normalized_method} {path} finished without a response")
        if response.is_success:
            if not response.content:
                return None
            return response.json()

        try:
            payload = response.json()
        except json.JSONDecodeError:
            payload = {"message": response.text or response.reason_phrase}
        if not isinstance(payload, dict):
            payload = {"message": response.reason_phrase, "details": payload}
        trace_id = trace_id_from_response(response.headers, payload) or request_headers[TRACE_HEADER]
        raise map_error(response.status_code, payload, trace_id)

    async def _backoff(self, attempt: int) -> None:
        await asyncio.sleep(self._retry_backoff_seconds * attempt)
