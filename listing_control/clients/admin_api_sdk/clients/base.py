from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..http_client import AsyncHttpClient, JsonPayload
from ..idempotency import build_idempotency_headers


@dataclass
class BaseClient:
    http: AsyncHttpClient
    access_token: str | None = None

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def _request(self, method: str, path: str, *, idempotency_key: str | None = None, **kwargs: Any) -> JsonPayload:
        headers = kwargs.pop("headers", None) or {}
        merged = {**self._auth_headers(), **build_idempotency_headers(idempotency_key), **headers}
        return await self.http.request(method, path, headers=merged, **kwargs)
