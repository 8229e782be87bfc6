from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from pydantic import BaseModel

from ..exceptions import NotFoundError
from ..models import EntityId, PagedResult
from ..normalizers import count_from_payload, normalize_page
from .base import BaseClient


@dataclass
class BulkResponse:
    """Outcome of a bulk endpoint.

    ``count`` is always the server's aggregate number. ``succeeded_ids`` and
    ``failed`` are only filled when the server reports per-id results.
    """

    count: int
    succeeded_ids: list[EntityId] | None = None
    failed: dict[EntityId, str] | None = None

    @property
    def has_per_id_detail(self) -> bool:
        return self.succeeded_ids is not None and self.failed is not None


def to_wire_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def parse_bulk_response(payload: Any, *count_keys: str) -> BulkResponse:
    count = count_from_payload(payload, *count_keys)
    if not isinstance(payload, Mapping) or not isinstance(payload.get("results"), list):
        return BulkResponse(count=count)

    succeeded: list[EntityId] = []
    failed: dict[EntityId, str] = {}
    for row in payload["results"]:
        if not isinstance(row, Mapping) or "id" not in row:
            continue
        ok = row.get("success", row.get("succeeded", False))
        if ok:
            succeeded.append(row["id"])
        else:
            failed[row["id"]] = str(row.get("error") or row.get("message") or "failed")
    return BulkResponse(count=count, succeeded_ids=succeeded, failed=failed)


@dataclass
class ResourceClient(BaseClient):
    """Generic client for one REST collection under ``/{resource}``."""

    resource: str = ""
    item_model: type[BaseModel] | None = None
    status_param: str | None = None
    status_encoder: Callable[[Any], Any] | None = None
    probe_concurrency: int = field(default=5)

    def __post_init__(self) -> None:
        if not self.resource:
            raise ValueError("resource is required")
        self.resource = self.resource.strip("/")

    def _path(self, *parts: Any) -> str:
        return "/".join([self.resource, *(str(part) for part in parts)])

    def _parse_item(self, row: Any) -> Any:
        if self.item_model is None or not isinstance(row, Mapping):
            return row
        return self.item_model.model_validate(row)

    def list_params(
        self,
        *,
        search_term: str | None = None,
        status: Any = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int | None = None,
        page_size: int | None = None,
        sort_by: str | None = None,
        sort_descending: bool | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "searchTerm": search_term or None,
            "startDate": to_wire_datetime(start_date) if start_date else None,
            "endDate": to_wire_datetime(end_date) if end_date else None,
            "page": page,
            "pageSize": page_size,
            "sortBy": sort_by,
        }
        if sort_descending is not None:
            params["sortDescending"] = "true" if sort_descending else "false"
        if status is not None and self.status_param:
            encoded = self.status_encoder(status) if self.status_encoder else getattr(status, "value", status)
            if isinstance(encoded, bool):
                encoded = "true" if encoded else "false"
            params[self.status_param] = encoded
        return {key: value for key, value in params.items() if value is not None}

    async def list_page(self, **filters: Any) -> PagedResult:
        params = self.list_params(**filters)
        payload = await self._request("GET", self.resource, params=params)
        return normalize_page(
            payload,
            page=params.get("page", 1),
            page_size=params.get("pageSize", 25),
            parse_item=self._parse_item,
        )

    async def count(self, **filters: Any) -> int:
        filters.pop("page", None)
        filters.pop("page_size", None)
        payload = await self._request("GET", self._path("count"), params=self.list_params(**filters))
        return count_from_payload(payload, "total", "totalCount", "count")

    async def get(self, entity_id: EntityId) -> Any:
        payload = await self._request("GET", self._path(entity_id))
        return self._parse_item(payload)

    async def delete(self, entity_id: EntityId, *, idempotency_key: str | None = None) -> None:
        await self._request("DELETE", self._path(entity_id), idempotency_key=idempotency_key)

    async def delete_batch(self, ids: Iterable[EntityId], *, idempotency_key: str | None = None) -> BulkResponse:
        payload = await self._request("DELETE", self._path("batch"), json_body=list(ids), idempotency_key=idempotency_key)
        return parse_bulk_response(payload, "deletedCount", "count")

    async def approve(self, entity_id: EntityId, *, idempotency_key: str | None = None) -> None:
        await self._request("POST", self._path(entity_id, "approve"), idempotency_key=idempotency_key)

    async def reject(self, entity_id: EntityId, *, idempotency_key: str | None = None) -> None:
        await self._request("POST", self._path(entity_id, "reject"), idempotency_key=idempotency_key)

    async def bulk_approve(self, ids: Iterable[EntityId], *, idempotency_key: str | None = None) -> BulkResponse:
        payload = await self._request(
            "POST", self._path("bulk", "approve"), json_body=list(ids), idempotency_key=idempotency_key
        )
        return parse_bulk_response(payload, "succeededCount", "count")

    async def bulk_reject(self, ids: Iterable[EntityId], *, idempotency_key: str | None = None) -> BulkResponse:
        payload = await self._request(
            "POST", self._path("bulk", "reject"), json_body=list(ids), idempotency_key=idempotency_key
        )
        return parse_bulk_response(payload, "succeededCount", "count")

    async def probe_missing(
        self,
        ids: Iterable[EntityId],
        *,
        processed: Callable[[Any], bool] | None = None,
    ) -> list[EntityId]:
        """Return the ids that no longer answer ``GET /{resource}/{id}``.

        ``processed`` widens the check to ids that still exist but are no
        longer actionable (an approved permission request, for example).
        """
        semaphore = asyncio.Semaphore(max(1, self.probe_concurrency))

        async def _gone(entity_id: EntityId) -> bool:
            async with semaphore:
                try:
                    payload = await self._request("GET", self._path(entity_id))
                except NotFoundError:
                    return True
            return bool(processed and processed(payload))

        id_list = list(ids)
        tasks = [asyncio.ensure_future(_gone(entity_id)) for entity_id in id_list]
        try:
            flags = await asyncio.gather(*tasks)
        except BaseException:
            # One failed GET aborts the probe; its siblings must not keep running.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [entity_id for entity_id, gone in zip(id_list, flags) if gone]
