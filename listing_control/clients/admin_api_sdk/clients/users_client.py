from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable
from urllib.parse import quote

from ..models import EntityId, UserItem
from .resource_client import BulkResponse, ResourceClient, parse_bulk_response


def _encode_active(status: Any) -> bool:
    value = getattr(status, "value", status)
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "active"


@dataclass
class UsersClient(ResourceClient):
    resource: str = "users"
    item_model: type[UserItem] = UserItem
    status_param: str | None = "isActive"

    def __post_init__(self) -> None:
        if self.status_encoder is None:
            self.status_encoder = _encode_active
        super().__post_init__()

    async def create(self, payload: dict[str, Any], *, idempotency_key: str | None = None) -> UserItem | Any:
        body = await self._request("POST", self.resource, json_body=payload, idempotency_key=idempotency_key)
        return self._parse_item(body)

    async def update(
        self, entity_id: EntityId, payload: dict[str, Any], *, idempotency_key: str | None = None
    ) -> UserItem | Any:
        body = await self._request("PUT", self._path(entity_id), json_body=payload, idempotency_key=idempotency_key)
        return self._parse_item(body)

    async def restore(self, entity_id: EntityId, *, idempotency_key: str | None = None) -> None:
        await self._request("POST", self._path(entity_id, "restore"), idempotency_key=idempotency_key)

    async def reset_password(self, entity_id: EntityId, *, idempotency_key: str | None = None) -> Any:
        return await self._request("POST", self._path(entity_id, "reset-password"), idempotency_key=idempotency_key)

    async def bulk_activate(self, ids: Iterable[EntityId], *, idempotency_key: str | None = None) -> BulkResponse:
        payload = await self._request(
            "POST", self._path("bulk", "activate"), json_body=list(ids), idempotency_key=idempotency_key
        )
        return parse_bulk_response(payload, "succeededCount", "activatedCount", "count")

    async def bulk_deactivate(self, ids: Iterable[EntityId], *, idempotency_key: str | None = None) -> BulkResponse:
        payload = await self._request(
            "POST", self._path("bulk", "deactivate"), json_body=list(ids), idempotency_key=idempotency_key
        )
        return parse_bulk_response(payload, "succeededCount", "deactivatedCount", "count")

    async def get_by_username(self, username: str) -> UserItem | Any:
        body = await self._request("GET", self._path("username", quote(username, safe="")))
        return self._parse_item(body)

    async def username_exists(self, username: str, *, exclude_id: EntityId | None = None) -> bool:
        """True when ``username`` is taken by anyone other than ``exclude_id``."""
        params = {"excludeId": exclude_id} if exclude_id is not None else None
        body = await self._request("GET", self._path("check", "username", quote(username, safe="")), params=params)
        return bool(body)

    async def get_roles(self, entity_id: EntityId) -> list[str]:
        body = await self._request("GET", self._path(entity_id, "roles"))
        return [str(role) for role in body or []]

    async def add_role(self, entity_id: EntityId, role: str, *, idempotency_key: str | None = None) -> None:
        await self._request(
            "POST", self._path(entity_id, "roles", quote(role, safe="")), json_body={}, idempotency_key=idempotency_key
        )

    async def remove_role(self, entity_id: EntityId, role: str, *, idempotency_key: str | None = None) -> None:
        await self._request("DELETE", self._path(entity_id, "roles", quote(role, safe="")), idempotency_key=idempotency_key)
