from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..models import AvailableRole, PermissionRequestItem
from .resource_client import ResourceClient


@dataclass
class PermissionRequestsClient(ResourceClient):
    """Admin review of permission requests plus the caller's own request flow."""

    resource: str = "permission-requests"
    item_model: type[PermissionRequestItem] = PermissionRequestItem
    status_param: str | None = "status"
    # The caller's own endpoints live under the users collection.
    self_service_path: str = "users/me"

    async def available_roles(self) -> list[AvailableRole]:
        body = await self._request("GET", f"{self.self_service_path}/available-roles")
        return [AvailableRole.model_validate(row) for row in body or []]

    async def create(self, payload: dict[str, Any], *, idempotency_key: str | None = None) -> Any:
        """Request roles for the caller; ``payload`` carries ``requestedRoles`` and ``requestMessage``."""
        body = {
            "requestedRoles": list(payload.get("requestedRoles", payload.get("requested_roles", ()))),
            "requestMessage": payload.get("requestMessage", payload.get("request_message")),
        }
        if not body["requestedRoles"]:
            raise ValueError("requestedRoles must name at least one role")
        return await self._request(
            "POST", f"{self.self_service_path}/permission-requests", json_body=body, idempotency_key=idempotency_key
        )
