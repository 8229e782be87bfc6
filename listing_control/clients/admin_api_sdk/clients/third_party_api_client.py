from __future__ import annotations

from dataclasses import dataclass

from ..models import ThirdPartyApiRequestItem, ThirdPartyApiStatistics
from .resource_client import ResourceClient


@dataclass
class ThirdPartyApiClient(ResourceClient):
    """Read-only usage counters for outbound third-party API calls."""

    resource: str = "third-party-api"
    item_model: type[ThirdPartyApiRequestItem] = ThirdPartyApiRequestItem

    async def list_all(self) -> list[ThirdPartyApiRequestItem]:
        payload = await self._request("GET", self._path("all"))
        rows = payload if isinstance(payload, list) else []
        return [self._parse_item(row) for row in rows]

    async def statistics(self) -> ThirdPartyApiStatistics:
        payload = await self._request("GET", self._path("statistics"))
        return ThirdPartyApiStatistics.model_validate(payload or {})
