from __future__ import annotations

from datetime import date, datetime
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EntityId = Union[int, str]


class ApiModel(BaseModel):
    # The Resource API speaks camelCase; snake_case is accepted too.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class LogItem(ApiModel):
    id: int
    log_level: str
    timestamp: datetime | None = None
    message: str | None = None
    exception_message: str | None = None
    source_context: str | None = None
    request_path: str | None = None
    status_code: int | None = None
    duration_ms: int | None = None
    correlation_id: str | None = None


class UserItem(ApiModel):
    id: int
    username: str
    email: str | None = None
    full_name: str | None = None
    is_active: bool = True
    create_date: datetime | None = None
    last_login_at: datetime | None = None


class PermissionRequestItem(ApiModel):
    id: int
    user_id: int | None = None
    username: str
    requested_role: str
    request_message: str | None = None
    created_by: str | None = None
    create_date: datetime | None = None


class AvailableRole(ApiModel):
    name: str
    description: str | None = None


class ThirdPartyApiRequestItem(ApiModel):
    id: int
    api_name: str
    base_url: str | None = None
    call_count: int = 0
    last_called_at: datetime | None = None
    reset_date: date | None = None


class ThirdPartyApiStatistics(ApiModel):
    total_api_calls: int = 0
    total_apis_tracked: int = 0
    calls_by_api: dict[str, int] = Field(default_factory=dict)
    last_called_by_api: dict[str, datetime | None] = Field(default_factory=dict)


class PagedResult(BaseModel):
    items: list[Any] = Field(default_factory=list)
    total_count: int | None = None
    page: int = 1
    page_size: int = 25
    has_next: bool | None = None
    has_prev: bool = False

    @property
    def total_pages(self) -> int | None:
        if self.total_count is None:
            return None
        return (self.total_count + self.page_size - 1) // self.page_size
