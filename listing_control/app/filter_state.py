from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Union

from .observable import StateHolder

PAGING_FIELDS = frozenset({"page", "page_size"})


@dataclass(frozen=True)
class FilterState:
    search_term: str | None = None
    level_or_status: Any = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    page_size: int = 25
    sort_by: str | None = None
    sort_descending: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


FILTER_FIELDS = frozenset(item.name for item in fields(FilterState))

DefaultsFactory = Union[FilterState, Callable[[], FilterState]]


def to_utc(value: datetime | str | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FilterStateStore:
    """Holds filter, sort and paging state for one list view."""

    def __init__(
        self,
        defaults: DefaultsFactory | None = None,
        page_size_options: Iterable[int] = (10, 25, 50, 100),
        status_type: type[Enum] | None = None,
    ) -> None:
        self._defaults = defaults if defaults is not None else FilterState()
        self.page_size_options = tuple(page_size_options)
        self.status_type = status_type
        self._state: StateHolder[FilterState] = StateHolder(self._default_state())

    def current(self) -> FilterState:
        return self._state.current()

    def subscribe(self, listener: Callable[[FilterState], None]) -> Callable[[], None]:
        return self._state.subscribe(listener)

    def update(self, **partial: Any) -> FilterState:
        unknown = set(partial) - FILTER_FIELDS
        if unknown:
            raise ValueError(f"Unknown filter fields: {sorted(unknown)}")

        changes = {name: self._normalize(name, value) for name, value in partial.items()}
        if "page_size" in changes:
            self._check_page_size(changes["page_size"])
        if set(changes) - {"page"}:
            changes["page"] = 1
        elif "page" in changes:
            changes["page"] = max(1, changes["page"])
        return self._commit(replace(self.current(), **changes))

    def set_page(self, page: int) -> FilterState:
        return self._commit(replace(self.current(), page=max(1, int(page))))

    def set_page_size(self, page_size: int) -> FilterState:
        size = int(page_size)
        self._check_page_size(size)
        return self._commit(replace(self.current(), page_size=size, page=1))

    def next_page(self, has_next: bool | None = None) -> FilterState:
        if has_next is False:
            return self.current()
        return self.set_page(self.current().page + 1)

    def prev_page(self) -> FilterState:
        return self.set_page(self.current().page - 1)

    def clear(self) -> FilterState:
        return self._commit(self._default_state())

    def close(self) -> None:
        self._state.clear_listeners()

    def _default_state(self) -> FilterState:
        state = self._defaults() if callable(self._defaults) else self._defaults
        normalized = {name: self._normalize(name, value) for name, value in state.to_dict().items()}
        if normalized["page_size"] not in self.page_size_options:
            normalized["page_size"] = self.page_size_options[0]
        return FilterState(**normalized)

    def _commit(self, state: FilterState) -> FilterState:
        self._state.set(state)
        return state

    def _check_page_size(self, page_size: int) -> None:
        if page_size not in self.page_size_options:
            raise ValueError(f"page_size must be one of {list(self.page_size_options)}, got {page_size}")

    def _normalize(self, name: str, value: Any) -> Any:
        if name in {"start_date", "end_date"}:
            return to_utc(value)
        if name == "search_term":
            text = (value or "").strip()
            return text or None
        if name == "sort_by":
            return value or None
        if name == "level_or_status":
            return self._normalize_status(value)
        if name in PAGING_FIELDS:
            return int(value)
        if name == "sort_descending":
            return bool(value)
        return value

    def _normalize_status(self, value: Any) -> Any:
        if value is None or value == "":
            return None
        if self.status_type is None or isinstance(value, self.status_type):
            return value
        text = str(value).strip()
        for member in self.status_type:
            if text.lower() in {str(member.value).lower(), member.name.lower()}:
                return member
        allowed = [member.value for member in self.status_type]
        raise ValueError(f"level_or_status must be one of {allowed}, got {value!r}")
