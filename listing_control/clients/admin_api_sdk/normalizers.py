from __future__ import annotations

from typing import Any, Callable

from .models import PagedResult


def normalize_page(
    payload: Any,
    *,
    page: int = 1,
    page_size: int = 25,
    parse_item: Callable[[Any], Any] | None = None,
) -> PagedResult:
    safe_page = max(1, int(page or 1))
    safe_page_size = max(1, int(page_size or 25))

    rows: list[Any] = []
    total: int | None = None
    has_next: bool | None = None

    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict):
        for key in ("items", "rows", "data"):
            if isinstance(payload.get(key), list):
                rows = payload[key]
                break

        total = _to_int(payload.get("totalCount"))
        total = total if total is not None else _to_int(payload.get("total_count"))
        total = total if total is not None else _to_int(payload.get("total"))

        safe_page = _to_int(payload.get("page")) or safe_page
        safe_page_size = _to_int(payload.get("pageSize")) or _to_int(payload.get("page_size")) or safe_page_size
        has_next = _to_bool(payload.get("hasNextPage"))
        if has_next is None:
            has_next = _to_bool(payload.get("has_next"))

    safe_page = max(1, safe_page)
    safe_page_size = max(1, safe_page_size)

    if total is None and safe_page == 1 and len(rows) < safe_page_size:
        total = len(rows)
    if has_next is None and total is not None:
        has_next = safe_page * safe_page_size < total

    items = [parse_item(row) for row in rows] if parse_item else list(rows)
    return PagedResult(
        items=items,
        total_count=total,
        page=safe_page,
        page_size=safe_page_size,
        has_next=has_next,
        has_prev=safe_page > 1,
    )


def count_from_payload(payload: Any, *keys: str) -> int:
    """Pull an aggregate count out of ``{"deletedCount": n}``-style bodies or a bare int."""
    if isinstance(payload, bool):
        return int(payload)
    if isinstance(payload, int):
        return payload
    if isinstance(payload, dict):
        for key in keys or ("count",):
            value = _to_int(payload.get(key))
            if value is not None:
                return value
    return 0


def _to_int(value: Any) -> int | None:
    try:
        if value is None or value == "" or isinstance(value, bool):
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None
