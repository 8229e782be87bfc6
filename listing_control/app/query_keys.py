from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping, NamedTuple


class QueryKey(NamedTuple):
    resource: str
    operation: str
    params: str


def _canonical_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return _canonical_value(value.value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): _canonical_value(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [_canonical_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_canonical_value(item) for item in value), key=repr)
    return value


def canonical_serialization(filter_state: Any) -> str:
    """Serialize a filter snapshot so equal filters always give the same string.

    ``None`` fields are dropped, keys are sorted and datetimes are rendered as
    ISO-8601 UTC with microseconds.
    """
    if filter_state is None:
        data: Mapping[str, Any] = {}
    elif is_dataclass(filter_state) and not isinstance(filter_state, type):
        data = {item.name: getattr(filter_state, item.name) for item in fields(filter_state)}
    elif isinstance(filter_state, Mapping):
        data = filter_state
    else:
        data = {"value": filter_state}
    return json.dumps(_canonical_value(data), sort_keys=True, separators=(",", ":"), default=str)


def build_query_key(resource: str, operation: str, filter_state: Any = None) -> QueryKey:
    return QueryKey(resource, operation, canonical_serialization(filter_state))
