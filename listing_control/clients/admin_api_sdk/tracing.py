from __future__ import annotations

import uuid
from typing import Mapping

TRACE_HEADER = "X-Trace-ID"


def new_trace_id() -> str:
    return str(uuid.uuid4())


def trace_id_from_response(headers: Mapping[str, str], payload: object | None = None) -> str | None:
    if isinstance(payload, Mapping):
        for key in ("trace_id", "traceId"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return headers.get(TRACE_HEADER) or headers.get("X-Trace-Id")
