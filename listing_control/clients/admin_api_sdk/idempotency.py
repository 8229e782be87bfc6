from __future__ import annotations

import secrets
from datetime import datetime, timezone


def generate_idempotency_key(operation: str) -> str:
    normalized = operation.strip().lower().replace(" ", "-").replace("_", "-").replace(".", "-")
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"lc-{normalized}-{ts}-{secrets.token_hex(6)}"


def build_idempotency_headers(idempotency_key: str | None) -> dict[str, str]:
    if not idempotency_key:
        return {}
    return {
        "Idempotency-Key": idempotency_key,
        "X-Idempotency-Key": idempotency_key,
    }
