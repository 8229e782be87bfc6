import json
import logging
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "listing_control"


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
        if root.level == logging.NOTSET:
            root.setLevel(logging.INFO)
    return logging.getLogger(name)


def configure_level(level: str) -> None:
    logging.getLogger(ROOT_LOGGER).setLevel(level.upper())


def log_event(
    logger: logging.Logger,
    resource: str,
    action: str,
    outcome: str,
    *,
    level: int = logging.INFO,
    trace_id: str | None = None,
    **fields: Any,
) -> None:
    if not logger.isEnabledFor(level):
        return
    record = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": logging.getLevelName(level),
        "resource": resource,
        "action": action,
        "outcome": outcome,
        "trace_id": trace_id,
    }
    record.update(fields)
    logger.log(level, json.dumps(record, default=str))
