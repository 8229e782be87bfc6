from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_BASE_URL = "http://localhost:8000/api/v1"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 15.0
    retries: int = 2
    retry_backoff_seconds: float = 0.25
    verify_ssl: bool = True


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def _normalize_base_url(value: str | None) -> str:
    normalized = (value or "").strip()
    if not normalized:
        return DEFAULT_BASE_URL
    return normalized.rstrip("/")


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load transport settings from the environment, with an optional .env file."""
    load_dotenv(env_file)

    timeout_seconds = _read_float("LISTING_TIMEOUT_SECONDS", "15")
    _validate(timeout_seconds > 0, f"Invalid LISTING_TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}")

    retries = _read_int("LISTING_RETRIES", "2")
    _validate(retries >= 0, f"Invalid LISTING_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("LISTING_RETRY_BACKOFF_SECONDS", "0.25")
    _validate(
        retry_backoff_seconds >= 0,
        f"Invalid LISTING_RETRY_BACKOFF_SECONDS: expected >= 0, got {retry_backoff_seconds}",
    )

    return ClientConfig(
        base_url=_normalize_base_url(os.getenv("LISTING_API_BASE_URL")),
        timeout_seconds=timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        verify_ssl=_coerce_bool(os.getenv("LISTING_VERIFY_SSL"), True),
    )
