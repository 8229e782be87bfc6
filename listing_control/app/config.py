from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_PAGE_SIZE_OPTIONS = (10, 25, 50, 100)


@dataclass(frozen=True)
class AppConfig:
    page_size_options: tuple[int, ...] = DEFAULT_PAGE_SIZE_OPTIONS
    default_page_size: int = 25
    cache_ttl_seconds: float = 300.0
    stale_after_seconds: float = 30.0
    auto_refresh_interval_ms: int = 0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str | None = ".env") -> "AppConfig":
        if env_file:
            load_dotenv(env_file)
        config = cls(
            page_size_options=_parse_sizes(os.getenv("LISTING_PAGE_SIZE_OPTIONS", "10,25,50,100")),
            default_page_size=_parse_int("LISTING_DEFAULT_PAGE_SIZE", "25"),
            cache_ttl_seconds=_parse_float("LISTING_CACHE_TTL_SECONDS", "300"),
            stale_after_seconds=_parse_float("LISTING_STALE_AFTER_SECONDS", "30"),
            auto_refresh_interval_ms=_parse_int("LISTING_AUTO_REFRESH_MS", "0"),
            log_level=os.getenv("LISTING_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
        config.validate()
        return config

    def validate(self) -> None:
        if not self.page_size_options or any(size <= 0 for size in self.page_size_options):
            raise ValueError("LISTING_PAGE_SIZE_OPTIONS must list positive integers")
        if self.default_page_size not in self.page_size_options:
            raise ValueError(
                f"LISTING_DEFAULT_PAGE_SIZE must be one of {list(self.page_size_options)}, got {self.default_page_size}"
            )
        if self.cache_ttl_seconds <= 0:
            raise ValueError("LISTING_CACHE_TTL_SECONDS must be greater than 0")
        if self.stale_after_seconds < 0:
            raise ValueError("LISTING_STALE_AFTER_SECONDS must be >= 0")
        if self.auto_refresh_interval_ms < 0:
            raise ValueError("LISTING_AUTO_REFRESH_MS must be >= 0")
        if self.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LISTING_LOG_LEVEL is not a logging level: {self.log_level}")


def _parse_sizes(raw: str) -> tuple[int, ...]:
    try:
        sizes = [int(part) for part in raw.split(",") if part.strip()]
    except ValueError as exc:
        raise ValueError(f"LISTING_PAGE_SIZE_OPTIONS must be comma separated integers, got {raw!r}") from exc
    return tuple(sorted(set(sizes)))


def _parse_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _parse_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
