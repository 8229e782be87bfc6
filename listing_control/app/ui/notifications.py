from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


class NotificationGate(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


@dataclass
class NotificationCenter:
    """Collects toasts in memory; views render ``items`` and tests assert on them."""

    items: list[dict[str, Any]] = field(default_factory=list)

    def toast(self, *, level: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {"level": level, "message": message, "details": details or {}}
        self.items.append(payload)
        return payload

    def success(self, message: str) -> None:
        self.toast(level="success", message=message)

    def error(self, message: str) -> None:
        self.toast(level="error", message=message)

    def messages(self, level: str | None = None) -> list[str]:
        return [item["message"] for item in self.items if level is None or item["level"] == level]

    def clear(self) -> None:
        self.items.clear()


class ConsoleNotifier:
    def success(self, message: str) -> None:
        print(f"[OK] {message}")

    def error(self, message: str) -> None:
        print(f"[ERROR] {message}")
