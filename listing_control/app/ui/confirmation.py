from __future__ import annotations

import asyncio
from typing import Protocol


class ConfirmationGate(Protocol):
    async def confirm(self, message: str) -> bool: ...


class AutoConfirm:
    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.prompts: list[str] = []

    async def confirm(self, message: str) -> bool:
        self.prompts.append(message)
        return self.answer


class PromptConfirmation:
    """Asks on stdin without blocking the event loop."""

    async def confirm(self, message: str) -> bool:
        answer = await asyncio.to_thread(input, f"{message} [y/N]: ")
        return answer.strip().lower() in {"y", "yes"}
