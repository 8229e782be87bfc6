from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from .cache import CacheCoordinator
from .infrastructure.logging import get_logger, log_event
from .query_keys import QueryKey

logger = get_logger(__name__)


class AutoRefreshScheduler:
    """Polls the current key on an interval, never stacking fetches.

    ``current_key`` and ``refetch`` come from the owning controller so the
    scheduler always targets whatever the view shows at tick time.
    """

    def __init__(
        self,
        cache: CacheCoordinator,
        current_key: Callable[[], QueryKey | None],
        refetch: Callable[[], Awaitable[object]],
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._cache = cache
        self._current_key = current_key
        self._refetch = refetch
        self._sleep = sleep or asyncio.sleep
        self._task: asyncio.Task | None = None
        self._ticks_running: set[asyncio.Future] = set()
        self.interval_ms: int | None = None
        self.ticks = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_ms: int) -> bool:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be greater than 0")
        if self.running:
            return False
        self.interval_ms = interval_ms
        self._task = asyncio.get_running_loop().create_task(self._loop(interval_ms / 1000))
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        for tick in list(self._ticks_running):
            tick.cancel()
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def tick(self) -> bool:
        key = self._current_key()
        if key is None:
            return False
        self.ticks += 1
        if self._cache.is_in_flight(key):
            self.skipped += 1
            log_event(logger, key.resource, "auto-refresh", "skip", operation=key.operation)
            return False
        log_event(logger, key.resource, "auto-refresh", "tick", operation=key.operation)
        await self._refetch()
        return True

    async def _loop(self, interval_seconds: float) -> None:
        while True:
            await self._sleep(interval_seconds)
            # A slow response must not delay the next tick.
            tick = asyncio.ensure_future(self.tick())
            self._ticks_running.add(tick)
            tick.add_done_callback(self._ticks_running.discard)
