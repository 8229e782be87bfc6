from __future__ import annotations

import asyncio
import itertools
import time
from collections import defaultdict
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable

from .infrastructure.logging import get_logger, log_event
from .observable import StateHolder
from .query_keys import QueryKey

logger = get_logger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class CacheStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class CacheEntry:
    key: QueryKey
    status: CacheStatus = CacheStatus.IDLE
    data: Any = None
    error: Exception | None = None
    last_fetched_at: float | None = None
    stale: bool = False
    token: int = 0
    last_used_at: float = 0.0

    @property
    def is_loading(self) -> bool:
        return self.status is CacheStatus.LOADING


@dataclass
class _InFlight:
    token: int
    task: asyncio.Task


class CacheCoordinator:
    """Keyed fetch cache shared by every list controller of the process.

    One entry per ``QueryKey``. Concurrent non-forced fetches of a key share
    one network call; every fetch gets a token and only the latest token of
    a key may write that key's entry.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        stale_after_seconds: float = 30.0,
        now: Callable[[], float] | None = None,
    ) -> None:
        self.ttl_seconds = max(1.0, ttl_seconds)
        self.stale_after_seconds = max(0.0, stale_after_seconds)
        self._now = now or time.time
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._in_flight: dict[QueryKey, _InFlight] = {}
        self._tokens = itertools.count(1)
        self._generations: dict[str, int] = defaultdict(int)
        self._invalidated_tokens: set[int] = set()
        self._observers: list[QueryObserver] = []

    def entry(self, key: QueryKey) -> CacheEntry | None:
        return self._entries.get(key)

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def is_in_flight(self, key: QueryKey | None) -> bool:
        return key is not None and key in self._in_flight

    def observer(self) -> "QueryObserver":
        observer = QueryObserver(self)
        self._observers.append(observer)
        return observer

    def detach(self, observer: "QueryObserver") -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    async def fetch(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        *,
        force: bool = False,
        hard_reset: bool = False,
    ) -> CacheEntry:
        self.evict_expired()
        running = self._in_flight.get(key)
        if running is not None and not force:
            log_event(logger, key.resource, "fetch", "dedup", operation=key.operation, token=running.token)
            return await self._await_latest(key, running.task)

        entry = self._entries.get(key)
        if not force and entry is not None and self._is_fresh(entry):
            self._store(replace(entry, last_used_at=self._now()), notify=False)
            return self._entries[key]

        token = next(self._tokens)
        base = entry or CacheEntry(key=key)
        self._store(
            replace(
                base,
                status=CacheStatus.LOADING,
                token=token,
                data=None if hard_reset else base.data,
                error=None if hard_reset else base.error,
                last_used_at=self._now(),
            )
        )
        log_event(logger, key.resource, "fetch", "start", operation=key.operation, token=token, forced=force)
        generation = self._generations[key.resource]
        task = asyncio.ensure_future(self._run(key, token, generation, fetcher))
        self._in_flight[key] = _InFlight(token=token, task=task)
        return await self._await_latest(key, task)

    async def invalidate(self, resource: str) -> list[CacheEntry]:
        """Mark every entry of ``resource`` stale and refetch the observed keys only."""
        self._generations[resource] += 1
        for key, entry in list(self._entries.items()):
            if key.resource == resource:
                self._store(replace(entry, stale=True), notify=False)

        targets: dict[QueryKey, Fetcher] = {}
        for observer in self._observers:
            if observer.key is not None and observer.key.resource == resource and observer.fetcher is not None:
                targets.setdefault(observer.key, observer.fetcher)
        log_event(logger, resource, "invalidate", "stale", refetch_keys=len(targets))
        if not targets:
            return []
        return list(await asyncio.gather(*(self.fetch(key, fetcher, force=True) for key, fetcher in targets.items())))

    async def invalidate_key(self, key: QueryKey) -> CacheEntry | None:
        """Mark one entry stale; refetch it only when a view observes it."""
        entry = self._entries.get(key)
        if entry is not None:
            self._store(replace(entry, stale=True), notify=False)
        running = self._in_flight.get(key)
        if running is not None:
            self._invalidated_tokens.add(running.token)
        fetcher = next(
            (observer.fetcher for observer in self._observers if observer.key == key and observer.fetcher is not None),
            None,
        )
        log_event(logger, key.resource, "invalidate", "stale", operation=key.operation, refetch_keys=int(fetcher is not None))
        if fetcher is None:
            return None
        return await self.fetch(key, fetcher, force=True)

    def evict_expired(self) -> int:
        cutoff = self._now() - self.ttl_seconds
        observed = {observer.key for observer in self._observers}
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.last_used_at < cutoff and key not in observed and key not in self._in_flight
        ]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def clear(self) -> None:
        for running in self._in_flight.values():
            running.task.cancel()
        self._in_flight.clear()
        self._entries.clear()

    def _is_fresh(self, entry: CacheEntry) -> bool:
        if entry.status is not CacheStatus.SUCCESS or entry.stale or entry.last_fetched_at is None:
            return False
        return self._now() - entry.last_fetched_at < self.stale_after_seconds

    async def _await_latest(self, key: QueryKey, task: asyncio.Task) -> CacheEntry:
        await asyncio.shield(task)
        # A forced fetch may have superseded the one we waited on.
        latest = self._in_flight.get(key)
        while latest is not None and latest.task is not task:
            task = latest.task
            await asyncio.shield(task)
            latest = self._in_flight.get(key)
        return self._entries.get(key) or CacheEntry(key=key)

    async def _run(self, key: QueryKey, token: int, generation: int, fetcher: Fetcher) -> None:
        try:
            data = await fetcher()
        except asyncio.CancelledError:
            self._release(key, token)
            self._invalidated_tokens.discard(token)
            raise
        except Exception as exc:
            self._release(key, token)
            self._settle(key, token, error=exc)
            return
        self._release(key, token)
        self._settle(key, token, data=data, generation=generation)

    def _release(self, key: QueryKey, token: int) -> None:
        running = self._in_flight.get(key)
        if running is not None and running.token == token:
            del self._in_flight[key]

    def _settle(
        self,
        key: QueryKey,
        token: int,
        *,
        data: Any = None,
        error: Exception | None = None,
        generation: int | None = None,
    ) -> None:
        key_invalidated = token in self._invalidated_tokens
        self._invalidated_tokens.discard(token)
        entry = self._entries.get(key)
        if entry is None or entry.token != token:
            log_event(logger, key.resource, "fetch", "stale-drop", operation=key.operation, token=token)
            return
        now = self._now()
        if error is not None:
            log_event(
                logger,
                key.resource,
                "fetch",
                "error",
                operation=key.operation,
                token=token,
                error=type(error).__name__,
                trace_id=getattr(error, "trace_id", None),
            )
            self._store(replace(entry, status=CacheStatus.ERROR, error=error, last_used_at=now))
            return
        invalidated_meanwhile = (
            generation is not None and generation < self._generations[key.resource]
        ) or key_invalidated
        log_event(logger, key.resource, "fetch", "success", operation=key.operation, token=token)
        self._store(
            replace(
                entry,
                status=CacheStatus.SUCCESS,
                data=data,
                error=None,
                last_fetched_at=now,
                stale=invalidated_meanwhile,
                last_used_at=now,
            )
        )

    def _store(self, entry: CacheEntry, *, notify: bool = True) -> None:
        self._entries[entry.key] = entry
        if not notify:
            return
        for observer in list(self._observers):
            if observer.key == entry.key:
                observer._publish(entry)


class QueryObserver:
    """One view's window onto the coordinator: it follows a single current key.

    Entries for any other key are never published here, which is what drops
    responses for keys the view has already moved away from.
    """

    def __init__(self, coordinator: CacheCoordinator) -> None:
        self._coordinator = coordinator
        self.key: QueryKey | None = None
        self.fetcher: Fetcher | None = None
        self._state: StateHolder[CacheEntry | None] = StateHolder(None)

    def current(self) -> CacheEntry | None:
        return self._state.current()

    def subscribe(self, listener: Callable[[CacheEntry | None], None]) -> Callable[[], None]:
        return self._state.subscribe(listener)

    async def observe(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        *,
        force: bool = False,
        hard_reset: bool = False,
    ) -> CacheEntry | None:
        self.key = key
        self.fetcher = fetcher
        existing = self._coordinator.entry(key)
        self._state.set(existing or CacheEntry(key=key))
        await self._coordinator.fetch(key, fetcher, force=force, hard_reset=hard_reset)
        if self.key != key:
            log_event(logger, key.resource, "fetch", "stale-drop", operation=key.operation, reason="key-changed")
        return self.current()

    def close(self) -> None:
        self._coordinator.detach(self)
        self._state.clear_listeners()
        self.key = None
        self.fetcher = None

    def _publish(self, entry: CacheEntry) -> None:
        self._state.set(entry)
