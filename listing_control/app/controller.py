from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Hashable, Iterable, Mapping

from ..clients.admin_api_sdk.models import PagedResult
from .auto_refresh import AutoRefreshScheduler
from .cache import CacheCoordinator, CacheEntry, CacheStatus
from .filter_state import FilterState, FilterStateStore
from .mutations import InvalidationPlan, MutateFn, MutationKind, MutationOrchestrator, MutationResult, ProbeFn
from .observable import StateHolder
from .query_keys import QueryKey, build_query_key
from .selection import SelectionManager
from .ui.confirmation import AutoConfirm, ConfirmationGate
from .ui.notifications import NotificationCenter, NotificationGate

FetchPage = Callable[[FilterState], Awaitable[PagedResult]]
FetchCount = Callable[[FilterState], Awaitable[int]]
LookupFetch = Callable[[Mapping[str, Any]], Awaitable[Any]]

ALL_KINDS = frozenset(MutationKind)


@dataclass(frozen=True)
class ListViewState:
    status: CacheStatus = CacheStatus.IDLE
    items: tuple[Any, ...] = ()
    total_count: int | None = None
    page: int = 1
    page_size: int = 25
    total_pages: int | None = None
    has_next: bool = False
    has_prev: bool = False
    error: Exception | None = None
    is_fetching: bool = False
    is_stale: bool = False
    selected_count: int = 0
    last_fetched_at: datetime | None = None


def default_id_of(item: Any) -> Hashable:
    if isinstance(item, dict):
        return item["id"]
    return getattr(item, "id")


class ResourceListController:
    """Filtered, paginated, selectable list of one resource for one view.

    Built per view and closed when the view goes away. Filter and selection
    state belong to this instance only; the ``CacheCoordinator`` may be shared.
    """

    def __init__(
        self,
        resource_name: str,
        fetch_page: FetchPage,
        mutate: MutateFn | None = None,
        *,
        cache: CacheCoordinator | None = None,
        filters: FilterStateStore | None = None,
        confirm: ConfirmationGate | None = None,
        notify: NotificationGate | None = None,
        probe_missing: ProbeFn | None = None,
        fetch_count: FetchCount | None = None,
        lookups: Mapping[str, LookupFetch] | None = None,
        invalidates: InvalidationPlan | None = None,
        supported: Iterable[MutationKind] | None = None,
        id_of: Callable[[Any], Hashable] = default_id_of,
        select_visible: bool = False,
        auto_refresh_ms: int = 0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.resource_name = resource_name
        self.cache = cache or CacheCoordinator()
        self.filters = filters or FilterStateStore()
        self.selection = SelectionManager()
        self.notify = notify or NotificationCenter()
        self.supported = frozenset(supported) if supported is not None else (ALL_KINDS if mutate else frozenset())
        self.select_visible = select_visible
        self.auto_refresh_ms = auto_refresh_ms
        self._fetch_page = fetch_page
        self._fetch_count = fetch_count
        self._lookups = dict(lookups or {})
        self._id_of = id_of
        self._observer = self.cache.observer()
        self._last_success_key: QueryKey | None = None
        self._last_success_at: float | None = None

        self.mutations = MutationOrchestrator(
            resource_name,
            self.cache,
            self.selection,
            mutate or _read_only(resource_name),
            # Without an explicit gate, confirmations are declined.
            confirm or AutoConfirm(answer=False),
            self.notify,
            probe_missing=probe_missing,
            invalidates=invalidates,
        )
        self.auto_refresh = AutoRefreshScheduler(
            self.cache,
            current_key=lambda: self._observer.key,
            refetch=self.refresh,
            sleep=sleep,
        )

        self._view: StateHolder[ListViewState] = StateHolder(self._snapshot())
        self._unsubscribers = [
            self._observer.subscribe(self._on_entry),
            self.selection.subscribe(lambda _ids: self._publish()),
            self.filters.subscribe(lambda _state: self._publish()),
        ]

    async def __aenter__(self) -> "ResourceListController":
        if self.auto_refresh_ms > 0:
            self.auto_refresh.start(self.auto_refresh_ms)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.auto_refresh.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._observer.close()
        self.filters.close()
        self.selection.close()
        self._view.clear_listeners()

    # -- reading -------------------------------------------------------------

    @property
    def state(self) -> ListViewState:
        return self._view.current()

    @property
    def entry(self) -> CacheEntry | None:
        return self._observer.current()

    def subscribe(self, listener: Callable[[ListViewState], None]) -> Callable[[], None]:
        return self._view.subscribe(listener)

    def current_key(self) -> QueryKey:
        return build_query_key(self.resource_name, "list", self.filters.current())

    @property
    def has_count(self) -> bool:
        return self._fetch_count is not None

    def visible_ids(self) -> list[Hashable]:
        return [self._id_of(item) for item in self.state.items]

    async def load(self, *, force: bool = False, hard_reset: bool = False) -> ListViewState:
        snapshot = self.filters.current()
        key = build_query_key(self.resource_name, "list", snapshot)

        async def _fetch() -> PagedResult:
            return await self._fetch_page(snapshot)

        await self._observer.observe(key, _fetch, force=force, hard_reset=hard_reset)
        return self.state

    async def refresh(self) -> ListViewState:
        return await self.load(force=True)

    async def count(self) -> int:
        if self._fetch_count is None:
            raise ValueError(f"{self.resource_name} does not expose a count query")
        snapshot = replace(self.filters.current(), page=1)
        params = snapshot.to_dict()
        params.pop("page")
        params.pop("page_size")
        key = build_query_key(self.resource_name, "count", params)

        async def _fetch() -> int:
            return await self._fetch_count(snapshot)

        entry = await self.cache.fetch(key, _fetch)
        if entry.status is CacheStatus.ERROR and entry.error is not None:
            raise entry.error
        return int(entry.data or 0)

    async def lookup(self, name: str, *, force: bool = False, **params: Any) -> Any:
        """Cached side query of this resource, e.g. ``lookup("roles", user_id=3)``."""
        fetch = self._lookups.get(name)
        if fetch is None:
            raise ValueError(f"{self.resource_name} has no {name!r} lookup; expected one of {sorted(self._lookups)}")
        key = build_query_key(self.resource_name, name, params)

        async def _fetch() -> Any:
            return await fetch(params)

        entry = await self.cache.fetch(key, _fetch, force=force)
        if entry.status is CacheStatus.ERROR and entry.error is not None:
            raise entry.error
        return entry.data

    # -- filters and paging --------------------------------------------------

    async def update_filter(self, **partial: Any) -> ListViewState:
        self.filters.update(**partial)
        return await self.load()

    async def set_page(self, page: int) -> ListViewState:
        self.filters.set_page(page)
        return await self.load()

    async def set_page_size(self, page_size: int) -> ListViewState:
        self.filters.set_page_size(page_size)
        return await self.load()

    async def next_page(self) -> ListViewState:
        if self.state.status is CacheStatus.SUCCESS and not self.state.has_next:
            return self.state
        self.filters.next_page()
        return await self.load()

    async def prev_page(self) -> ListViewState:
        if self.filters.current().page <= 1:
            return self.state
        self.filters.prev_page()
        return await self.load()

    async def clear_filters(self) -> ListViewState:
        self.filters.clear()
        self.selection.clear()
        return await self.load()

    # -- selection -----------------------------------------------------------

    def toggle(self, entity_id: Hashable) -> bool:
        return self.selection.toggle(entity_id)

    def select_all_visible(self) -> None:
        self.selection.select_all_visible(self.visible_ids())

    def clear_selection(self) -> None:
        self.selection.clear()

    # -- mutations -----------------------------------------------------------

    async def create(self, payload: dict[str, Any]) -> MutationResult:
        self._require(MutationKind.CREATE)
        return await self.mutations.mutate_single(MutationKind.CREATE, None, payload)

    async def update(self, entity_id: Hashable, payload: dict[str, Any]) -> MutationResult:
        self._require(MutationKind.UPDATE)
        return await self.mutations.mutate_single(MutationKind.UPDATE, entity_id, payload)

    async def delete(self, entity_id: Hashable) -> MutationResult:
        return await self._single(MutationKind.DELETE, entity_id)

    async def approve(self, entity_id: Hashable) -> MutationResult:
        return await self._single(MutationKind.APPROVE, entity_id)

    async def reject(self, entity_id: Hashable) -> MutationResult:
        return await self._single(MutationKind.REJECT, entity_id)

    async def restore(self, entity_id: Hashable) -> MutationResult:
        return await self._single(MutationKind.RESTORE, entity_id)

    async def reset_password(self, entity_id: Hashable) -> MutationResult:
        return await self._single(MutationKind.RESET_PASSWORD, entity_id)

    async def add_role(self, entity_id: Hashable, role: str) -> MutationResult:
        self._require(MutationKind.ADD_ROLE)
        return await self.mutations.mutate_single(MutationKind.ADD_ROLE, entity_id, {"role": role})

    async def remove_role(self, entity_id: Hashable, role: str) -> MutationResult:
        self._require(MutationKind.REMOVE_ROLE)
        return await self.mutations.mutate_single(MutationKind.REMOVE_ROLE, entity_id, {"role": role})

    async def delete_many(self, ids: Iterable[Hashable]) -> MutationResult:
        return await self._bulk(MutationKind.DELETE, ids)

    async def delete_selected(self) -> MutationResult:
        return await self._bulk(MutationKind.DELETE, self._selected())

    async def approve_selected(self) -> MutationResult:
        return await self._bulk(MutationKind.APPROVE, self._selected())

    async def reject_selected(self) -> MutationResult:
        return await self._bulk(MutationKind.REJECT, self._selected())

    async def activate_selected(self) -> MutationResult:
        return await self._bulk(MutationKind.ACTIVATE, self._selected())

    async def deactivate_selected(self) -> MutationResult:
        return await self._bulk(MutationKind.DEACTIVATE, self._selected())

    async def retry_last(self) -> MutationResult | None:
        return await self.mutations.retry_last()

    async def _single(self, kind: MutationKind, entity_id: Hashable) -> MutationResult:
        self._require(kind)
        return await self.mutations.mutate_single(kind, entity_id)

    async def _bulk(self, kind: MutationKind, ids: Iterable[Hashable]) -> MutationResult:
        self._require(kind)
        id_list = list(ids)
        if not id_list:
            raise ValueError("No items selected")
        return await self.mutations.mutate_bulk(kind, id_list)

    def _selected(self) -> list[Hashable]:
        # Keep the on-screen order so confirmation and results read naturally.
        selected = self.selection.selected_ids
        visible = [entity_id for entity_id in self.visible_ids() if entity_id in selected]
        rest = sorted((entity_id for entity_id in selected if entity_id not in visible), key=str)
        return visible + rest

    def _require(self, kind: MutationKind) -> None:
        if kind not in self.supported:
            raise ValueError(f"{self.resource_name} does not support {kind.value}")

    # -- state plumbing ------------------------------------------------------

    def _on_entry(self, entry: CacheEntry | None) -> None:
        if entry is not None and entry.status is CacheStatus.SUCCESS:
            refreshed_same_key = (
                entry.key == self._last_success_key and entry.last_fetched_at != self._last_success_at
            )
            if self.select_visible and refreshed_same_key and isinstance(entry.data, PagedResult):
                self.selection.retain_only(self._id_of(item) for item in entry.data.items)
            self._last_success_key = entry.key
            self._last_success_at = entry.last_fetched_at
        self._publish()

    def _publish(self) -> None:
        self._view.set(self._snapshot())

    def _snapshot(self) -> ListViewState:
        filters = self.filters.current()
        entry = self._observer.current()
        selected_count = self.selection.count
        if entry is None:
            return ListViewState(page=filters.page, page_size=filters.page_size, selected_count=selected_count)

        data = entry.data if isinstance(entry.data, PagedResult) else None
        last_fetched_at = (
            datetime.fromtimestamp(entry.last_fetched_at, tz=timezone.utc) if entry.last_fetched_at is not None else None
        )
        return ListViewState(
            status=entry.status,
            items=tuple(data.items) if data else (),
            total_count=data.total_count if data else None,
            page=filters.page,
            page_size=filters.page_size,
            total_pages=data.total_pages if data else None,
            has_next=bool(data.has_next) if data else False,
            has_prev=filters.page > 1,
            error=entry.error,
            is_fetching=entry.status is CacheStatus.LOADING,
            is_stale=entry.stale,
            selected_count=selected_count,
            last_fetched_at=last_fetched_at,
        )


def _read_only(resource_name: str) -> MutateFn:
    async def _mutate(
        kind: MutationKind, ids: list[Hashable], payload: Any, *, idempotency_key: str, bulk: bool
    ) -> Any:
        raise ValueError(f"{resource_name} is read-only")

    return _mutate
