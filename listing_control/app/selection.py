from __future__ import annotations

from typing import Callable, Hashable, Iterable

from .observable import StateHolder


class SelectionManager:
    """Selected row ids for one view instance.

    Selection outlives page navigation; ids leave only through ``clear``,
    ``prune`` or ``retain_only``.
    """

    def __init__(self) -> None:
        self._selected: StateHolder[frozenset[Hashable]] = StateHolder(frozenset())

    @property
    def selected_ids(self) -> frozenset[Hashable]:
        return self._selected.current()

    @property
    def count(self) -> int:
        return len(self._selected.current())

    def is_selected(self, entity_id: Hashable) -> bool:
        return entity_id in self._selected.current()

    def subscribe(self, listener: Callable[[frozenset[Hashable]], None]) -> Callable[[], None]:
        return self._selected.subscribe(listener)

    def toggle(self, entity_id: Hashable) -> bool:
        current = self._selected.current()
        if entity_id in current:
            self._selected.set(current - {entity_id})
            return False
        self._selected.set(current | {entity_id})
        return True

    def select_all_visible(self, ids: Iterable[Hashable]) -> None:
        self._selected.set(self._selected.current() | frozenset(ids))

    def clear(self) -> None:
        if self._selected.current():
            self._selected.set(frozenset())

    def prune(self, removed_ids: Iterable[Hashable]) -> None:
        current = self._selected.current()
        remaining = current - frozenset(removed_ids)
        if remaining != current:
            self._selected.set(remaining)

    def retain_only(self, visible_ids: Iterable[Hashable]) -> None:
        current = self._selected.current()
        remaining = current & frozenset(visible_ids)
        if remaining != current:
            self._selected.set(remaining)

    def close(self) -> None:
        self._selected.clear_listeners()
