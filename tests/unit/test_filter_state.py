from datetime import datetime, timedelta, timezone

import pytest

from listing_control.app.filter_state import FilterState, FilterStateStore
from listing_control.app.resources import LogLevel


def _store(**kwargs) -> FilterStateStore:
    return FilterStateStore(defaults=FilterState(page_size=25), status_type=LogLevel, **kwargs)


@pytest.mark.parametrize(
    "partial",
    [
        {"search_term": "error"},
        {"level_or_status": "Warning"},
        {"start_date": datetime(2024, 1, 1, tzinfo=timezone.utc)},
        {"sort_by": "Timestamp"},
        {"sort_descending": False},
        {"search_term": "x", "page": 4},
        {"page_size": 50},
    ],
)
def test_any_non_page_update_resets_page(partial) -> None:
    store = _store()
    store.set_page(3)

    state = store.update(**partial)

    assert state.page == 1


def test_page_only_update_keeps_other_fields() -> None:
    store = _store()
    store.update(search_term="disk")

    state = store.update(page=5)

    assert state.page == 5
    assert state.search_term == "disk"


def test_set_page_clamps_below_one() -> None:
    store = _store()

    assert store.set_page(0).page == 1
    assert store.set_page(-4).page == 1


def test_set_page_size_validates_and_resets_page() -> None:
    store = _store()
    store.set_page(3)

    state = store.set_page_size(100)

    assert state.page_size == 100
    assert state.page == 1
    with pytest.raises(ValueError):
        store.set_page_size(30)


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown filter fields"):
        _store().update(colour="red")


def test_status_is_normalized_to_enum() -> None:
    store = _store()

    assert store.update(level_or_status="warning").level_or_status is LogLevel.WARNING
    assert store.update(level_or_status="").level_or_status is None
    with pytest.raises(ValueError):
        store.update(level_or_status="loud")


def test_dates_are_normalized_to_utc() -> None:
    store = _store()
    local = datetime(2024, 3, 1, 9, 0, tzinfo=timezone(timedelta(hours=2)))

    state = store.update(start_date=local, end_date="2024-03-02T00:00:00Z")

    assert state.start_date == datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)
    assert state.end_date.tzinfo == timezone.utc


def test_blank_search_term_becomes_none() -> None:
    assert _store().update(search_term="   ").search_term is None


def test_clear_restores_defaults_from_factory() -> None:
    calls = {"count": 0}

    def defaults() -> FilterState:
        calls["count"] += 1
        return FilterState(page_size=50, sort_by="Id")

    store = FilterStateStore(defaults=defaults)
    store.update(search_term="abc")
    store.set_page(2)

    state = store.clear()

    assert state == FilterState(page_size=50, sort_by="Id")
    assert calls["count"] == 2


def test_next_and_prev_page() -> None:
    store = _store()

    assert store.next_page().page == 2
    assert store.next_page(has_next=False).page == 2
    assert store.prev_page().page == 1
    assert store.prev_page().page == 1


def test_every_update_is_pushed_to_subscribers() -> None:
    store = _store()
    seen: list[FilterState] = []
    unsubscribe = store.subscribe(seen.append)

    store.update(search_term="a")
    store.set_page(2)
    unsubscribe()
    store.set_page(3)

    assert [state.page for state in seen] == [1, 2]
    assert seen[0].search_term == "a"
