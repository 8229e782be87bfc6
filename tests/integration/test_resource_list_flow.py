from datetime import datetime, timezone

import pytest

from listing_control.app.cache import CacheCoordinator, CacheStatus
from listing_control.app.main import _run_list, _run_roles, build_parser
from listing_control.app.resources import build_controller
from listing_control.app.ui.confirmation import AutoConfirm
from listing_control.clients.admin_api_sdk.clients.third_party_api_client import ThirdPartyApiClient
from listing_control.clients.admin_api_sdk.clients.users_client import UsersClient
from listing_control.clients.admin_api_sdk.models import LogItem, PermissionRequestItem

NOW = datetime(2024, 5, 8, 12, 30, 15, 123456, tzinfo=timezone.utc)


def _now() -> datetime:
    return NOW


@pytest.mark.asyncio
async def test_logs_first_page_uses_default_window_and_sort(resource_api) -> None:
    async with resource_api.http() as http:
        async with build_controller("logs", http, now=_now) as controller:
            state = await controller.load()

    assert state.status is CacheStatus.SUCCESS
    assert state.total_count == 120
    assert state.total_pages == 3
    assert len(state.items) == 50
    assert isinstance(state.items[0], LogItem)
    assert state.items[0].id == 120
    assert resource_api.last_params("logs") == {
        "startDate": "2024-05-01T12:30:15.000Z",
        "endDate": "2024-05-08T12:30:15.000Z",
        "page": "1",
        "pageSize": "50",
        "sortBy": "Id",
        "sortDescending": "true",
    }


@pytest.mark.asyncio
async def test_level_filter_resets_to_first_page(resource_api) -> None:
    async with resource_api.http() as http:
        async with build_controller("logs", http, now=_now) as controller:
            await controller.set_page(2)
            state = await controller.update_filter(level_or_status="error")

    assert state.page == 1
    assert state.total_count == 12
    assert {item.log_level for item in state.items} == {"Error"}
    params = resource_api.last_params("logs")
    assert params["logLevel"] == "Error"
    assert params["page"] == "1"


@pytest.mark.asyncio
async def test_bulk_delete_with_refused_row_keeps_it_selected(resource_api) -> None:
    resource_api.locked.add(119)

    async with resource_api.http() as http:
        async with build_controller("logs", http, now=_now, confirm=AutoConfirm()) as controller:
            await controller.load()
            for log_id in (120, 119, 118):
                controller.toggle(log_id)

            result = await controller.delete_selected()
            state = controller.state

    assert result.outcome == "partial"
    assert result.succeeded_ids == (120, 118)
    assert result.failed_ids == (119,)
    assert controller.selection.selected_ids == frozenset({119})
    assert controller.notify.messages("error") == ["2 of 3 deleted; 1 failed"]
    assert state.total_count == 118
    assert state.items[0].id == 119
    assert controller.mutations.last_failed.affected_ids == (119,)


@pytest.mark.asyncio
async def test_deleting_a_row_removed_elsewhere_is_silent(resource_api) -> None:
    async with resource_api.http() as http:
        async with build_controller("logs", http, now=_now) as controller:
            await controller.load()
            controller.toggle(120)
            del resource_api.logs[120]

            result = await controller.delete(120)
            state = controller.state

    assert result.outcome == "error"
    assert controller.notify.items == []
    assert controller.selection.count == 0
    assert state.items[0].id == 119


@pytest.mark.asyncio
async def test_bulk_approve_attributes_aggregate_count(resource_api) -> None:
    resource_api.locked.add(2)

    async with resource_api.http() as http:
        async with build_controller("permission-requests", http) as controller:
            state = await controller.load()
            assert isinstance(state.items[0], PermissionRequestItem)
            for request_id in (1, 2, 3):
                controller.toggle(request_id)

            result = await controller.approve_selected()

    assert result.succeeded_ids == (1, 3)
    assert result.failed_ids == (2,)
    assert controller.selection.selected_ids == frozenset({2})
    assert controller.notify.messages("error") == ["2 of 3 approved; 1 failed"]
    assert resource_api.permission_requests[1]["status"] == "approved"
    assert resource_api.permission_requests[2]["status"] == "pending"


@pytest.mark.asyncio
async def test_two_views_share_one_cache(resource_api) -> None:
    cache = CacheCoordinator()

    async with resource_api.http() as http:
        first = build_controller("logs", http, cache=cache, now=_now)
        second = build_controller("logs", http, cache=cache, now=_now)
        await first.load()
        await second.load()
        await first.delete(120)
        first_state, second_state = first.state, second.state
        await first.close()
        await second.close()

    list_calls = [request for request in resource_api.requests if request.url.path == "/api/v1/logs"]
    assert len(list_calls) == 2
    assert first_state.total_count == second_state.total_count == 119


@pytest.mark.asyncio
async def test_list_command_prints_page_and_count(resource_api, capsys) -> None:
    args = build_parser().parse_args(["list", "logs", "--status", "error", "--count"])

    async with resource_api.http() as http:
        async with build_controller("logs", http, now=_now) as controller:
            exit_code = await _run_list(controller, args)

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "event 120" in output
    assert "count: 12" in output


@pytest.mark.asyncio
async def test_third_party_statistics(resource_api) -> None:
    async with resource_api.http() as http:
        stats = await ThirdPartyApiClient(http).statistics()

    assert stats.total_api_calls == 42
    assert stats.calls_by_api == {"geocoder": 30, "mailer": 12}
    assert stats.last_called_by_api["mailer"] is None


@pytest.mark.asyncio
async def test_user_roles_are_reread_after_each_accepted_change(resource_api) -> None:
    async with resource_api.http() as http:
        async with build_controller("users", http) as controller:
            before = await controller.lookup("roles", user_id=7)
            added = await controller.add_role(7, "Developer")
            after_add = await controller.lookup("roles", user_id=7)
            duplicate = await controller.add_role(7, "Developer")
            removed = await controller.remove_role(7, "User")
            after_remove = await controller.lookup("roles", user_id=7)

    assert before == ["User"]
    assert added.ok
    assert after_add == ["User", "Developer"]
    assert duplicate.outcome == "error"
    assert "CONFLICT" in controller.notify.messages("error")[0]
    assert removed.ok
    assert after_remove == ["Developer"]
    role_reads = [
        request
        for request in resource_api.requests
        if request.method == "GET" and request.url.path == "/api/v1/users/7/roles"
    ]
    assert len(role_reads) == 3


@pytest.mark.asyncio
async def test_username_lookups(resource_api) -> None:
    async with resource_api.http() as http:
        users = UsersClient(http)
        taken = await users.username_exists("ana")
        taken_by_self = await users.username_exists("ana", exclude_id=7)
        free = await users.username_exists("nobody")
        user = await users.get_by_username("ana")

    assert (taken, taken_by_self, free) == (True, False, False)
    assert user.id == 7
    assert resource_api.last_params("users/check/username/ana") == {"excludeId": "7"}


@pytest.mark.asyncio
async def test_requesting_a_role_adds_a_pending_request(resource_api) -> None:
    async with resource_api.http() as http:
        async with build_controller("permission-requests", http) as controller:
            await controller.load()
            available = await controller.lookup("available_roles")
            result = await controller.create({"requestedRoles": ["Developer"], "requestMessage": "on call"})
            still_available = await controller.lookup("available_roles", force=True)
            state = controller.state

    assert [role.name for role in available] == ["Developer", "Admin"]
    assert result.ok
    assert controller.notify.messages("success") == ["Item created"]
    assert state.total_count == 6
    assert resource_api.permission_requests[6]["requestMessage"] == "on call"
    assert [role.name for role in still_available] == ["Admin"]


@pytest.mark.asyncio
async def test_roles_command_adds_then_prints_roles(resource_api, capsys) -> None:
    args = build_parser().parse_args(["roles", "users", "7", "--add", "Developer"])

    async with resource_api.http() as http:
        async with build_controller("users", http) as controller:
            exit_code = await _run_roles(controller, args)

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "User, Developer"
