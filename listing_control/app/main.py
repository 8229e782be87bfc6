from __future__ import annotations

import argparse
import asyncio
from typing import Any, Sequence

from ..clients.admin_api_sdk.clients.third_party_api_client import ThirdPartyApiClient
from ..clients.admin_api_sdk.config import ConfigError, load_config
from ..clients.admin_api_sdk.exceptions import ApiError
from ..clients.admin_api_sdk.http_client import AsyncHttpClient
from .cache import CacheCoordinator, CacheStatus
from .config import AppConfig
from .controller import ResourceListController
from .errors import ErrorMapper
from .infrastructure.logging import configure_level
from .mutations import MutationResult
from .resources import BINDINGS, build_controller, get_binding
from .ui.confirmation import AutoConfirm, PromptConfirmation
from .ui.notifications import ConsoleNotifier
from .ui.table_printer import print_table


def _parse_id(raw: str) -> Any:
    return int(raw) if raw.isdigit() else raw


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="listing-control", description="Browse and manage admin resource lists")
    parser.add_argument("--env-file", default=".env", help="dotenv file with LISTING_* settings")
    parser.add_argument("--yes", action="store_true", help="confirm destructive bulk actions without prompting")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="print one page of a resource")
    list_cmd.add_argument("resource", choices=sorted(BINDINGS))
    list_cmd.add_argument("--search")
    list_cmd.add_argument("--status", help="log level or status filter")
    list_cmd.add_argument("--page", type=int, default=1)
    list_cmd.add_argument("--page-size", type=int)
    list_cmd.add_argument("--sort-by")
    list_cmd.add_argument("--asc", action="store_true", help="sort ascending")
    list_cmd.add_argument("--count", action="store_true", help="also print the total count when supported")

    delete_cmd = sub.add_parser("delete", help="delete one or more items")
    delete_cmd.add_argument("resource", choices=sorted(BINDINGS))
    delete_cmd.add_argument("ids", nargs="+")

    for action in ("approve", "reject"):
        action_cmd = sub.add_parser(action, help=f"{action} permission requests")
        action_cmd.add_argument("resource", choices=["permission-requests"])
        action_cmd.add_argument("ids", nargs="+")

    roles_cmd = sub.add_parser("roles", help="show or change the roles of one user")
    roles_cmd.add_argument("resource", choices=["users"])
    roles_cmd.add_argument("user_id")
    change = roles_cmd.add_mutually_exclusive_group()
    change.add_argument("--add", metavar="ROLE")
    change.add_argument("--remove", metavar="ROLE")

    watch_cmd = sub.add_parser("watch", help="poll a resource list on an interval")
    watch_cmd.add_argument("resource", choices=sorted(BINDINGS))
    watch_cmd.add_argument("--interval-ms", type=int, default=5000)
    watch_cmd.add_argument("--ticks", type=int, default=3)

    sub.add_parser("stats", help="print third-party API usage statistics")
    return parser


def _print_page(controller: ResourceListController) -> None:
    state = controller.state
    binding = get_binding(controller.resource_name)
    total = "?" if state.total_count is None else state.total_count
    pages = "?" if state.total_pages is None else state.total_pages
    footer = f"page {state.page}/{pages} | page size {state.page_size} | total {total}"
    if state.is_stale:
        footer += " | stale"
    print_table(controller.resource_name, list(state.items), list(binding.columns), footer=footer)
    if state.status is CacheStatus.ERROR and state.error is not None:
        print(ErrorMapper.to_display_message(state.error))


def _exit_code(result: MutationResult) -> int:
    return 0 if result.ok or result.cancelled else 1


async def _run_list(controller: ResourceListController, args: argparse.Namespace) -> int:
    partial: dict[str, Any] = {}
    if args.search is not None:
        partial["search_term"] = args.search
    if args.status is not None:
        partial["level_or_status"] = args.status
    if args.sort_by is not None:
        partial["sort_by"] = args.sort_by
    if args.asc:
        partial["sort_descending"] = False
    if args.page_size is not None:
        partial["page_size"] = args.page_size
    if partial:
        controller.filters.update(**partial)
    controller.filters.set_page(args.page)
    state = await controller.load()
    _print_page(controller)
    if args.count and controller.has_count:
        print(f"count: {await controller.count()}")
    return 1 if state.status is CacheStatus.ERROR else 0


async def _run_delete(controller: ResourceListController, ids: list[Any]) -> int:
    if len(ids) == 1:
        return _exit_code(await controller.delete(ids[0]))
    return _exit_code(await controller.delete_many(ids))


async def _run_review(controller: ResourceListController, action: str, ids: list[Any]) -> int:
    if len(ids) == 1:
        single = controller.approve if action == "approve" else controller.reject
        return _exit_code(await single(ids[0]))
    controller.selection.select_all_visible(ids)
    bulk = controller.approve_selected if action == "approve" else controller.reject_selected
    return _exit_code(await bulk())


async def _run_roles(controller: ResourceListController, args: argparse.Namespace) -> int:
    user_id = _parse_id(args.user_id)
    if args.add or args.remove:
        change = controller.add_role if args.add else controller.remove_role
        code = _exit_code(await change(user_id, args.add or args.remove))
        if code:
            return code
    roles = await controller.lookup("roles", user_id=user_id)
    print(", ".join(roles) if roles else "(no roles)")
    return 0


async def _run_watch(controller: ResourceListController, args: argparse.Namespace) -> int:
    await controller.load()
    _print_page(controller)
    printed = {"at": controller.state.last_fetched_at}

    def _on_state(state) -> None:
        if state.status is CacheStatus.SUCCESS and state.last_fetched_at != printed["at"]:
            printed["at"] = state.last_fetched_at
            _print_page(controller)

    unsubscribe = controller.subscribe(_on_state)
    controller.auto_refresh.start(args.interval_ms)
    try:
        await asyncio.sleep(args.interval_ms * max(0, args.ticks) / 1000 + 0.05)
    finally:
        await controller.auto_refresh.stop()
        unsubscribe()
    return 0


async def _run_stats(http: AsyncHttpClient) -> int:
    stats = await ThirdPartyApiClient(http).statistics()
    print(f"Tracked APIs: {stats.total_apis_tracked}")
    print(f"Total calls: {stats.total_api_calls}")
    rows = [
        {"api_name": name, "calls": calls, "last_called_at": stats.last_called_by_api.get(name)}
        for name, calls in sorted(stats.calls_by_api.items())
    ]
    print_table("calls by API", rows, [("api_name", "API"), ("calls", "Calls"), ("last_called_at", "Last call")])
    return 0


async def run(args: argparse.Namespace) -> int:
    app_config = AppConfig.from_env(args.env_file)
    configure_level(app_config.log_level)
    client_config = load_config(args.env_file)
    cache = CacheCoordinator(
        ttl_seconds=app_config.cache_ttl_seconds,
        stale_after_seconds=app_config.stale_after_seconds,
    )

    async with AsyncHttpClient(client_config) as http:
        if args.command == "stats":
            return await _run_stats(http)

        controller = build_controller(
            args.resource,
            http,
            config=app_config,
            cache=cache,
            confirm=AutoConfirm() if args.yes else PromptConfirmation(),
            notify=ConsoleNotifier(),
            auto_refresh_ms=0,
        )
        async with controller:
            if args.command == "list":
                return await _run_list(controller, args)
            ids = [_parse_id(raw) for raw in getattr(args, "ids", [])]
            if args.command == "delete":
                return await _run_delete(controller, ids)
            if args.command in {"approve", "reject"}:
                return await _run_review(controller, args.command, ids)
            if args.command == "roles":
                return await _run_roles(controller, args)
            if args.command == "watch":
                return await _run_watch(controller, args)
    return 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return asyncio.run(run(args))
    except (ConfigError, ValueError) as exc:
        print(f"[ERROR] {exc}")
        return 2
    except ApiError as exc:
        print(ErrorMapper.to_display_message(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
