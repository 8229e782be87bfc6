from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Hashable, Mapping

from ..clients.admin_api_sdk.clients.permission_requests_client import PermissionRequestsClient
from ..clients.admin_api_sdk.clients.resource_client import BulkResponse, ResourceClient
from ..clients.admin_api_sdk.clients.third_party_api_client import ThirdPartyApiClient
from ..clients.admin_api_sdk.clients.users_client import UsersClient
from ..clients.admin_api_sdk.exceptions import ApiError, NotFoundError
from ..clients.admin_api_sdk.http_client import AsyncHttpClient
from ..clients.admin_api_sdk.models import LogItem, PagedResult
from .cache import CacheCoordinator
from .config import AppConfig
from .controller import ResourceListController
from .filter_state import FilterState, FilterStateStore
from .mutations import ROLE_KINDS, MutationKind, MutationRequest
from .query_keys import QueryKey, build_query_key
from .ui.confirmation import ConfirmationGate
from .ui.notifications import NotificationGate


class LogLevel(str, Enum):
    VERBOSE = "Verbose"
    DEBUG = "Debug"
    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"
    FATAL = "Fatal"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PermissionRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


Now = Callable[[], datetime]
Lookup = Callable[[Any, Mapping[str, Any]], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ResourceBinding:
    name: str
    client_factory: Callable[[AsyncHttpClient], ResourceClient]
    default_filters: Callable[[AppConfig, Now], FilterState]
    columns: tuple[tuple[str, str], ...]
    status_type: type[Enum] | None = None
    supported: frozenset[MutationKind] = frozenset()
    batch_kinds: frozenset[MutationKind] = frozenset()
    has_count: bool = False
    # Per-kind test telling whether a still-existing row was already processed.
    processed_checks: Mapping[MutationKind, Callable[[Any], bool]] = field(default_factory=dict)
    # Other resources whose cached lists a successful mutation of this kind makes outdated.
    related_resources: Mapping[MutationKind, tuple[str, ...]] = field(default_factory=dict)
    lookups: Mapping[str, Lookup] = field(default_factory=dict)


def user_roles_key(user_id: Hashable) -> QueryKey:
    return build_query_key("users", "roles", {"user_id": user_id})


def _logs_defaults(config: AppConfig, now: Now) -> FilterState:
    end = now().replace(microsecond=0)
    return FilterState(
        start_date=end - timedelta(days=7),
        end_date=end,
        page_size=50,
        sort_by="Id",
        sort_descending=True,
    )


def _users_defaults(config: AppConfig, now: Now) -> FilterState:
    return FilterState(page_size=config.default_page_size, sort_by="Id", sort_descending=False)


def _permission_requests_defaults(config: AppConfig, now: Now) -> FilterState:
    return FilterState(page_size=config.default_page_size, sort_by="CreateDate", sort_descending=True)


def _third_party_defaults(config: AppConfig, now: Now) -> FilterState:
    return FilterState(page_size=config.default_page_size, sort_by="ApiName", sort_descending=False)


def _field(payload: Any, camel: str, snake: str) -> Any:
    if not isinstance(payload, Mapping):
        return None
    return payload.get(camel, payload.get(snake))


def _is_deleted(payload: Any) -> bool:
    return bool(_field(payload, "isDeleted", "is_deleted"))


def _is_active(expected: bool) -> Callable[[Any], bool]:
    return lambda payload: _field(payload, "isActive", "is_active") is expected


def _not_pending(payload: Any) -> bool:
    status = _field(payload, "status", "status")
    return status is not None and str(status).lower() != PermissionRequestStatus.PENDING.value


BINDINGS: dict[str, ResourceBinding] = {
    "logs": ResourceBinding(
        name="logs",
        client_factory=lambda http: ResourceClient(http, resource="logs", item_model=LogItem, status_param="logLevel"),
        default_filters=_logs_defaults,
        columns=(
            ("id", "ID"),
            ("timestamp", "Timestamp"),
            ("log_level", "Level"),
            ("message", "Message"),
            ("source_context", "Source"),
        ),
        status_type=LogLevel,
        supported=frozenset({MutationKind.DELETE}),
        batch_kinds=frozenset({MutationKind.DELETE}),
        has_count=True,
    ),
    "users": ResourceBinding(
        name="users",
        client_factory=lambda http: UsersClient(http),
        default_filters=_users_defaults,
        columns=(
            ("id", "ID"),
            ("username", "Username"),
            ("email", "Email"),
            ("full_name", "Full name"),
            ("is_active", "Active"),
        ),
        status_type=UserStatus,
        supported=frozenset(
            {
                MutationKind.CREATE,
                MutationKind.UPDATE,
                MutationKind.DELETE,
                MutationKind.RESTORE,
                MutationKind.RESET_PASSWORD,
                MutationKind.ACTIVATE,
                MutationKind.DEACTIVATE,
                MutationKind.ADD_ROLE,
                MutationKind.REMOVE_ROLE,
            }
        ),
        batch_kinds=frozenset({MutationKind.ACTIVATE, MutationKind.DEACTIVATE}),
        processed_checks={
            MutationKind.DELETE: _is_deleted,
            MutationKind.ACTIVATE: _is_active(True),
            MutationKind.DEACTIVATE: _is_active(False),
        },
        lookups={
            "roles": lambda client, params: client.get_roles(params["user_id"]),
            "by_username": lambda client, params: client.get_by_username(params["username"]),
        },
    ),
    "permission-requests": ResourceBinding(
        name="permission-requests",
        client_factory=lambda http: PermissionRequestsClient(http),
        default_filters=_permission_requests_defaults,
        columns=(
            ("id", "ID"),
            ("username", "User"),
            ("requested_role", "Requested role"),
            ("request_message", "Message"),
            ("create_date", "Created"),
        ),
        status_type=PermissionRequestStatus,
        supported=frozenset({MutationKind.CREATE, MutationKind.APPROVE, MutationKind.REJECT}),
        batch_kinds=frozenset({MutationKind.APPROVE, MutationKind.REJECT}),
        processed_checks={MutationKind.APPROVE: _not_pending, MutationKind.REJECT: _not_pending},
        # Approving grants roles, so user lists and role lookups change too.
        related_resources={
            MutationKind.APPROVE: ("users",),
            MutationKind.REJECT: ("users",),
        },
        lookups={"available_roles": lambda client, params: client.available_roles()},
    ),
    "third-party-api": ResourceBinding(
        name="third-party-api",
        client_factory=lambda http: ThirdPartyApiClient(http),
        default_filters=_third_party_defaults,
        columns=(
            ("id", "ID"),
            ("api_name", "API"),
            ("call_count", "Calls"),
            ("last_called_at", "Last call"),
            ("reset_date", "Reset date"),
        ),
    ),
}


def get_binding(resource_name: str) -> ResourceBinding:
    try:
        return BINDINGS[resource_name]
    except KeyError:
        raise ValueError(f"Unknown resource {resource_name!r}; expected one of {sorted(BINDINGS)}") from None


def _list_filters(state: FilterState) -> dict[str, Any]:
    return {
        "search_term": state.search_term,
        "status": state.level_or_status,
        "start_date": state.start_date,
        "end_date": state.end_date,
        "page": state.page,
        "page_size": state.page_size,
        "sort_by": state.sort_by,
        "sort_descending": state.sort_descending,
    }


async def _one_by_one(
    ids: list[Hashable], call: Callable[[Hashable], Awaitable[Any]], *, missing_is_done: bool = False
) -> BulkResponse:
    succeeded: list[Hashable] = []
    failed: dict[Hashable, str] = {}
    for entity_id in ids:
        try:
            await call(entity_id)
        except NotFoundError as exc:
            # Deleting a row that is already gone leaves the list exactly as asked.
            if missing_is_done:
                succeeded.append(entity_id)
            else:
                failed[entity_id] = exc.message
        except ApiError as exc:
            failed[entity_id] = exc.message
        else:
            succeeded.append(entity_id)
    return BulkResponse(count=len(succeeded), succeeded_ids=succeeded, failed=failed)


def make_mutate(binding: ResourceBinding, client: ResourceClient):
    """Route a mutation kind to the client call that implements it."""

    async def mutate(
        kind: MutationKind, ids: list[Hashable], payload: Any, *, idempotency_key: str, bulk: bool
    ) -> Any:
        if kind not in binding.supported:
            raise ValueError(f"{binding.name} does not support {kind.value}")
        if kind is MutationKind.CREATE:
            return await client.create(payload, idempotency_key=idempotency_key)
        if kind is MutationKind.UPDATE:
            return await client.update(ids[0], payload, idempotency_key=idempotency_key)
        if kind in ROLE_KINDS:
            role_call = client.add_role if kind is MutationKind.ADD_ROLE else client.remove_role
            return await role_call(ids[0], payload["role"], idempotency_key=idempotency_key)

        if bulk and kind in binding.batch_kinds:
            batch_calls = {
                MutationKind.DELETE: client.delete_batch,
                MutationKind.APPROVE: client.bulk_approve,
                MutationKind.REJECT: client.bulk_reject,
                MutationKind.ACTIVATE: getattr(client, "bulk_activate", None),
                MutationKind.DEACTIVATE: getattr(client, "bulk_deactivate", None),
            }
            return await batch_calls[kind](ids, idempotency_key=idempotency_key)

        single_calls = {
            MutationKind.DELETE: client.delete,
            MutationKind.APPROVE: client.approve,
            MutationKind.REJECT: client.reject,
            MutationKind.RESTORE: getattr(client, "restore", None),
            MutationKind.RESET_PASSWORD: getattr(client, "reset_password", None),
        }
        call = single_calls.get(kind)
        if call is None:
            if kind in binding.batch_kinds:
                return await mutate(kind, ids, payload, idempotency_key=idempotency_key, bulk=True)
            raise ValueError(f"{binding.name} does not support {kind.value}")
        if not bulk:
            return await call(ids[0], idempotency_key=idempotency_key)
        return await _one_by_one(
            ids,
            lambda entity_id: call(entity_id, idempotency_key=f"{idempotency_key}-{entity_id}"),
            missing_is_done=kind is MutationKind.DELETE,
        )

    return mutate


def make_invalidation(binding: ResourceBinding):
    """What a successful mutation of ``binding`` makes outdated."""

    def plan(request: MutationRequest) -> list[str | QueryKey]:
        if request.kind in ROLE_KINDS:
            return [user_roles_key(entity_id) for entity_id in request.affected_ids]
        return [binding.name, *binding.related_resources.get(request.kind, ())]

    return plan


def make_probe(binding: ResourceBinding, client: ResourceClient):
    async def probe(kind: MutationKind, ids: list[Hashable]) -> list[Hashable]:
        return await client.probe_missing(ids, processed=binding.processed_checks.get(kind))

    return probe


def _bind_lookup(lookup: Lookup, client: ResourceClient) -> Callable[[Mapping[str, Any]], Awaitable[Any]]:
    async def run(params: Mapping[str, Any]) -> Any:
        return await lookup(client, params)

    return run


def build_controller(
    resource_name: str,
    http: AsyncHttpClient,
    *,
    config: AppConfig | None = None,
    cache: CacheCoordinator | None = None,
    confirm: ConfirmationGate | None = None,
    notify: NotificationGate | None = None,
    select_visible: bool = False,
    auto_refresh_ms: int | None = None,
    now: Now | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> ResourceListController:
    binding = get_binding(resource_name)
    config = config or AppConfig()
    clock = now or _utcnow
    client = binding.client_factory(http)

    async def fetch_page(state: FilterState) -> PagedResult:
        return await client.list_page(**_list_filters(state))

    async def fetch_count(state: FilterState) -> int:
        return await client.count(**_list_filters(state))

    filters = FilterStateStore(
        defaults=lambda: binding.default_filters(config, clock),
        page_size_options=config.page_size_options,
        status_type=binding.status_type,
    )
    return ResourceListController(
        binding.name,
        fetch_page,
        make_mutate(binding, client) if binding.supported else None,
        cache=cache
        or CacheCoordinator(ttl_seconds=config.cache_ttl_seconds, stale_after_seconds=config.stale_after_seconds),
        filters=filters,
        confirm=confirm,
        notify=notify,
        probe_missing=make_probe(binding, client) if binding.supported else None,
        fetch_count=fetch_count if binding.has_count else None,
        lookups={name: _bind_lookup(lookup, client) for name, lookup in binding.lookups.items()},
        invalidates=make_invalidation(binding),
        supported=binding.supported,
        select_visible=select_visible,
        auto_refresh_ms=config.auto_refresh_interval_ms if auto_refresh_ms is None else auto_refresh_ms,
        sleep=sleep,
    )
