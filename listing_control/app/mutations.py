from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Hashable, Iterable, Mapping, Protocol, Union

from ..clients.admin_api_sdk.clients.resource_client import BulkResponse, parse_bulk_response
from ..clients.admin_api_sdk.exceptions import ApiError, NotFoundError, ValidationError
from ..clients.admin_api_sdk.idempotency import generate_idempotency_key
from .cache import CacheCoordinator
from .errors import ErrorMapper, PartialBulkFailure
from .infrastructure.logging import get_logger, log_event
from .observable import StateHolder
from .query_keys import QueryKey
from .selection import SelectionManager
from .ui.confirmation import ConfirmationGate
from .ui.notifications import NotificationGate

logger = get_logger(__name__)


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    RESTORE = "restore"
    RESET_PASSWORD = "reset_password"
    ADD_ROLE = "add_role"
    REMOVE_ROLE = "remove_role"

    @property
    def past_tense(self) -> str:
        return _PAST_TENSE[self]

    @property
    def destructive(self) -> bool:
        return self in DESTRUCTIVE_KINDS

    @property
    def prunes_selection(self) -> bool:
        # Role changes edit a row without taking it out of the list.
        return self not in ROLE_KINDS


_PAST_TENSE = {
    MutationKind.CREATE: "created",
    MutationKind.UPDATE: "updated",
    MutationKind.DELETE: "deleted",
    MutationKind.APPROVE: "approved",
    MutationKind.REJECT: "rejected",
    MutationKind.ACTIVATE: "activated",
    MutationKind.DEACTIVATE: "deactivated",
    MutationKind.RESTORE: "restored",
    MutationKind.RESET_PASSWORD: "reset",
    MutationKind.ADD_ROLE: "role added",
    MutationKind.REMOVE_ROLE: "role removed",
}

DESTRUCTIVE_KINDS = frozenset(
    {MutationKind.DELETE, MutationKind.REJECT, MutationKind.DEACTIVATE, MutationKind.RESET_PASSWORD}
)
ROLE_KINDS = frozenset({MutationKind.ADD_ROLE, MutationKind.REMOVE_ROLE})


class MutateFn(Protocol):
    def __call__(
        self,
        kind: MutationKind,
        ids: list[Hashable],
        payload: Any,
        *,
        idempotency_key: str,
        bulk: bool,
    ) -> Awaitable[Any]: ...


ProbeFn = Callable[[MutationKind, list[Hashable]], Awaitable[Iterable[Hashable]]]
# Resource names and/or single query keys to invalidate after a mutation succeeds.
InvalidationPlan = Callable[["MutationRequest"], Iterable[Union[str, QueryKey]]]


class MutationInProgressError(RuntimeError):
    def __init__(self, kind: MutationKind) -> None:
        self.kind = kind
        super().__init__(f"A {kind.value} operation is already in progress")


@dataclass(frozen=True)
class MutationRequest:
    kind: MutationKind
    affected_ids: tuple[Hashable, ...] = ()
    payload: Any = None
    idempotency_key: str = ""
    bulk: bool = False


@dataclass(frozen=True)
class MutationResult:
    """Per-id accounting of one mutation.

    ``succeeded_ids``, ``failed_ids`` and ``unattributed_ids`` are disjoint and
    together cover ``request.affected_ids``. ``unattributed_ids`` is only used
    when the server gave a bare count that could not be traced back to ids.
    A cancelled request touched nothing and carries no ids.
    """

    request: MutationRequest
    succeeded_ids: tuple[Hashable, ...] = ()
    failed_ids: tuple[Hashable, ...] = ()
    unattributed_ids: tuple[Hashable, ...] = ()
    errors_by_id: Mapping[Hashable, Any] = field(default_factory=dict)
    succeeded_count: int = 0
    cancelled: bool = False
    error: Exception | None = None
    value: Any = None

    def __post_init__(self) -> None:
        if self.cancelled:
            return
        buckets = (set(self.succeeded_ids), set(self.failed_ids), set(self.unattributed_ids))
        overlap = (buckets[0] & buckets[1]) | (buckets[0] & buckets[2]) | (buckets[1] & buckets[2])
        if overlap:
            raise ValueError(f"ids reported in more than one outcome: {sorted(map(str, overlap))}")
        if buckets[0] | buckets[1] | buckets[2] != set(self.request.affected_ids):
            raise ValueError("mutation result does not account for every affected id")

    @property
    def requested_count(self) -> int:
        return len(self.request.affected_ids)

    @property
    def failed_count(self) -> int:
        return max(0, self.requested_count - self.succeeded_count) if self.request.affected_ids else int(bool(self.error))

    @property
    def outcome(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.error is not None and self.succeeded_count == 0:
            return "error"
        if self.request.affected_ids and 0 < self.succeeded_count < self.requested_count:
            return "partial"
        if self.request.affected_ids and self.succeeded_count == 0:
            return "error"
        return "success"

    @property
    def ok(self) -> bool:
        return self.outcome == "success"

    def summary(self) -> str:
        verb = self.request.kind.past_tense
        if self.cancelled:
            return f"{self.request.kind.value} cancelled"
        if not self.request.bulk:
            if self.error is not None or self.outcome != "success":
                return f"{self.request.kind.value.replace('_', ' ')} failed"
            target = f"Item {self.request.affected_ids[0]}" if self.request.affected_ids else "Item"
            return f"{target} {verb}"
        text = f"{self.succeeded_count} of {self.requested_count} {verb}"
        if self.failed_count:
            text += f"; {self.failed_count} failed"
        return text

    def raise_for_partial(self) -> "MutationResult":
        if self.outcome == "partial":
            raise PartialBulkFailure(self)
        return self


BulkResult = MutationResult


class MutationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class MutationState:
    status: MutationStatus = MutationStatus.IDLE
    result: MutationResult | None = None
    error: Exception | None = None

    @property
    def input_enabled(self) -> bool:
        return self.status is not MutationStatus.PENDING


class MutationOrchestrator:
    def __init__(
        self,
        resource_name: str,
        cache: CacheCoordinator,
        selection: SelectionManager,
        mutate: MutateFn,
        confirm: ConfirmationGate,
        notify: NotificationGate,
        probe_missing: ProbeFn | None = None,
        invalidates: InvalidationPlan | None = None,
    ) -> None:
        self.resource_name = resource_name
        self._cache = cache
        self._selection = selection
        self._mutate = mutate
        self._confirm = confirm
        self._notify = notify
        self._probe_missing = probe_missing
        self._invalidates = invalidates
        self._pending: set[MutationKind] = set()
        self._states: dict[MutationKind, StateHolder[MutationState]] = {}
        self.last_failed: MutationRequest | None = None

    def state(self, kind: MutationKind) -> StateHolder[MutationState]:
        if kind not in self._states:
            self._states[kind] = StateHolder(MutationState())
        return self._states[kind]

    def is_pending(self, kind: MutationKind | None = None) -> bool:
        return bool(self._pending) if kind is None else kind in self._pending

    async def mutate_single(
        self, kind: MutationKind, entity_id: Hashable | None = None, payload: Any = None
    ) -> MutationResult:
        request = MutationRequest(
            kind=kind,
            affected_ids=() if entity_id is None else (entity_id,),
            payload=payload,
            idempotency_key=generate_idempotency_key(f"{self.resource_name}.{kind.value}"),
        )
        return await self._guarded(request)

    async def mutate_bulk(self, kind: MutationKind, ids: Iterable[Hashable], payload: Any = None) -> BulkResult:
        unique_ids = tuple(dict.fromkeys(ids))
        if not unique_ids:
            raise ValueError("mutate_bulk needs at least one id")
        request = MutationRequest(
            kind=kind,
            affected_ids=unique_ids,
            payload=payload,
            idempotency_key=generate_idempotency_key(f"{self.resource_name}.{kind.value}.bulk"),
            bulk=True,
        )
        return await self._guarded(request, confirm=kind.destructive)

    async def retry_last(self) -> MutationResult | None:
        """Re-issue the last failed request; whole-request failures keep their idempotency key."""
        request = self.last_failed
        if request is None:
            return None
        return await self._guarded(request)

    async def _guarded(self, request: MutationRequest, *, confirm: bool = False) -> MutationResult:
        kind = request.kind
        if kind in self._pending:
            raise MutationInProgressError(kind)
        self._pending.add(kind)
        try:
            if confirm:
                noun = "item" if len(request.affected_ids) == 1 else "items"
                message = f"{kind.value.replace('_', ' ').capitalize()} {len(request.affected_ids)} {noun}?"
                if not await self._confirm.confirm(message):
                    log_event(logger, self.resource_name, kind.value, "cancelled", count=len(request.affected_ids))
                    result = MutationResult(request=request, cancelled=True)
                    self.state(kind).set(MutationState(MutationStatus.IDLE, result=result))
                    return result
            return await self._execute(request)
        finally:
            self._pending.discard(kind)

    async def _execute(self, request: MutationRequest) -> MutationResult:
        kind = request.kind
        state = self.state(kind)
        state.set(MutationState(MutationStatus.PENDING))
        log_event(
            logger,
            self.resource_name,
            kind.value,
            "pending",
            count=len(request.affected_ids),
            idempotency_key=request.idempotency_key,
        )
        try:
            response = await self._mutate(
                kind,
                list(request.affected_ids),
                request.payload,
                idempotency_key=request.idempotency_key,
                bulk=request.bulk,
            )
        except NotFoundError as exc:
            return await self._not_found(request, exc)
        except ApiError as exc:
            return self._failed(request, exc)
        except Exception as exc:
            state.set(MutationState(MutationStatus.ERROR, error=exc))
            raise

        try:
            result = await self._account(request, response)
        except Exception as exc:
            return self._failed(request, exc)

        if kind.prunes_selection:
            self._selection.prune(result.succeeded_ids)
        if result.succeeded_count:
            await self._invalidate(request)
        self._report(result)
        return result

    async def _account(self, request: MutationRequest, response: Any) -> MutationResult:
        # A single call may be served by a batch endpoint; its count still decides the outcome.
        if request.bulk or isinstance(response, BulkResponse):
            return await self._attribute(request, response)
        return MutationResult(
            request=request,
            succeeded_ids=request.affected_ids,
            succeeded_count=len(request.affected_ids),
            value=response,
        )

    async def _invalidate(self, request: MutationRequest) -> None:
        targets = self._invalidates(request) if self._invalidates is not None else (self.resource_name,)
        for target in dict.fromkeys(targets):
            if isinstance(target, QueryKey):
                await self._cache.invalidate_key(target)
            else:
                await self._cache.invalidate(target)

    async def _attribute(self, request: MutationRequest, response: Any) -> MutationResult:
        ids = request.affected_ids
        bulk = _as_bulk_response(response, len(ids))
        count = min(max(0, bulk.count), len(ids))

        if bulk.has_per_id_detail:
            reported_ok = set(bulk.succeeded_ids or ())
            succeeded = tuple(entity_id for entity_id in ids if entity_id in reported_ok)
            failed = tuple(entity_id for entity_id in ids if entity_id not in reported_ok)
            errors = {entity_id: (bulk.failed or {}).get(entity_id, "not processed") for entity_id in failed}
            return MutationResult(
                request=request,
                succeeded_ids=succeeded,
                failed_ids=failed,
                errors_by_id=errors,
                succeeded_count=bulk.count if bulk.count else len(succeeded),
            )
        if count == len(ids):
            return MutationResult(request=request, succeeded_ids=ids, succeeded_count=bulk.count)
        if count == 0:
            return MutationResult(
                request=request,
                failed_ids=ids,
                errors_by_id={entity_id: "not processed" for entity_id in ids},
                succeeded_count=0,
            )

        gone = await self._probe(request)
        if gone is None or len(gone) != count:
            return MutationResult(request=request, unattributed_ids=ids, succeeded_count=bulk.count)
        succeeded = tuple(entity_id for entity_id in ids if entity_id in gone)
        failed = tuple(entity_id for entity_id in ids if entity_id not in gone)
        return MutationResult(
            request=request,
            succeeded_ids=succeeded,
            failed_ids=failed,
            errors_by_id={entity_id: "not processed" for entity_id in failed},
            succeeded_count=bulk.count,
        )

    async def _probe(self, request: MutationRequest) -> set[Hashable] | None:
        if self._probe_missing is None:
            return None
        try:
            gone = set(await self._probe_missing(request.kind, list(request.affected_ids)))
        except ApiError as exc:
            log_event(
                logger, self.resource_name, request.kind.value, "probe-failed", error=type(exc).__name__, trace_id=exc.trace_id
            )
            return None
        return gone & set(request.affected_ids)

    async def _not_found(self, request: MutationRequest, exc: NotFoundError) -> MutationResult:
        # The rows are already gone: drop them quietly and reload the list.
        result = MutationResult(
            request=request,
            failed_ids=request.affected_ids,
            errors_by_id={entity_id: exc for entity_id in request.affected_ids},
            error=exc,
        )
        self._selection.prune(request.affected_ids)
        self.state(request.kind).set(MutationState(MutationStatus.ERROR, result=result, error=exc))
        log_event(logger, self.resource_name, request.kind.value, "not-found", trace_id=exc.trace_id)
        await self._invalidate(request)
        return result

    def _failed(self, request: MutationRequest, exc: Exception) -> MutationResult:
        result = MutationResult(
            request=request,
            failed_ids=request.affected_ids,
            errors_by_id={entity_id: exc for entity_id in request.affected_ids},
            error=exc,
        )
        self.last_failed = request
        self.state(request.kind).set(MutationState(MutationStatus.ERROR, result=result, error=exc))
        log_event(
            logger,
            self.resource_name,
            request.kind.value,
            "error",
            error=type(exc).__name__,
            status_code=getattr(exc, "status_code", None),
            trace_id=getattr(exc, "trace_id", None),
        )
        if isinstance(exc, ValidationError):
            self._notify.error(exc.message)
        else:
            self._notify.error(ErrorMapper.to_display_message(exc))
        return result

    def _report(self, result: MutationResult) -> None:
        request = result.request
        outcome = result.outcome
        log_event(
            logger,
            self.resource_name,
            request.kind.value,
            outcome,
            succeeded=result.succeeded_count,
            requested=result.requested_count,
            failed_ids=list(result.failed_ids),
            unattributed_ids=list(result.unattributed_ids),
        )
        if outcome == "success":
            self.last_failed = None
            self.state(request.kind).set(MutationState(MutationStatus.SUCCESS, result=result))
            if request.bulk:
                self._notify.success(f"{result.succeeded_count} {_noun(result.succeeded_count)} {request.kind.past_tense}")
            else:
                self._notify.success(result.summary())
            return

        leftover = result.failed_ids or result.unattributed_ids
        self.last_failed = MutationRequest(
            kind=request.kind,
            affected_ids=leftover,
            payload=request.payload,
            idempotency_key=generate_idempotency_key(f"{self.resource_name}.{request.kind.value}.retry"),
            bulk=request.bulk,
        )
        self.state(request.kind).set(MutationState(MutationStatus.ERROR, result=result))
        message = result.summary()
        if result.unattributed_ids:
            message += f"; could not tell which, all {len(result.unattributed_ids)} kept selected"
        self._notify.error(message)


def _noun(count: int) -> str:
    return "item" if count == 1 else "items"


def _as_bulk_response(response: Any, requested: int) -> BulkResponse:
    if isinstance(response, BulkResponse):
        return response
    if isinstance(response, Mapping):
        return parse_bulk_response(response, "deletedCount", "succeededCount", "count")
    if response is None:
        return BulkResponse(count=requested)
    if isinstance(response, bool):
        return BulkResponse(count=requested if response else 0)
    if isinstance(response, int):
        return BulkResponse(count=response)
    raise TypeError(f"Unsupported bulk mutation response: {type(response).__name__}")
