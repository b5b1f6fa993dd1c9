"""Delivery request orchestration.

DeliveryRequestService is the only component that mutates delivery requests.
Every public operation follows the same sequence:

1. validate the input (before any read)
2. load the current row
3. ask the TransitionEngine for a plan
4. conditionally update the row, keyed on the status that was read
5. append exactly one audit event
6. commit
7. publish side effects (vehicle status, timeline, notification), best effort

A conditional write that matches no row means another actor got there first.
The operation is then re-evaluated from a fresh read up to ``conflict_retries``
times; after that ConcurrentModificationError reaches the caller.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, TypeVar

from autologistics.services.errors import (
    ConcurrentModificationError,
    DeliveryRequestError,
    DeliveryRequestNotFoundError,
    DeliveryValidationError,
    PricingRequiredError,
    SideEffectError,
)
from autologistics.services.fees import FeeResolver
from autologistics.services.lifecycle import (
    Actor,
    Operation,
    TransitionEngine,
    proposed_by,
    validate_window,
    vehicle_status_label,
)
from autologistics.services.side_effects import JobQueuePublisher, SideEffects

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from autologistics.core.config import Settings
    from autologistics.db.models.base import DeliveryRequestStatus
    from autologistics.db.models.delivery_requests import DeliveryRequest, DeliveryRequestEvent
    from autologistics.services.lifecycle import TransitionPlan
    from autologistics.services.side_effects import SideEffectPublisher
    from autologistics.services.store import DeliveryRequestStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class ProposalResult:
    request_id: uuid.UUID
    status: DeliveryRequestStatus
    created: bool
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TransitionOutcome:
    request_id: uuid.UUID
    success: bool
    new_status: DeliveryRequestStatus
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ScheduleResult:
    request_id: uuid.UUID
    window_start: datetime
    window_end: datetime
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DeliveredResult:
    request_id: uuid.UUID
    success: bool
    vehicle_status: str
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RequestDetail:
    """A request together with its derived, read-time attributes."""

    request: DeliveryRequest
    kind: str
    proposed_by: str
    vehicle_status: str


# =============================================================================
# Input validation
# =============================================================================


def _coerce_uuid(value: Any, field_name: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as e:
        raise DeliveryValidationError(f"{field_name} must be a UUID", field=field_name) from e


def _optional_uuid(value: Any, field_name: str) -> uuid.UUID | None:
    return None if value is None else _coerce_uuid(value, field_name)


def _coerce_date(value: Any, field_name: str) -> date:
    if isinstance(value, datetime):
        raise DeliveryValidationError(f"{field_name} must be a calendar date", field=field_name)
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as e:
        raise DeliveryValidationError(
            f"{field_name} must be an ISO date (YYYY-MM-DD)", field=field_name
        ) from e


def _coerce_fee(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        fee = Decimal(str(value))
    except InvalidOperation as e:
        raise DeliveryValidationError("fee_amount must be numeric", field="fee_amount") from e
    if not fee.is_finite() or fee < 0:
        raise DeliveryValidationError("fee_amount must not be negative", field="fee_amount")
    return fee.quantize(Decimal("0.01"))


# =============================================================================
# Service
# =============================================================================


class DeliveryRequestService:
    """Runs delivery request operations against an injected record store.

    Example:
        service = DeliveryRequestService(
            DeliveryRequestStore(session),
            publisher=JobQueuePublisher(session),
        )
        result = await service.propose_date(
            vehicle_id=vehicle_id,
            client_id=client_id,
            address_id=None,
            collection_address_id=home_address_id,
            desired_date=date(2025, 9, 10),
            actor=Actor(client_id, ActorRole.CLIENT),
        )
    """

    def __init__(
        self,
        store: DeliveryRequestStore,
        *,
        publisher: SideEffectPublisher,
        fee_resolver: FeeResolver | None = None,
        engine: TransitionEngine | None = None,
        conflict_retries: int = 1,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._publisher = publisher
        self._fees = fee_resolver or FeeResolver(store)
        self._engine = engine or TransitionEngine()
        self._conflict_retries = conflict_retries
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def engine(self) -> TransitionEngine:
        return self._engine

    # -------------------------------------------------------------------------
    # Negotiation
    # -------------------------------------------------------------------------

    async def propose_date(
        self,
        *,
        vehicle_id: uuid.UUID,
        client_id: uuid.UUID,
        address_id: uuid.UUID | None,
        desired_date: date,
        actor: Actor,
        collection_address_id: uuid.UUID | None = None,
        fee_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> ProposalResult:
        """Propose a date, creating a request or re-proposing the active one.

        ``address_id`` None means a pickup; its ``collection_address_id`` must be
        priced (positive collection fee) before any row is written.

        Raises:
            DeliveryValidationError: Malformed input.
            PricingRequiredError: Pickup address has no positive fee.
            InvalidTransitionError: Re-proposal of the same date.
            ActorNotPermittedError: A client proposing for someone else's vehicle.
            ConcurrentModificationError: Conflict persisted after retries.
        """
        vehicle_id = _coerce_uuid(vehicle_id, "vehicle_id")
        client_id = _coerce_uuid(client_id, "client_id")
        address_id = _optional_uuid(address_id, "address_id")
        collection_address_id = _optional_uuid(collection_address_id, "collection_address_id")
        desired_date = _coerce_date(desired_date, "desired_date")
        fee = _coerce_fee(fee_amount)

        self._engine.check_client_ownership(Operation.PROPOSE, client_id, actor)

        is_delivery = address_id is not None
        if is_delivery and collection_address_id is not None:
            raise DeliveryValidationError(
                "collection_address_id only applies to pickups",
                field="collection_address_id",
            )

        if not is_delivery:
            if collection_address_id is None:
                raise DeliveryValidationError(
                    "collection_address_id is required for a pickup",
                    field="collection_address_id",
                )
            fee = await self._fees.resolve_fee(client_id, collection_address_id)
            if fee is None:
                logger.info(
                    "Pickup proposal blocked by fee gate",
                    extra={
                        "vehicle_id": str(vehicle_id),
                        "client_id": str(client_id),
                        "address_id": str(collection_address_id),
                    },
                )
                raise PricingRequiredError(client_id, collection_address_id)

        async def attempt() -> tuple[DeliveryRequest, TransitionPlan, bool]:
            now = self._clock()
            existing = await self._store.find_active_request(vehicle_id, is_delivery=is_delivery)

            if existing is None:
                plan = self._engine.plan_new_proposal(
                    vehicle_id=vehicle_id,
                    client_id=client_id,
                    is_delivery=is_delivery,
                    desired_date=desired_date,
                    actor=actor,
                    now=now,
                )
                values = dict(
                    plan.changes,
                    address_id=address_id,
                    collection_address_id=collection_address_id,
                    fee_amount=fee,
                )
                request = await self._store.insert_request(values)
                await self._record_event(request.request_id, plan, actor, now)
                await self._store.commit()
                return request, plan, True

            self._check_same_subject(existing, client_id, address_id, collection_address_id)
            plan = self._engine.plan(
                Operation.PROPOSE,
                existing,
                actor,
                now=now,
                desired_date=desired_date,
                notes=notes,
            )
            changes = dict(plan.changes)
            if fee is not None:
                changes["fee_amount"] = fee
            request = await self._apply(existing.request_id, plan, changes, actor, now)
            return request, plan, False

        request, plan, created = await self._with_conflict_retry(
            Operation.PROPOSE, None, attempt
        )
        warnings = await self._publish(request, plan)
        return ProposalResult(
            request_id=request.request_id,
            status=request.status,
            created=created,
            warnings=warnings,
        )

    async def approve(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        fee_amount: Decimal | None = None,
    ) -> TransitionOutcome:
        """Accept the counterparty's proposal.

        Staff approving a delivery may set its fee in the same call; the fee
        on record must be positive once they approve.

        Raises:
            SelfApprovalError: The proposer's side tried to accept its own date.
            PricingRequiredError: A delivery has no positive fee at staff approval.
        """
        fee = _coerce_fee(fee_amount)
        request, plan = await self._transition(
            Operation.APPROVE, request_id, actor, fee_amount=fee
        )
        warnings = await self._publish(request, plan)
        return TransitionOutcome(request.request_id, True, request.status, warnings)

    async def reject(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        notes: str | None = None,
    ) -> TransitionOutcome:
        """Turn down the proposal. ``rejected`` is terminal; a new proposal opens a new row."""
        request, plan = await self._transition(Operation.REJECT, request_id, actor, notes=notes)
        warnings = await self._publish(request, plan)
        return TransitionOutcome(request.request_id, True, request.status, warnings)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def schedule(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
    ) -> ScheduleResult:
        """Commit the request to a window, derived from the desired date if omitted."""
        window = validate_window(window_start, window_end, tz=self._engine.timezone)
        request, plan = await self._transition(Operation.SCHEDULE, request_id, actor, window=window)
        warnings = await self._publish(request, plan)
        return ScheduleResult(
            request_id=request.request_id,
            window_start=request.window_start,
            window_end=request.window_end,
            warnings=warnings,
        )

    async def mark_in_transit(self, request_id: uuid.UUID, actor: Actor) -> TransitionOutcome:
        request, plan = await self._transition(Operation.MARK_IN_TRANSIT, request_id, actor)
        warnings = await self._publish(request, plan)
        return TransitionOutcome(request.request_id, True, request.status, warnings)

    async def mark_delivered(self, request_id: uuid.UUID, actor: Actor) -> DeliveredResult:
        """Complete the movement.

        Returns:
            The result carrying the vehicle label applied: "Vehicle Picked Up"
            for pickups, "Vehicle Delivered" for deliveries.
        """
        request, plan = await self._transition(Operation.MARK_DELIVERED, request_id, actor)
        warnings = await self._publish(request, plan)
        return DeliveredResult(request.request_id, True, plan.vehicle_status, warnings)

    async def cancel(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        notes: str | None = None,
    ) -> TransitionOutcome:
        request, plan = await self._transition(Operation.CANCEL, request_id, actor, notes=notes)
        warnings = await self._publish(request, plan)
        return TransitionOutcome(request.request_id, True, request.status, warnings)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_request(self, request_id: uuid.UUID) -> RequestDetail:
        request = await self._load(_coerce_uuid(request_id, "request_id"))
        return RequestDetail(
            request=request,
            kind=request.kind,
            proposed_by=proposed_by(request.created_by, request.client_id),
            vehicle_status=vehicle_status_label(request.is_delivery, request.status),
        )

    async def list_events(self, request_id: uuid.UUID) -> list[DeliveryRequestEvent]:
        request = await self._load(_coerce_uuid(request_id, "request_id"))
        return await self._store.list_events(request.request_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _load(self, request_id: uuid.UUID) -> DeliveryRequest:
        request = await self._store.get_request(request_id)
        if request is None:
            raise DeliveryRequestNotFoundError("DeliveryRequest", request_id)
        return request

    async def _transition(
        self,
        operation: Operation,
        request_id: uuid.UUID,
        actor: Actor,
        **plan_kwargs: Any,
    ) -> tuple[DeliveryRequest, TransitionPlan]:
        request_id = _coerce_uuid(request_id, "request_id")

        async def attempt() -> tuple[DeliveryRequest, TransitionPlan]:
            now = self._clock()
            current = await self._load(request_id)
            plan = self._engine.plan(operation, current, actor, now=now, **plan_kwargs)
            updated = await self._apply(request_id, plan, plan.changes, actor, now)
            return updated, plan

        return await self._with_conflict_retry(operation, request_id, attempt)

    async def _apply(
        self,
        request_id: uuid.UUID,
        plan: TransitionPlan,
        changes: dict[str, Any],
        actor: Actor,
        now: datetime,
    ) -> DeliveryRequest:
        """Conditional write, audit event and commit for an existing row."""
        updated = await self._store.update_request_if_status(
            request_id, plan.from_status, changes
        )
        if updated is None:
            logger.warning(
                "Conditional update matched no row",
                extra={
                    "request_id": str(request_id),
                    "operation": plan.operation.value,
                    "expected_status": plan.from_status.value,
                },
            )
            raise ConcurrentModificationError(request_id, plan.from_status.value)

        await self._record_event(request_id, plan, actor, now)
        await self._store.commit()

        logger.info(
            "Delivery request transition committed",
            extra={
                "request_id": str(request_id),
                "operation": plan.operation.value,
                "from_status": plan.from_status.value,
                "to_status": plan.to_status.value,
                "actor_role": actor.role.value,
            },
        )
        return updated

    async def _record_event(
        self,
        request_id: uuid.UUID,
        plan: TransitionPlan,
        actor: Actor,
        now: datetime,
    ) -> None:
        await self._store.append_event(
            request_id=request_id,
            event_type=plan.event_type,
            status_from=plan.from_status,
            status_to=plan.to_status,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            notes=plan.notes,
            event_time=now,
        )

    async def _with_conflict_retry(
        self,
        operation: Operation,
        request_id: uuid.UUID | None,
        attempt: Callable[[], Awaitable[T]],
    ) -> T:
        retries = 0
        while True:
            try:
                return await attempt()
            except ConcurrentModificationError:
                await self._store.rollback()
                if retries >= self._conflict_retries:
                    logger.warning(
                        "Concurrent modification surfaced: operation=%s, request_id=%s",
                        operation.value,
                        request_id,
                    )
                    raise
                retries += 1
                logger.info(
                    "Concurrent modification, re-evaluating: operation=%s, request_id=%s, "
                    "retry=%d/%d",
                    operation.value,
                    request_id,
                    retries,
                    self._conflict_retries,
                )
            except DeliveryRequestError:
                await self._store.rollback()
                raise

    async def _publish(self, request: DeliveryRequest, plan: TransitionPlan) -> list[str]:
        effects = SideEffects(
            request_id=request.request_id,
            vehicle_id=request.vehicle_id,
            client_id=request.client_id,
            plan=plan,
        )
        try:
            await self._publisher.publish(effects)
        except SideEffectError as e:
            logger.warning(
                "Side effects failed after commit",
                extra={
                    "request_id": str(request.request_id),
                    "operation": plan.operation.value,
                    "error": str(e),
                },
            )
            return [str(e)]
        return []

    @staticmethod
    def _check_same_subject(
        existing: DeliveryRequest,
        client_id: uuid.UUID,
        address_id: uuid.UUID | None,
        collection_address_id: uuid.UUID | None,
    ) -> None:
        if existing.client_id != client_id:
            raise DeliveryValidationError(
                "client_id does not match the vehicle's active request", field="client_id"
            )
        if existing.is_delivery and existing.address_id != address_id:
            raise DeliveryValidationError(
                "The delivery address of an active request cannot change; cancel it first",
                field="address_id",
            )
        if (
            not existing.is_delivery
            and existing.collection_address_id is not None
            and existing.collection_address_id != collection_address_id
        ):
            raise DeliveryValidationError(
                "The collection address of an active pickup cannot change; cancel it first",
                field="collection_address_id",
            )


def build_delivery_request_service(
    session: AsyncSession,
    settings: Settings,
) -> DeliveryRequestService:
    """Wire a service to one database session using application settings."""
    from autologistics.services.store import DeliveryRequestStore

    store = DeliveryRequestStore(session)
    return DeliveryRequestService(
        store,
        publisher=JobQueuePublisher(session, queue=settings.worker.queues[0]),
        fee_resolver=FeeResolver(store, live_statuses=settings.fees.live_statuses),
        engine=TransitionEngine(settings.scheduling),
        conflict_retries=settings.lifecycle.conflict_retries,
    )
