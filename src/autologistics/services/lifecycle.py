"""Delivery request state machine.

This module is pure: it validates an operation against a request's current
status and the acting party, then returns a TransitionPlan describing the new
column values, the audit event and the side effects to publish. It never
touches storage; DeliveryRequestService applies the plan.

The state machine:

    requested --approve--> approved --schedule--> scheduled --in_transit--> in_transit
        |                     |                      |                          |
        +------schedule-------+------------------->  |                          v
        |                     |                      +------delivered------> delivered
        +-------reject--------+--> rejected          |
        |                                            +--cancel--> canceled
        +<---------------- propose (new date) -------+

Re-proposing a different date from requested, approved or scheduled lands
back on requested and clears any committed window.

Approval and client scheduling both accept the other side's move: a client
may schedule an approved request only when staff approved it. Staff approving
a delivery must have a positive fee on record or supply one.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import TYPE_CHECKING, Any, ClassVar
from zoneinfo import ZoneInfo

from autologistics.db.models.base import (
    ActorRole,
    DeliveryEventType,
    DeliveryRequestStatus,
)
from autologistics.services.errors import (
    ActorNotPermittedError,
    DeliveryValidationError,
    InvalidTransitionError,
    PricingRequiredError,
    SelfApprovalError,
)

if TYPE_CHECKING:
    from decimal import Decimal
    from uuid import UUID

    from autologistics.core.config import SchedulingSettings
    from autologistics.db.models.delivery_requests import DeliveryRequest

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_START_HOUR = 9
DEFAULT_WINDOW_END_HOUR = 18

# Who a notification goes to
AUDIENCE_CLIENT = "client"
AUDIENCE_OPERATIONS = "operations"


class Operation(str, enum.Enum):
    """Actor-facing operations on a delivery request."""

    PROPOSE = "propose"
    APPROVE = "approve"
    REJECT = "reject"
    SCHEDULE = "schedule"
    MARK_IN_TRANSIT = "mark_in_transit"
    MARK_DELIVERED = "mark_delivered"
    CANCEL = "cancel"


@dataclass(frozen=True, slots=True)
class Actor:
    """Identity supplied by the upstream gateway for one call."""

    actor_id: UUID
    role: ActorRole

    @property
    def side(self) -> str:
        """Negotiating side: clients on one side, staff on the other."""
        return "client" if self.role == ActorRole.CLIENT else "admin"


@dataclass(frozen=True, slots=True)
class OperationRule:
    sources: frozenset[DeliveryRequestStatus]
    target: DeliveryRequestStatus
    roles: frozenset[ActorRole]
    event_type: DeliveryEventType


@dataclass(frozen=True, slots=True)
class TimelineEntry:
    label: str
    notes: str


@dataclass(frozen=True, slots=True)
class NotificationIntent:
    """Fire-and-forget message to one audience."""

    template: str
    audience: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TransitionPlan:
    """Everything the orchestrator needs to apply one transition.

    Attributes:
        operation: The operation being applied.
        from_status: Status the conditional write expects (None when creating).
        to_status: Status after the write.
        event_type: Audit event to append.
        changes: Column values for the conditional update (or the insert).
        vehicle_status: Vehicle-facing label for the new status.
        timeline: Timeline entry to write for the vehicle.
        notification: Message to send after commit.
        notes: Audit event notes.
    """

    operation: Operation
    from_status: DeliveryRequestStatus | None
    to_status: DeliveryRequestStatus
    event_type: DeliveryEventType
    changes: dict[str, Any]
    vehicle_status: str
    timeline: TimelineEntry
    notification: NotificationIntent
    notes: str | None = None


# =============================================================================
# Vehicle status projection
# =============================================================================

_PICKUP_LABELS: dict[DeliveryRequestStatus, str] = {
    DeliveryRequestStatus.REQUESTED: "Pickup Date Proposed",
    DeliveryRequestStatus.APPROVED: "Pickup Date Approved",
    DeliveryRequestStatus.SCHEDULED: "Awaiting Pickup",
    DeliveryRequestStatus.IN_TRANSIT: "Pickup In Progress",
    DeliveryRequestStatus.DELIVERED: "Vehicle Picked Up",
    DeliveryRequestStatus.REJECTED: "Awaiting New Pickup Proposal",
    DeliveryRequestStatus.CANCELED: "Pickup Canceled",
}

_DELIVERY_LABELS: dict[DeliveryRequestStatus, str] = {
    DeliveryRequestStatus.REQUESTED: "Delivery Date Proposed",
    DeliveryRequestStatus.APPROVED: "Awaiting Delivery Approval",
    DeliveryRequestStatus.SCHEDULED: "Awaiting Delivery",
    DeliveryRequestStatus.IN_TRANSIT: "Out for Delivery",
    DeliveryRequestStatus.DELIVERED: "Vehicle Delivered",
    DeliveryRequestStatus.REJECTED: "Awaiting New Delivery Proposal",
    DeliveryRequestStatus.CANCELED: "Delivery Canceled",
}


def vehicle_status_label(is_delivery: bool, status: DeliveryRequestStatus) -> str:
    """Vehicle-facing status label for a request.

    The stored ``vehicles.status`` column is only a cache of this value.
    """
    labels = _DELIVERY_LABELS if is_delivery else _PICKUP_LABELS
    return labels[status]


def proposed_by(created_by: UUID, client_id: UUID) -> str:
    """Attribution of the current proposal: ``client`` or ``admin``."""
    return "client" if created_by == client_id else "admin"


# =============================================================================
# Windows
# =============================================================================


def resolve_timezone(name: str) -> tzinfo:
    return UTC if name == "UTC" else ZoneInfo(name)


def derive_window(
    desired_date: date,
    *,
    start_hour: int = DEFAULT_WINDOW_START_HOUR,
    end_hour: int = DEFAULT_WINDOW_END_HOUR,
    tz: tzinfo = UTC,
) -> tuple[datetime, datetime]:
    """Business-hours window on ``desired_date`` in ``tz``."""
    midnight = datetime.combine(desired_date, time(0, 0), tzinfo=tz)
    return midnight + timedelta(hours=start_hour), midnight + timedelta(hours=end_hour)


def validate_window(
    window_start: datetime | None,
    window_end: datetime | None,
    *,
    tz: tzinfo = UTC,
) -> tuple[datetime, datetime] | None:
    """Check an explicit window; naive bounds are read in ``tz``.

    Returns:
        The normalized pair, or None when neither bound was supplied.

    Raises:
        DeliveryValidationError: If only one bound is given or the range is empty.
    """
    if window_start is None and window_end is None:
        return None
    if window_start is None or window_end is None:
        raise DeliveryValidationError(
            "window_start and window_end must be supplied together", field="window"
        )
    if window_start.tzinfo is None:
        window_start = window_start.replace(tzinfo=tz)
    if window_end.tzinfo is None:
        window_end = window_end.replace(tzinfo=tz)
    if window_end <= window_start:
        raise DeliveryValidationError("window_end must be after window_start", field="window_end")
    return window_start, window_end


# =============================================================================
# Transition engine
# =============================================================================

_ALL_ROLES = frozenset(ActorRole)
_STAFF = frozenset({ActorRole.ADMIN, ActorRole.SPECIALIST})


class TransitionEngine:
    """Validates operations and plans transitions.

    Example:
        engine = TransitionEngine(settings.scheduling)
        plan = engine.plan(
            Operation.SCHEDULE, request, Actor(admin_id, ActorRole.ADMIN), now=now
        )
    """

    # Status graph: from_status -> allowed to_statuses (re-proposal excluded)
    VALID_TRANSITIONS: ClassVar[dict[DeliveryRequestStatus, set[DeliveryRequestStatus]]] = {
        DeliveryRequestStatus.REQUESTED: {
            DeliveryRequestStatus.APPROVED,
            DeliveryRequestStatus.REJECTED,
            DeliveryRequestStatus.SCHEDULED,
            DeliveryRequestStatus.CANCELED,
        },
        DeliveryRequestStatus.APPROVED: {
            DeliveryRequestStatus.SCHEDULED,
            DeliveryRequestStatus.REJECTED,
            DeliveryRequestStatus.CANCELED,
        },
        DeliveryRequestStatus.SCHEDULED: {
            DeliveryRequestStatus.IN_TRANSIT,
            DeliveryRequestStatus.DELIVERED,
            DeliveryRequestStatus.CANCELED,
        },
        DeliveryRequestStatus.IN_TRANSIT: {
            DeliveryRequestStatus.DELIVERED,
            DeliveryRequestStatus.CANCELED,
        },
        # Terminal
        DeliveryRequestStatus.DELIVERED: set(),
        DeliveryRequestStatus.REJECTED: set(),
        DeliveryRequestStatus.CANCELED: set(),
    }

    OPERATION_RULES: ClassVar[dict[Operation, OperationRule]] = {
        Operation.PROPOSE: OperationRule(
            sources=frozenset(
                {
                    DeliveryRequestStatus.REQUESTED,
                    DeliveryRequestStatus.APPROVED,
                    DeliveryRequestStatus.SCHEDULED,
                }
            ),
            target=DeliveryRequestStatus.REQUESTED,
            roles=_ALL_ROLES,
            event_type=DeliveryEventType.PROPOSED,
        ),
        Operation.APPROVE: OperationRule(
            sources=frozenset({DeliveryRequestStatus.REQUESTED}),
            target=DeliveryRequestStatus.APPROVED,
            roles=frozenset({ActorRole.CLIENT, ActorRole.ADMIN}),
            event_type=DeliveryEventType.APPROVED,
        ),
        Operation.REJECT: OperationRule(
            sources=frozenset({DeliveryRequestStatus.REQUESTED, DeliveryRequestStatus.APPROVED}),
            target=DeliveryRequestStatus.REJECTED,
            roles=frozenset({ActorRole.CLIENT, ActorRole.ADMIN}),
            event_type=DeliveryEventType.REJECTED,
        ),
        Operation.SCHEDULE: OperationRule(
            sources=frozenset({DeliveryRequestStatus.REQUESTED, DeliveryRequestStatus.APPROVED}),
            target=DeliveryRequestStatus.SCHEDULED,
            roles=_ALL_ROLES,
            event_type=DeliveryEventType.SCHEDULED,
        ),
        Operation.MARK_IN_TRANSIT: OperationRule(
            sources=frozenset({DeliveryRequestStatus.SCHEDULED}),
            target=DeliveryRequestStatus.IN_TRANSIT,
            roles=_STAFF,
            event_type=DeliveryEventType.IN_TRANSIT,
        ),
        Operation.MARK_DELIVERED: OperationRule(
            sources=frozenset({DeliveryRequestStatus.SCHEDULED, DeliveryRequestStatus.IN_TRANSIT}),
            target=DeliveryRequestStatus.DELIVERED,
            roles=_STAFF,
            event_type=DeliveryEventType.DELIVERED,
        ),
        Operation.CANCEL: OperationRule(
            sources=frozenset(
                {
                    DeliveryRequestStatus.REQUESTED,
                    DeliveryRequestStatus.APPROVED,
                    DeliveryRequestStatus.SCHEDULED,
                    DeliveryRequestStatus.IN_TRANSIT,
                }
            ),
            target=DeliveryRequestStatus.CANCELED,
            roles=_ALL_ROLES,
            event_type=DeliveryEventType.CANCELED,
        ),
    }

    # Clients cannot call off a vehicle already on the road
    CLIENT_CANCEL_SOURCES: ClassVar[frozenset[DeliveryRequestStatus]] = frozenset(
        {
            DeliveryRequestStatus.REQUESTED,
            DeliveryRequestStatus.APPROVED,
            DeliveryRequestStatus.SCHEDULED,
        }
    )

    def __init__(self, scheduling: SchedulingSettings | None = None) -> None:
        if scheduling is None:
            self._start_hour = DEFAULT_WINDOW_START_HOUR
            self._end_hour = DEFAULT_WINDOW_END_HOUR
            self._tz: tzinfo = UTC
        else:
            self._start_hour = scheduling.window_start_hour
            self._end_hour = scheduling.window_end_hour
            self._tz = resolve_timezone(scheduling.timezone)

    @property
    def timezone(self) -> tzinfo:
        return self._tz

    def is_valid_transition(
        self,
        from_status: DeliveryRequestStatus,
        to_status: DeliveryRequestStatus,
    ) -> bool:
        return to_status in self.VALID_TRANSITIONS.get(from_status, set())

    def is_terminal(self, status: DeliveryRequestStatus) -> bool:
        return not self.VALID_TRANSITIONS.get(status)

    def window_for(self, desired_date: date) -> tuple[datetime, datetime]:
        return derive_window(
            desired_date,
            start_hour=self._start_hour,
            end_hour=self._end_hour,
            tz=self._tz,
        )

    # -------------------------------------------------------------------------
    # Planning
    # -------------------------------------------------------------------------

    def plan_new_proposal(
        self,
        *,
        vehicle_id: UUID,
        client_id: UUID,
        is_delivery: bool,
        desired_date: date,
        actor: Actor,
        now: datetime,
    ) -> TransitionPlan:
        """Plan the creation of a fresh request in ``requested``."""
        self.check_client_ownership(Operation.PROPOSE, client_id, actor)
        kind = "Delivery" if is_delivery else "Pickup"
        to_status = DeliveryRequestStatus.REQUESTED
        label = vehicle_status_label(is_delivery, to_status)
        return TransitionPlan(
            operation=Operation.PROPOSE,
            from_status=None,
            to_status=to_status,
            event_type=DeliveryEventType.PROPOSED,
            changes={
                "vehicle_id": vehicle_id,
                "client_id": client_id,
                "status": to_status,
                "desired_date": desired_date,
                "created_by": actor.actor_id,
                "created_at": now,
                "updated_at": now,
            },
            vehicle_status=label,
            timeline=TimelineEntry(
                label=label,
                notes=f"{kind} date proposed for {desired_date.isoformat()}",
            ),
            notification=NotificationIntent(
                template="proposal",
                audience=self._counterparty(actor),
                context={"desired_date": desired_date.isoformat(), "kind": kind.lower()},
            ),
            notes=f"Proposed {desired_date.isoformat()}",
        )

    def plan(
        self,
        operation: Operation,
        request: DeliveryRequest,
        actor: Actor,
        *,
        now: datetime,
        desired_date: date | None = None,
        window: tuple[datetime, datetime] | None = None,
        notes: str | None = None,
        fee_amount: Decimal | None = None,
    ) -> TransitionPlan:
        """Validate ``operation`` on an existing request and plan it.

        Raises:
            ActorNotPermittedError: Role or ownership does not allow it.
            InvalidTransitionError: Not legal from the current status.
            SelfApprovalError: The side that made the last move tried to accept it.
            PricingRequiredError: Staff approving a delivery with no positive fee.
        """
        rule = self.OPERATION_RULES[operation]
        from_status = request.status

        if actor.role not in rule.roles:
            raise ActorNotPermittedError(operation.value, actor.role.value)
        self.check_client_ownership(operation, request.client_id, actor)

        # Re-proposal lands back on requested, outside the forward graph
        legal = from_status in rule.sources and (
            operation == Operation.PROPOSE or self.is_valid_transition(from_status, rule.target)
        )
        if not legal:
            logger.warning(
                "Invalid transition attempted",
                extra={
                    "request_id": str(request.request_id),
                    "operation": operation.value,
                    "from_status": from_status.value,
                    "actor_role": actor.role.value,
                },
            )
            reason = (
                f"Cannot {operation.value} a request that is already {from_status.value}"
                if self.is_terminal(from_status)
                else None
            )
            raise InvalidTransitionError(operation.value, from_status, reason)

        if (
            operation == Operation.CANCEL
            and actor.role == ActorRole.CLIENT
            and from_status not in self.CLIENT_CANCEL_SOURCES
        ):
            raise ActorNotPermittedError(
                operation.value,
                actor.role.value,
                "Clients cannot cancel a movement already in transit",
            )

        if operation == Operation.APPROVE or (
            operation == Operation.SCHEDULE and actor.role == ActorRole.CLIENT
        ):
            self.check_counterparty(operation, request, actor)

        changes: dict[str, Any] = {"status": rule.target, "updated_at": now}
        context: dict[str, Any] = {"desired_date": request.desired_date.isoformat()}
        event_notes = notes
        kind = "Delivery" if request.is_delivery else "Pickup"

        if operation == Operation.PROPOSE:
            if desired_date is None:
                raise DeliveryValidationError("desired_date is required", field="desired_date")
            if desired_date == request.desired_date:
                raise InvalidTransitionError(
                    operation.value,
                    from_status,
                    "The proposed date is unchanged; approve or schedule it instead",
                )
            changes.update(
                desired_date=desired_date,
                created_by=actor.actor_id,
                approved_by=None,
                window_start=None,
                window_end=None,
                scheduled_at=None,
            )
            context["desired_date"] = desired_date.isoformat()
            context["previous_date"] = request.desired_date.isoformat()
            previous = f"previous date {request.desired_date.isoformat()}"
            event_notes = f"{notes} ({previous})" if notes else f"Rescheduled, {previous}"
            timeline_notes = f"{kind} date re-proposed for {desired_date.isoformat()}"
            template, audience = "proposal", self._counterparty(actor)

        elif operation == Operation.SCHEDULE:
            window_start, window_end = window or self.window_for(request.desired_date)
            changes.update(
                window_start=window_start,
                window_end=window_end,
                scheduled_at=now,
            )
            context["window_start"] = window_start.isoformat()
            context["window_end"] = window_end.isoformat()
            timeline_notes = (
                f"{kind} scheduled for {window_start:%Y-%m-%d %H:%M}-{window_end:%H:%M}"
            )
            template, audience = "scheduled", self._counterparty(actor)

        elif operation == Operation.APPROVE:
            if fee_amount is not None:
                if actor.role == ActorRole.CLIENT:
                    raise ActorNotPermittedError(
                        operation.value,
                        actor.role.value,
                        "Only staff set the delivery fee",
                    )
                changes["fee_amount"] = fee_amount
            fee = fee_amount if fee_amount is not None else request.fee_amount
            if request.is_delivery and actor.role != ActorRole.CLIENT and not (fee and fee > 0):
                raise PricingRequiredError(
                    request.client_id,
                    request.address_id,
                    "The delivery fee must be set before approving",
                )
            changes["approved_by"] = actor.actor_id
            timeline_notes = f"{kind} date {request.desired_date.isoformat()} approved"
            template, audience = "approved", self._counterparty(actor)

        elif operation == Operation.REJECT:
            timeline_notes = f"{kind} date {request.desired_date.isoformat()} rejected"
            template, audience = "rejected", self._counterparty(actor)

        elif operation == Operation.MARK_IN_TRANSIT:
            timeline_notes = "Out for delivery" if request.is_delivery else "Pickup in progress"
            template, audience = "in_transit", AUDIENCE_CLIENT

        elif operation == Operation.MARK_DELIVERED:
            timeline_notes = (
                "Delivered to client" if request.is_delivery else "Vehicle collected from client"
            )
            template, audience = "delivered", AUDIENCE_CLIENT

        else:
            timeline_notes = f"{kind} canceled"
            template, audience = "canceled", self._counterparty(actor)

        label = vehicle_status_label(request.is_delivery, rule.target)
        context.update(kind=kind.lower(), vehicle_status=label)
        if notes and operation != Operation.PROPOSE:
            timeline_notes = f"{timeline_notes}: {notes}"

        return TransitionPlan(
            operation=operation,
            from_status=from_status,
            to_status=rule.target,
            event_type=rule.event_type,
            changes=changes,
            vehicle_status=label,
            timeline=TimelineEntry(label=label, notes=timeline_notes),
            notification=NotificationIntent(template=template, audience=audience, context=context),
            notes=event_notes,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def check_client_ownership(operation: Operation, client_id: UUID, actor: Actor) -> None:
        if actor.role == ActorRole.CLIENT and actor.actor_id != client_id:
            raise ActorNotPermittedError(
                operation.value,
                actor.role.value,
                "Clients may only act on their own vehicles",
            )

    @staticmethod
    def check_counterparty(operation: Operation, request: DeliveryRequest, actor: Actor) -> None:
        """Only the side opposite the last move may accept it.

        An approved request is accepted (scheduled) by the side that did not
        approve it; a requested one by the side that did not propose it.
        """
        author = request.created_by
        if (
            operation == Operation.SCHEDULE
            and request.status == DeliveryRequestStatus.APPROVED
            and request.approved_by is not None
        ):
            author = request.approved_by
        if proposed_by(author, request.client_id) == actor.side:
            raise SelfApprovalError(request.request_id, actor.actor_id)

    @staticmethod
    def _counterparty(actor: Actor) -> str:
        return AUDIENCE_OPERATIONS if actor.role == ActorRole.CLIENT else AUDIENCE_CLIENT
