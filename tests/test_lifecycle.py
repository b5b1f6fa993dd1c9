"""Tests for the delivery request state machine.

Tests cover:
- Transition table and terminal states
- Role and ownership checks
- Side-based self-approval and acceptance of approved requests
- Delivery fee required at staff approval
- Re-proposal, scheduling windows and notification audiences
- Vehicle status projection and proposal attribution
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from autologistics.core.config import SchedulingSettings
from autologistics.db.models.base import ActorRole, DeliveryEventType, DeliveryRequestStatus
from autologistics.services.errors import (
    ActorNotPermittedError,
    DeliveryValidationError,
    InvalidTransitionError,
    PricingRequiredError,
    SelfApprovalError,
)
from autologistics.services.lifecycle import (
    AUDIENCE_CLIENT,
    AUDIENCE_OPERATIONS,
    Actor,
    Operation,
    TransitionEngine,
    derive_window,
    proposed_by,
    validate_window,
    vehicle_status_label,
)
from tests.factories import InMemoryDatabase, admin_actor, client_actor, specialist_actor

NOW = datetime(2025, 9, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def engine() -> TransitionEngine:
    return TransitionEngine()


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


def _request(db: InMemoryDatabase, **overrides):
    return db.add_request(**overrides)


class TestTransitionTable:
    """Tests for the status graph."""

    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        [
            (DeliveryRequestStatus.REQUESTED, DeliveryRequestStatus.APPROVED),
            (DeliveryRequestStatus.REQUESTED, DeliveryRequestStatus.SCHEDULED),
            (DeliveryRequestStatus.APPROVED, DeliveryRequestStatus.SCHEDULED),
            (DeliveryRequestStatus.SCHEDULED, DeliveryRequestStatus.IN_TRANSIT),
            (DeliveryRequestStatus.IN_TRANSIT, DeliveryRequestStatus.DELIVERED),
            (DeliveryRequestStatus.SCHEDULED, DeliveryRequestStatus.CANCELED),
        ],
    )
    def test_valid_transitions(self, engine, from_status, to_status):
        assert engine.is_valid_transition(from_status, to_status)

    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        [
            (DeliveryRequestStatus.REQUESTED, DeliveryRequestStatus.DELIVERED),
            (DeliveryRequestStatus.APPROVED, DeliveryRequestStatus.IN_TRANSIT),
            (DeliveryRequestStatus.DELIVERED, DeliveryRequestStatus.REQUESTED),
            (DeliveryRequestStatus.CANCELED, DeliveryRequestStatus.SCHEDULED),
        ],
    )
    def test_invalid_transitions(self, engine, from_status, to_status):
        assert not engine.is_valid_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "status",
        [
            DeliveryRequestStatus.DELIVERED,
            DeliveryRequestStatus.REJECTED,
            DeliveryRequestStatus.CANCELED,
        ],
    )
    def test_terminal_states(self, engine, status):
        assert engine.is_terminal(status)

    def test_every_rule_target_is_in_the_graph(self, engine):
        """Each operation only moves along declared edges (re-proposal excepted)."""
        for operation, rule in TransitionEngine.OPERATION_RULES.items():
            if operation == Operation.PROPOSE:
                continue
            for source in rule.sources:
                assert engine.is_valid_transition(source, rule.target), (operation, source)

    @pytest.mark.parametrize("operation", list(Operation))
    @pytest.mark.parametrize("status", list(DeliveryRequestStatus))
    def test_every_operation_lands_on_an_allowed_state(self, engine, db, status, operation):
        """Planning either moves along the graph or fails with invalid_transition."""
        client_id = uuid4()
        request = _request(db, client_id=client_id, created_by=client_id, status=status)

        try:
            plan = engine.plan(
                operation, request, admin_actor(), now=NOW, desired_date=date(2025, 9, 12)
            )
        except InvalidTransitionError as e:
            assert e.from_status == status
            assert status not in TransitionEngine.OPERATION_RULES[operation].sources
            return

        assert plan.from_status == status
        if operation == Operation.PROPOSE:
            assert plan.to_status == DeliveryRequestStatus.REQUESTED
            assert plan.changes["desired_date"] != request.desired_date
        else:
            assert plan.to_status != status
            assert engine.is_valid_transition(status, plan.to_status)

    def test_plan_follows_the_status_graph(self, db):
        """An edge removed from the graph is refused even when the operation lists it."""

        class NoDirectScheduling(TransitionEngine):
            VALID_TRANSITIONS = {
                **TransitionEngine.VALID_TRANSITIONS,
                DeliveryRequestStatus.REQUESTED: {
                    DeliveryRequestStatus.APPROVED,
                    DeliveryRequestStatus.REJECTED,
                    DeliveryRequestStatus.CANCELED,
                },
            }

        request = _request(db)

        with pytest.raises(InvalidTransitionError):
            NoDirectScheduling().plan(Operation.SCHEDULE, request, admin_actor(), now=NOW)

    def test_terminal_status_reason(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.DELIVERED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.plan(Operation.CANCEL, request, admin_actor(), now=NOW)

        assert "already delivered" in str(exc_info.value)


class TestRolesAndOwnership:
    """Tests for who may perform which operation."""

    def test_client_cannot_mark_in_transit(self, engine, db):
        client_id = uuid4()
        request = _request(db, client_id=client_id, status=DeliveryRequestStatus.SCHEDULED)

        with pytest.raises(ActorNotPermittedError) as exc_info:
            engine.plan(Operation.MARK_IN_TRANSIT, request, client_actor(client_id), now=NOW)

        assert exc_info.value.code == "actor_not_permitted"

    def test_specialist_cannot_approve(self, engine, db):
        request = _request(db)

        with pytest.raises(ActorNotPermittedError):
            engine.plan(Operation.APPROVE, request, specialist_actor(), now=NOW)

    def test_client_cannot_touch_another_clients_request(self, engine, db):
        request = _request(db, created_by=uuid4())

        with pytest.raises(ActorNotPermittedError):
            engine.plan(Operation.APPROVE, request, client_actor(uuid4()), now=NOW)

    def test_client_cannot_cancel_in_transit(self, engine, db):
        client_id = uuid4()
        request = _request(db, client_id=client_id, status=DeliveryRequestStatus.IN_TRANSIT)

        with pytest.raises(ActorNotPermittedError):
            engine.plan(Operation.CANCEL, request, client_actor(client_id), now=NOW)

    def test_admin_can_cancel_in_transit(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.IN_TRANSIT)

        plan = engine.plan(Operation.CANCEL, request, admin_actor(), now=NOW)

        assert plan.to_status == DeliveryRequestStatus.CANCELED
        assert plan.event_type == DeliveryEventType.CANCELED

    def test_role_is_checked_before_status(self, engine, db):
        """A forbidden role gets actor_not_permitted even from a terminal status."""
        client_id = uuid4()
        request = _request(db, client_id=client_id, status=DeliveryRequestStatus.DELIVERED)

        with pytest.raises(ActorNotPermittedError):
            engine.plan(Operation.MARK_DELIVERED, request, client_actor(client_id), now=NOW)


class TestSelfApproval:
    """Tests for the counterparty rule on approvals."""

    def test_client_cannot_approve_own_proposal(self, engine, db):
        client_id = uuid4()
        request = _request(db, client_id=client_id, created_by=client_id)

        with pytest.raises(SelfApprovalError) as exc_info:
            engine.plan(Operation.APPROVE, request, client_actor(client_id), now=NOW)

        assert exc_info.value.code == "self_approval"

    def test_admin_cannot_approve_staff_proposal(self, engine, db):
        """Staff act as one side: another admin cannot approve an admin's proposal."""
        request = _request(db, created_by=uuid4())

        with pytest.raises(SelfApprovalError):
            engine.plan(Operation.APPROVE, request, admin_actor(), now=NOW)

    def test_admin_approves_client_proposal(self, engine, db):
        client_id = uuid4()
        request = _request(db, client_id=client_id, created_by=client_id)

        plan = engine.plan(Operation.APPROVE, request, admin_actor(), now=NOW)

        assert plan.from_status == DeliveryRequestStatus.REQUESTED
        assert plan.to_status == DeliveryRequestStatus.APPROVED
        assert plan.changes["status"] == DeliveryRequestStatus.APPROVED
        assert plan.notification.template == "approved"
        assert plan.notification.audience == AUDIENCE_CLIENT

    def test_client_approves_admin_proposal(self, engine, db):
        client_id = uuid4()
        request = _request(db, client_id=client_id, created_by=uuid4())

        plan = engine.plan(Operation.APPROVE, request, client_actor(client_id), now=NOW)

        assert plan.to_status == DeliveryRequestStatus.APPROVED
        assert plan.notification.audience == AUDIENCE_OPERATIONS

    def test_client_cannot_schedule_own_proposal(self, engine, db):
        client_id = uuid4()
        request = _request(db, client_id=client_id, created_by=client_id)

        with pytest.raises(SelfApprovalError):
            engine.plan(Operation.SCHEDULE, request, client_actor(client_id), now=NOW)

    def test_client_schedules_staff_approved_request(self, engine, db):
        """After staff approve the client's own proposal, the client accepts it."""
        client_id = uuid4()
        request = _request(
            db,
            client_id=client_id,
            created_by=client_id,
            approved_by=uuid4(),
            status=DeliveryRequestStatus.APPROVED,
        )

        plan = engine.plan(Operation.SCHEDULE, request, client_actor(client_id), now=NOW)

        assert plan.to_status == DeliveryRequestStatus.SCHEDULED
        assert plan.notification.audience == AUDIENCE_OPERATIONS

    def test_client_cannot_schedule_own_approval(self, engine, db):
        client_id = uuid4()
        request = _request(
            db,
            client_id=client_id,
            created_by=uuid4(),
            approved_by=client_id,
            status=DeliveryRequestStatus.APPROVED,
        )

        with pytest.raises(SelfApprovalError):
            engine.plan(Operation.SCHEDULE, request, client_actor(client_id), now=NOW)

    def test_approval_records_approver(self, engine, db):
        client_id = uuid4()
        admin = admin_actor()
        request = _request(db, client_id=client_id, created_by=client_id)

        plan = engine.plan(Operation.APPROVE, request, admin, now=NOW)

        assert plan.changes["approved_by"] == admin.actor_id


class TestDeliveryPricing:
    """Tests for the fee required before staff approve a delivery."""

    def test_staff_approval_requires_fee(self, engine, db):
        request = _request(db, address_id=uuid4())

        with pytest.raises(PricingRequiredError) as exc_info:
            engine.plan(Operation.APPROVE, request, admin_actor(), now=NOW)

        assert exc_info.value.code == "pricing_required"
        assert exc_info.value.address_id == request.address_id

    def test_fee_supplied_with_approval(self, engine, db):
        request = _request(db, address_id=uuid4())

        plan = engine.plan(
            Operation.APPROVE, request, admin_actor(), now=NOW, fee_amount=Decimal("75.00")
        )

        assert plan.changes["fee_amount"] == Decimal("75.00")

    def test_client_approval_of_delivery_needs_no_fee(self, engine, db):
        client_id = uuid4()
        request = _request(db, client_id=client_id, created_by=uuid4(), address_id=uuid4())

        plan = engine.plan(Operation.APPROVE, request, client_actor(client_id), now=NOW)

        assert "fee_amount" not in plan.changes

    def test_pickup_approval_is_not_priced_again(self, engine, db):
        request = _request(db)

        plan = engine.plan(Operation.APPROVE, request, admin_actor(), now=NOW)

        assert plan.to_status == DeliveryRequestStatus.APPROVED

    def test_reproposal_clears_approver(self, engine, db):
        request = _request(db, approved_by=uuid4(), status=DeliveryRequestStatus.APPROVED)

        plan = engine.plan(
            Operation.PROPOSE, request, admin_actor(), now=NOW, desired_date=date(2025, 9, 11)
        )

        assert plan.changes["approved_by"] is None


class TestReproposal:
    """Tests for proposing a new date on an active request."""

    def test_reproposal_from_scheduled_clears_window(self, engine, db):
        client_id = uuid4()
        admin = admin_actor()
        start, end = derive_window(date(2025, 9, 10))
        request = _request(
            db,
            client_id=client_id,
            status=DeliveryRequestStatus.SCHEDULED,
            window_start=start,
            window_end=end,
            scheduled_at=NOW,
        )

        plan = engine.plan(
            Operation.PROPOSE, request, admin, now=NOW, desired_date=date(2025, 9, 12)
        )

        assert plan.to_status == DeliveryRequestStatus.REQUESTED
        assert plan.changes["desired_date"] == date(2025, 9, 12)
        assert plan.changes["created_by"] == admin.actor_id
        assert plan.changes["window_start"] is None
        assert plan.changes["window_end"] is None
        assert plan.changes["scheduled_at"] is None
        assert plan.notes == "Rescheduled, previous date 2025-09-10"
        assert plan.notification.context["previous_date"] == "2025-09-10"
        assert plan.event_type == DeliveryEventType.PROPOSED

    def test_same_date_is_rejected(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.APPROVED)

        with pytest.raises(InvalidTransitionError):
            engine.plan(
                Operation.PROPOSE, request, admin_actor(), now=NOW, desired_date=date(2025, 9, 10)
            )

    def test_cannot_repropose_in_transit(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.IN_TRANSIT)

        with pytest.raises(InvalidTransitionError):
            engine.plan(
                Operation.PROPOSE, request, admin_actor(), now=NOW, desired_date=date(2025, 9, 11)
            )

    def test_new_proposal_plan(self, engine):
        client_id = uuid4()
        vehicle_id = uuid4()

        plan = engine.plan_new_proposal(
            vehicle_id=vehicle_id,
            client_id=client_id,
            is_delivery=False,
            desired_date=date(2025, 9, 10),
            actor=client_actor(client_id),
            now=NOW,
        )

        assert plan.from_status is None
        assert plan.to_status == DeliveryRequestStatus.REQUESTED
        assert plan.changes["created_by"] == client_id
        assert plan.vehicle_status == "Pickup Date Proposed"
        assert plan.notification.template == "proposal"
        assert plan.notification.audience == AUDIENCE_OPERATIONS


class TestScheduling:
    """Tests for window derivation and validation."""

    def test_default_window_is_business_hours(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.APPROVED)

        plan = engine.plan(Operation.SCHEDULE, request, admin_actor(), now=NOW)

        assert plan.changes["window_start"] == datetime(2025, 9, 10, 9, 0, tzinfo=UTC)
        assert plan.changes["window_end"] == datetime(2025, 9, 10, 18, 0, tzinfo=UTC)
        assert plan.changes["scheduled_at"] == NOW
        assert plan.vehicle_status == "Awaiting Pickup"

    def test_window_uses_configured_timezone(self, db):
        engine = TransitionEngine(
            SchedulingSettings(window_start_hour=8, window_end_hour=12, timezone="America/Sao_Paulo")
        )
        request = _request(db, status=DeliveryRequestStatus.APPROVED)

        plan = engine.plan(Operation.SCHEDULE, request, admin_actor(), now=NOW)

        tz = ZoneInfo("America/Sao_Paulo")
        assert plan.changes["window_start"] == datetime(2025, 9, 10, 8, 0, tzinfo=tz)
        assert plan.changes["window_end"] == datetime(2025, 9, 10, 12, 0, tzinfo=tz)

    def test_explicit_window_is_kept(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.APPROVED)
        start = datetime(2025, 9, 10, 14, 0, tzinfo=UTC)
        window = (start, start + timedelta(hours=2))

        plan = engine.plan(Operation.SCHEDULE, request, admin_actor(), now=NOW, window=window)

        assert plan.changes["window_start"] == window[0]
        assert plan.changes["window_end"] == window[1]

    def test_validate_window_requires_both_bounds(self):
        with pytest.raises(DeliveryValidationError):
            validate_window(datetime(2025, 9, 10, 9, 0, tzinfo=UTC), None)

    def test_validate_window_rejects_empty_range(self):
        start = datetime(2025, 9, 10, 9, 0, tzinfo=UTC)
        with pytest.raises(DeliveryValidationError):
            validate_window(start, start)

    def test_validate_window_localizes_naive_bounds(self):
        tz = ZoneInfo("Europe/Lisbon")
        result = validate_window(
            datetime(2025, 9, 10, 9, 0), datetime(2025, 9, 10, 11, 0), tz=tz
        )

        assert result is not None
        assert result[0].tzinfo is tz
        assert result[1].tzinfo is tz

    def test_validate_window_none(self):
        assert validate_window(None, None) is None


class TestExecution:
    """Tests for in-transit, delivered and cancel plans."""

    def test_delivered_label_for_pickup(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.IN_TRANSIT)

        plan = engine.plan(Operation.MARK_DELIVERED, request, specialist_actor(), now=NOW)

        assert plan.vehicle_status == "Vehicle Picked Up"
        assert plan.notification.audience == AUDIENCE_CLIENT

    def test_delivered_label_for_delivery(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.SCHEDULED, address_id=uuid4())

        plan = engine.plan(Operation.MARK_DELIVERED, request, specialist_actor(), now=NOW)

        assert plan.vehicle_status == "Vehicle Delivered"
        assert plan.timeline.notes == "Delivered to client"

    def test_cancel_notes_reach_timeline_and_event(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.SCHEDULED)

        plan = engine.plan(
            Operation.CANCEL, request, admin_actor(), now=NOW, notes="Client moved abroad"
        )

        assert plan.notes == "Client moved abroad"
        assert plan.timeline.notes == "Pickup canceled: Client moved abroad"

    def test_in_transit_from_approved_is_invalid(self, engine, db):
        request = _request(db, status=DeliveryRequestStatus.APPROVED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.plan(Operation.MARK_IN_TRANSIT, request, specialist_actor(), now=NOW)

        assert exc_info.value.code == "invalid_transition"
        assert exc_info.value.from_status == DeliveryRequestStatus.APPROVED


class TestProjection:
    """Tests for vehicle labels and proposal attribution."""

    def test_every_status_has_a_label_for_both_kinds(self):
        for status in DeliveryRequestStatus:
            assert vehicle_status_label(False, status)
            assert vehicle_status_label(True, status)

    def test_rejected_pickup_awaits_new_proposal(self):
        label = vehicle_status_label(False, DeliveryRequestStatus.REJECTED)
        assert label == "Awaiting New Pickup Proposal"

    def test_proposed_by(self):
        client_id = uuid4()
        assert proposed_by(client_id, client_id) == "client"
        assert proposed_by(uuid4(), client_id) == "admin"

    def test_actor_sides(self):
        assert Actor(uuid4(), ActorRole.CLIENT).side == "client"
        assert Actor(uuid4(), ActorRole.ADMIN).side == "admin"
        assert Actor(uuid4(), ActorRole.SPECIALIST).side == "admin"
