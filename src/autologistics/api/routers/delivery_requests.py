"""Delivery request API router.

Negotiation (propose, approve, reject), execution (schedule, in transit,
delivered, cancel) and reads over a single request. The acting identity comes
from the gateway headers; every rule is enforced by DeliveryRequestService.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from autologistics.api.dependencies import DeliveryService, SummaryService  # noqa: TC001
from autologistics.api.middleware.auth import CurrentActor  # noqa: TC001
from autologistics.api.schemas.delivery_requests import (
    ApproveRequest,
    DeliveredResponse,
    DeliveryEventListResponse,
    DeliveryEventResponse,
    DeliveryRequestResponse,
    NotesRequest,
    ProposalResponse,
    ProposeDateRequest,
    ScheduledItemResponse,
    ScheduledListResponse,
    ScheduleRequest,
    ScheduleResponse,
    TransitionResponse,
)
from autologistics.db.models.base import ActorRole
from autologistics.services.errors import ActorNotPermittedError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/delivery-requests",
    tags=["delivery-requests"],
    responses={
        401: {"description": "Actor identity required"},
        403: {"description": "Actor not permitted"},
        404: {"description": "Delivery request not found"},
        409: {"description": "Invalid transition or concurrent modification"},
    },
)


def _check_read_access(actor: CurrentActor, client_id: UUID) -> None:
    if actor.role == ActorRole.CLIENT and actor.actor_id != client_id:
        raise ActorNotPermittedError(
            "read",
            actor.role.value,
            "Clients may only read their own delivery requests",
        )


# -----------------------------------------------------------------------------
# Negotiation
# -----------------------------------------------------------------------------


@router.post(
    "/proposals",
    response_model=ProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Propose a pickup or delivery date",
)
async def propose_date(
    body: ProposeDateRequest,
    actor: CurrentActor,
    service: DeliveryService,
) -> ProposalResponse:
    """Open a request, or re-propose the active one for the same vehicle and kind."""
    result = await service.propose_date(
        vehicle_id=body.vehicle_id,
        client_id=body.client_id,
        address_id=body.address_id,
        collection_address_id=body.collection_address_id,
        desired_date=body.desired_date,
        fee_amount=body.fee_amount,
        notes=body.notes,
        actor=actor,
    )
    return ProposalResponse(
        request_id=result.request_id,
        status=result.status,
        created=result.created,
        warnings=result.warnings,
    )


@router.post("/{request_id}/approve", response_model=TransitionResponse)
async def approve(
    request_id: UUID,
    actor: CurrentActor,
    service: DeliveryService,
    body: ApproveRequest | None = None,
) -> TransitionResponse:
    """Accept the counterparty's proposed date; staff may set a delivery fee."""
    outcome = await service.approve(
        request_id, actor, fee_amount=body.fee_amount if body else None
    )
    return TransitionResponse(
        request_id=outcome.request_id,
        success=outcome.success,
        new_status=outcome.new_status,
        warnings=outcome.warnings,
    )


@router.post("/{request_id}/reject", response_model=TransitionResponse)
async def reject(
    request_id: UUID,
    actor: CurrentActor,
    service: DeliveryService,
    body: NotesRequest | None = None,
) -> TransitionResponse:
    outcome = await service.reject(request_id, actor, notes=body.notes if body else None)
    return TransitionResponse(
        request_id=outcome.request_id,
        success=outcome.success,
        new_status=outcome.new_status,
        warnings=outcome.warnings,
    )


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------


@router.post("/{request_id}/schedule", response_model=ScheduleResponse)
async def schedule(
    request_id: UUID,
    actor: CurrentActor,
    service: DeliveryService,
    body: ScheduleRequest | None = None,
) -> ScheduleResponse:
    """Fix the time window; the configured default window applies when omitted."""
    result = await service.schedule(
        request_id,
        actor,
        window_start=body.window_start if body else None,
        window_end=body.window_end if body else None,
    )
    return ScheduleResponse(
        request_id=result.request_id,
        window_start=result.window_start,
        window_end=result.window_end,
        warnings=result.warnings,
    )


@router.post("/{request_id}/in-transit", response_model=TransitionResponse)
async def mark_in_transit(
    request_id: UUID,
    actor: CurrentActor,
    service: DeliveryService,
) -> TransitionResponse:
    outcome = await service.mark_in_transit(request_id, actor)
    return TransitionResponse(
        request_id=outcome.request_id,
        success=outcome.success,
        new_status=outcome.new_status,
        warnings=outcome.warnings,
    )


@router.post("/{request_id}/delivered", response_model=DeliveredResponse)
async def mark_delivered(
    request_id: UUID,
    actor: CurrentActor,
    service: DeliveryService,
) -> DeliveredResponse:
    result = await service.mark_delivered(request_id, actor)
    return DeliveredResponse(
        request_id=result.request_id,
        success=result.success,
        vehicle_status=result.vehicle_status,
        warnings=result.warnings,
    )


@router.post("/{request_id}/cancel", response_model=TransitionResponse)
async def cancel(
    request_id: UUID,
    actor: CurrentActor,
    service: DeliveryService,
    body: NotesRequest | None = None,
) -> TransitionResponse:
    outcome = await service.cancel(request_id, actor, notes=body.notes if body else None)
    return TransitionResponse(
        request_id=outcome.request_id,
        success=outcome.success,
        new_status=outcome.new_status,
        warnings=outcome.warnings,
    )


# -----------------------------------------------------------------------------
# Reads
# -----------------------------------------------------------------------------


@router.get("/scheduled", response_model=ScheduledListResponse)
async def list_scheduled(
    actor: CurrentActor,
    service: SummaryService,
    client_id: Annotated[UUID | None, Query(description="Restrict to one client")] = None,
) -> ScheduledListResponse:
    """Scheduled requests; clients only ever see their own."""
    if actor.role == ActorRole.CLIENT:
        if client_id is not None:
            _check_read_access(actor, client_id)
        client_id = actor.actor_id

    items = await service.list_scheduled(client_id=client_id)
    return ScheduledListResponse(
        items=[ScheduledItemResponse.model_validate(item) for item in items],
        total=len(items),
    )


@router.get("/{request_id}", response_model=DeliveryRequestResponse)
async def get_delivery_request(
    request_id: UUID,
    actor: CurrentActor,
    service: DeliveryService,
) -> DeliveryRequestResponse:
    detail = await service.get_request(request_id)
    request = detail.request
    _check_read_access(actor, request.client_id)

    return DeliveryRequestResponse(
        request_id=request.request_id,
        vehicle_id=request.vehicle_id,
        client_id=request.client_id,
        kind=detail.kind,
        address_id=request.address_id,
        collection_address_id=request.collection_address_id,
        status=request.status,
        desired_date=request.desired_date,
        window_start=request.window_start,
        window_end=request.window_end,
        scheduled_at=request.scheduled_at,
        created_by=request.created_by,
        approved_by=request.approved_by,
        proposed_by=detail.proposed_by,
        fee_amount=request.fee_amount,
        vehicle_status=detail.vehicle_status,
        created_at=request.created_at,
        updated_at=request.updated_at,
    )


@router.get("/{request_id}/events", response_model=DeliveryEventListResponse)
async def list_events(
    request_id: UUID,
    actor: CurrentActor,
    service: DeliveryService,
) -> DeliveryEventListResponse:
    """Audit trail of one request, oldest first."""
    detail = await service.get_request(request_id)
    _check_read_access(actor, detail.request.client_id)

    events = await service.list_events(request_id)
    return DeliveryEventListResponse(
        request_id=request_id,
        items=[DeliveryEventResponse.model_validate(event) for event in events],
    )
