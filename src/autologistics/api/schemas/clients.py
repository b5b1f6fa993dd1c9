"""Pydantic schemas for the client dashboard summary."""

from __future__ import annotations

# NOTE: date, Decimal and UUID must remain at runtime for Pydantic validation
from datetime import date  # noqa: TC003
from decimal import Decimal  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from autologistics.api.schemas.delivery_requests import ScheduledItemResponse
from autologistics.db.models.base import DeliveryRequestStatus  # noqa: TC001


class PendingApprovalGroupResponse(BaseModel):
    """Requested and approved requests sharing one address."""

    address_id: UUID | None = None
    address_label: str
    kind: str
    vehicle_count: int
    request_ids: list[UUID]
    status_counts: dict[str, int]
    dates: list[date]
    fee_total: Decimal = Field(..., description="Sum of quoted fees in the group")

    model_config = ConfigDict(from_attributes=True)


class NegotiationEntryResponse(BaseModel):
    request_id: UUID
    vehicle_id: UUID
    desired_date: date
    proposed_by: str = Field(..., description="client or admin")
    status: DeliveryRequestStatus

    model_config = ConfigDict(from_attributes=True)


class NegotiationGroupResponse(BaseModel):
    address_id: UUID | None = None
    address_label: str
    kind: str
    entries: list[NegotiationEntryResponse]

    model_config = ConfigDict(from_attributes=True)


class ClientDeliverySummaryResponse(BaseModel):
    client_id: UUID
    pending_approval: list[PendingApprovalGroupResponse]
    negotiations: list[NegotiationGroupResponse]
    scheduled: list[ScheduledItemResponse]

    model_config = ConfigDict(from_attributes=True)
