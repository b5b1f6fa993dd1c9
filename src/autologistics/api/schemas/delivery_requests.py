"""Pydantic schemas for delivery request endpoints.

Request bodies validate shape only; lifecycle rules (ownership, status,
self-approval, fee gate) are enforced by the service layer.
"""

from __future__ import annotations

# NOTE: date, datetime, Decimal and UUID must remain at runtime for Pydantic validation
from datetime import date, datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field, model_validator

from autologistics.db.models.base import (  # noqa: TC001
    ActorRole,
    DeliveryEventType,
    DeliveryRequestStatus,
)

# -----------------------------------------------------------------------------
# Request Schemas
# -----------------------------------------------------------------------------


class ProposeDateRequest(BaseModel):
    """Propose a date for a pickup or a delivery.

    A delivery names the destination ``address_id``. A pickup leaves it out
    and names the ``collection_address_id`` whose fee gates the proposal.
    """

    vehicle_id: UUID = Field(..., description="Vehicle to move")
    client_id: UUID = Field(..., description="Owner of the vehicle")
    address_id: UUID | None = Field(None, description="Delivery destination address")
    collection_address_id: UUID | None = Field(
        None, description="Address the vehicle is collected from (pickups)"
    )
    desired_date: date = Field(..., description="Proposed calendar date")
    fee_amount: Decimal | None = Field(
        None, ge=0, max_digits=10, decimal_places=2, description="Quoted fee (deliveries)"
    )
    notes: str | None = Field(None, max_length=2000, description="Free-text note")

    model_config = ConfigDict(extra="forbid")


class ApproveRequest(BaseModel):
    """Optional fee set by staff as they approve a delivery."""

    fee_amount: Decimal | None = Field(
        None, gt=0, max_digits=10, decimal_places=2, description="Delivery fee"
    )

    model_config = ConfigDict(extra="forbid")


class NotesRequest(BaseModel):
    """Optional free-text note attached to a reject or cancel."""

    notes: str | None = Field(None, max_length=2000)

    model_config = ConfigDict(extra="forbid")


class ScheduleRequest(BaseModel):
    """Commit to a window; both bounds or neither."""

    window_start: datetime | None = Field(None, description="Window start")
    window_end: datetime | None = Field(None, description="Window end")

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def validate_bounds(self) -> ScheduleRequest:
        if (self.window_start is None) != (self.window_end is None):
            msg = "window_start and window_end must be given together"
            raise ValueError(msg)
        return self


# -----------------------------------------------------------------------------
# Operation Result Schemas
# -----------------------------------------------------------------------------


class ProposalResponse(BaseModel):
    request_id: UUID
    status: DeliveryRequestStatus
    created: bool = Field(..., description="True if a new request row was opened")
    warnings: list[str] = Field(default_factory=list)


class TransitionResponse(BaseModel):
    request_id: UUID
    success: bool
    new_status: DeliveryRequestStatus
    warnings: list[str] = Field(default_factory=list)


class ScheduleResponse(BaseModel):
    request_id: UUID
    window_start: datetime
    window_end: datetime
    warnings: list[str] = Field(default_factory=list)


class DeliveredResponse(BaseModel):
    request_id: UUID
    success: bool
    vehicle_status: str = Field(..., description="Vehicle label applied on completion")
    warnings: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Read Schemas
# -----------------------------------------------------------------------------


class DeliveryRequestResponse(BaseModel):
    """Full view of one request, with derived attribution and vehicle label."""

    request_id: UUID
    vehicle_id: UUID
    client_id: UUID
    kind: str = Field(..., description="pickup or delivery")
    address_id: UUID | None = None
    collection_address_id: UUID | None = None
    status: DeliveryRequestStatus
    desired_date: date
    window_start: datetime | None = None
    window_end: datetime | None = None
    scheduled_at: datetime | None = None
    created_by: UUID
    proposed_by: str = Field(..., description="client or admin")
    approved_by: UUID | None = None
    fee_amount: Decimal | None = None
    vehicle_status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DeliveryEventResponse(BaseModel):
    event_id: UUID
    event_type: DeliveryEventType
    status_from: DeliveryRequestStatus | None = None
    status_to: DeliveryRequestStatus
    actor_id: UUID
    actor_role: ActorRole
    notes: str | None = None
    event_time: datetime

    model_config = ConfigDict(from_attributes=True)


class DeliveryEventListResponse(BaseModel):
    request_id: UUID
    items: list[DeliveryEventResponse]


class ScheduledItemResponse(BaseModel):
    request_id: UUID
    vehicle_id: UUID
    client_id: UUID
    kind: str
    address_id: UUID | None = None
    address_label: str
    desired_date: date
    window_start: datetime | None = None
    window_end: datetime | None = None
    vehicle_status: str
    client_name: str | None = None
    plate: str | None = None
    brand: str | None = None
    model: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ScheduledListResponse(BaseModel):
    items: list[ScheduledItemResponse]
    total: int
