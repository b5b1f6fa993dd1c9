"""Delivery request and audit event models.

A delivery request is one negotiation for moving one vehicle, either a
pickup (client address to yard, ``address_id`` is NULL) or a delivery
(yard to the client address in ``address_id``).
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from decimal import Decimal  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Date, ForeignKey, Index, Numeric, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autologistics.db.models.base import (
    ActorRole,
    Base,
    DeliveryEventType,
    DeliveryRequestStatus,
    OptionalTimestampTZ,
    TimestampTZ,
    UUIDColumn,
    UUIDPrimaryKey,
    value_enum,
)

PICKUP = "pickup"
DELIVERY = "delivery"


class DeliveryRequest(Base):
    """One pickup or delivery negotiation for a vehicle.

    ``created_by`` holds the actor who proposed the current ``desired_date``;
    comparing it to ``client_id`` tells a client-authored proposal from an
    admin-authored one.
    ``approved_by`` is compared the same way to decide which side may schedule
    an approved request.
    """

    __tablename__ = "delivery_requests"

    request_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    vehicle_id: Mapped[UUIDColumn]
    client_id: Mapped[UUIDColumn]

    # NULL for pickups; the destination for deliveries. Never changes.
    address_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Pickup origin, used to look up the collection fee. NULL for deliveries.
    collection_address_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )

    status: Mapped[DeliveryRequestStatus] = mapped_column(
        value_enum(DeliveryRequestStatus, "delivery_request_status"),
        nullable=False,
        default=DeliveryRequestStatus.REQUESTED,
    )

    desired_date: Mapped[date] = mapped_column(Date, nullable=False)
    window_start: Mapped[OptionalTimestampTZ]
    window_end: Mapped[OptionalTimestampTZ]
    scheduled_at: Mapped[OptionalTimestampTZ]

    created_by: Mapped[UUIDColumn]

    # Who approved the current proposal; cleared when a new date is proposed
    approved_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    fee_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    events: Mapped[list[DeliveryRequestEvent]] = relationship(
        "DeliveryRequestEvent",
        back_populates="request",
        order_by="DeliveryRequestEvent.event_time",
    )

    __table_args__ = (
        Index("ix_delivery_requests_client_id_status", "client_id", "status"),
        Index("ix_delivery_requests_vehicle_id", "vehicle_id"),
        Index("ix_delivery_requests_status", "status"),
        # At most one active request per vehicle and kind
        Index(
            "uq_delivery_requests_active_vehicle_kind",
            "vehicle_id",
            text("(address_id IS NULL)"),
            unique=True,
            postgresql_where=text("status IN ('requested', 'approved', 'scheduled')"),
        ),
    )

    @property
    def is_delivery(self) -> bool:
        return self.address_id is not None

    @property
    def kind(self) -> str:
        return DELIVERY if self.address_id is not None else PICKUP

    @property
    def pricing_address_id(self) -> uuid.UUID | None:
        """Address the request is grouped and priced by."""
        return self.address_id if self.address_id is not None else self.collection_address_id

    def __repr__(self) -> str:
        return (
            f"<DeliveryRequest {self.request_id} {self.kind} "
            f"vehicle={self.vehicle_id} status={self.status.value}>"
        )


class DeliveryRequestEvent(Base):
    """Immutable audit record of one transition.

    Rows are only ever inserted; the initial migration installs a trigger
    rejecting UPDATE and DELETE on this table.
    """

    __tablename__ = "delivery_request_events"

    event_id: Mapped[UUIDPrimaryKey]

    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("delivery_requests.request_id", ondelete="RESTRICT"),
        nullable=False,
    )

    event_type: Mapped[DeliveryEventType] = mapped_column(
        value_enum(DeliveryEventType, "delivery_event_type"),
        nullable=False,
    )

    # NULL only for the proposal that created the request
    status_from: Mapped[DeliveryRequestStatus | None] = mapped_column(
        value_enum(DeliveryRequestStatus, "delivery_request_status"),
        nullable=True,
    )
    status_to: Mapped[DeliveryRequestStatus] = mapped_column(
        value_enum(DeliveryRequestStatus, "delivery_request_status"),
        nullable=False,
    )

    actor_id: Mapped[UUIDColumn]
    actor_role: Mapped[ActorRole] = mapped_column(
        value_enum(ActorRole, "actor_role"),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    event_time: Mapped[TimestampTZ]

    request: Mapped[DeliveryRequest] = relationship(
        "DeliveryRequest",
        back_populates="events",
    )

    __table_args__ = (
        Index("ix_delivery_request_events_request_id_time", "request_id", "event_time"),
    )

    def __repr__(self) -> str:
        return f"<DeliveryRequestEvent {self.event_type.value} request={self.request_id}>"


__all__ = [
    "DELIVERY",
    "PICKUP",
    "DeliveryRequest",
    "DeliveryRequestEvent",
]
