"""Base model definitions and common types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Reusable annotated column types
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, Enum, MetaData, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()

# UUID primary key with server-side default generation
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
]

UUIDColumn = Annotated[uuid.UUID, mapped_column(UUID(as_uuid=True))]

# Timestamp with timezone, defaults to now
TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()")),
]

OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(DateTime(timezone=True), nullable=True),
]


class Base(DeclarativeBase):
    """Declarative base for all models.

    Tables owned by other services are mapped with ``info={"external": True}``
    in ``__table_args__`` so Alembic leaves them alone.
    """

    metadata = metadata
    registry = type_registry


def value_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Column type storing an enum's values (not its member names)."""
    return Enum(
        enum_cls,
        name=name,
        create_constraint=True,
        values_callable=lambda members: [m.value for m in members],
    )


# =============================================================================
# Common Enums
# =============================================================================


class DeliveryRequestStatus(enum.Enum):
    """Lifecycle status of a delivery or pickup request.

    Values:
        REQUESTED: A date has been proposed and awaits the counterparty
        APPROVED: The proposal was accepted, not yet committed to a window
        SCHEDULED: A concrete time window is fixed
        IN_TRANSIT: The vehicle is on the road
        DELIVERED: The movement completed (terminal)
        REJECTED: The proposal was turned down (terminal)
        CANCELED: The movement was called off (terminal)
    """

    REQUESTED = "requested"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    CANCELED = "canceled"


ACTIVE_STATUSES = frozenset(
    {
        DeliveryRequestStatus.REQUESTED,
        DeliveryRequestStatus.APPROVED,
        DeliveryRequestStatus.SCHEDULED,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        DeliveryRequestStatus.DELIVERED,
        DeliveryRequestStatus.REJECTED,
        DeliveryRequestStatus.CANCELED,
    }
)


class ActorRole(enum.Enum):
    """Role of the actor performing an operation.

    Values:
        ADMIN: Back-office staff
        CLIENT: Vehicle owner
        SPECIALIST: Field staff executing pickups and deliveries
    """

    ADMIN = "admin"
    CLIENT = "client"
    SPECIALIST = "specialist"


class DeliveryEventType(enum.Enum):
    """Type of audit event appended to a request's history."""

    PROPOSED = "proposed"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELED = "canceled"


class JobStatus(enum.Enum):
    """Status of a background job.

    Values:
        PENDING: Job is waiting to be processed
        RUNNING: Job is currently being executed
        COMPLETED: Job finished successfully
        FAILED: Job failed after max retries
        CANCELLED: Job was manually cancelled
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
