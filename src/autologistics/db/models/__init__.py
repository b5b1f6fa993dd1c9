"""SQLAlchemy ORM models.

- base: Common metadata, annotated column types and enums
- delivery_requests: Delivery/pickup requests and their audit events
- external: Vehicle, client, address and collection-fee tables owned elsewhere
- jobs: PostgreSQL-backed job queue
"""

from autologistics.db.models.base import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    ActorRole,
    Base,
    DeliveryEventType,
    DeliveryRequestStatus,
    JobStatus,
    metadata,
)
from autologistics.db.models.delivery_requests import (
    DELIVERY,
    PICKUP,
    DeliveryRequest,
    DeliveryRequestEvent,
)
from autologistics.db.models.external import (
    Address,
    Client,
    CollectionFee,
    Vehicle,
    VehicleHistory,
)
from autologistics.db.models.jobs import Job

__all__ = [
    "ACTIVE_STATUSES",
    "DELIVERY",
    "PICKUP",
    "TERMINAL_STATUSES",
    "ActorRole",
    "Address",
    "Base",
    "Client",
    "CollectionFee",
    "DeliveryEventType",
    "DeliveryRequest",
    "DeliveryRequestEvent",
    "DeliveryRequestStatus",
    "Job",
    "JobStatus",
    "Vehicle",
    "VehicleHistory",
    "metadata",
]
