"""Auto-logistics service layer.

- DeliveryRequestService: orchestrates every mutation of a delivery request
- TransitionEngine: pure state machine planning each transition
- FeeResolver: collection fee gate for pickup proposals
- DeliveryRequestSummaryService: dashboard read models
- DeliveryRequestStore: SQLAlchemy record store
- JobQueueService / JobQueuePublisher: post-commit side effects via the job queue
- NotificationService: email notifications rendered from Jinja2 templates
- VehicleProjector: vehicle status cache and timeline writes
"""

from autologistics.services.aggregation import DeliveryRequestSummaryService
from autologistics.services.delivery_requests import (
    DeliveryRequestService,
    build_delivery_request_service,
)
from autologistics.services.errors import (
    ActorNotPermittedError,
    ConcurrentModificationError,
    DeliveryRequestError,
    DeliveryRequestNotFoundError,
    DeliveryValidationError,
    InvalidTransitionError,
    PreconditionFailedError,
    PricingRequiredError,
    SelfApprovalError,
    SideEffectError,
    StoreUnavailableError,
)
from autologistics.services.fees import FeeResolver
from autologistics.services.job_queue import JobQueueService, JobType
from autologistics.services.lifecycle import Actor, Operation, TransitionEngine
from autologistics.services.side_effects import JobQueuePublisher
from autologistics.services.store import DeliveryRequestStore

__all__ = [
    "ActorNotPermittedError",
    "Actor",
    "ConcurrentModificationError",
    "DeliveryRequestError",
    "DeliveryRequestNotFoundError",
    "DeliveryRequestService",
    "DeliveryRequestStore",
    "DeliveryRequestSummaryService",
    "DeliveryValidationError",
    "FeeResolver",
    "InvalidTransitionError",
    "JobQueuePublisher",
    "JobQueueService",
    "JobType",
    "Operation",
    "PreconditionFailedError",
    "PricingRequiredError",
    "SelfApprovalError",
    "SideEffectError",
    "StoreUnavailableError",
    "TransitionEngine",
    "build_delivery_request_service",
]
