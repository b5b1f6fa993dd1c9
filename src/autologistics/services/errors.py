"""Errors raised by the delivery request lifecycle.

Every error carries a stable machine ``code`` that the API error middleware
copies into the response envelope.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from uuid import UUID

    from autologistics.db.models.base import DeliveryRequestStatus


class DeliveryRequestError(Exception):
    """Base class for lifecycle errors."""

    code = "delivery_request_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DeliveryValidationError(DeliveryRequestError):
    """Malformed or missing identifiers, dates or windows.

    Raised before any state is read.
    """

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message, {"field": field} if field else None)


class PreconditionFailedError(DeliveryRequestError):
    """The operation is well-formed but not allowed right now."""

    code = "precondition_failed"


class PricingRequiredError(PreconditionFailedError):
    """No positive fee is on record for the movement.

    Raised for a pickup address with no priced collection fee, and for a
    delivery that staff try to approve before its fee is set.
    """

    code = "pricing_required"

    def __init__(
        self,
        client_id: UUID,
        address_id: UUID,
        message: str | None = None,
    ) -> None:
        self.client_id = client_id
        self.address_id = address_id
        super().__init__(
            message
            or "A collection fee must be set for this address before proposing a pickup date",
            {"client_id": str(client_id), "address_id": str(address_id)},
        )


class InvalidTransitionError(PreconditionFailedError):
    """The operation is not legal from the request's current status."""

    code = "invalid_transition"

    def __init__(
        self,
        operation: str,
        from_status: DeliveryRequestStatus,
        reason: str | None = None,
    ) -> None:
        self.operation = operation
        self.from_status = from_status
        self.reason = reason or f"Cannot {operation} a request in status {from_status.value}"
        super().__init__(
            self.reason,
            {"operation": operation, "status": from_status.value},
        )


class SelfApprovalError(PreconditionFailedError):
    """An actor tried to accept the date they proposed themselves."""

    code = "self_approval"

    def __init__(self, request_id: UUID, actor_id: UUID) -> None:
        self.request_id = request_id
        self.actor_id = actor_id
        super().__init__(
            "The counterparty must accept a proposal; its author cannot",
            {"request_id": str(request_id)},
        )


class ActorNotPermittedError(PreconditionFailedError):
    """The actor's role or ownership does not allow the operation."""

    code = "actor_not_permitted"

    def __init__(self, operation: str, role: str, reason: str | None = None) -> None:
        self.operation = operation
        self.role = role
        super().__init__(
            reason or f"Role {role} may not {operation}",
            {"operation": operation, "role": role},
        )


class DeliveryRequestNotFoundError(DeliveryRequestError):
    """The request (or a record it refers to) does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: UUID) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} not found",
            {"entity": entity, "id": str(entity_id)},
        )


class ConcurrentModificationError(DeliveryRequestError):
    """The row changed between read and conditional write.

    Re-fetching and re-evaluating either succeeds or surfaces a legitimate
    InvalidTransitionError.
    """

    code = "concurrent_modification"

    def __init__(self, request_id: UUID | None, expected_status: str | None = None) -> None:
        self.request_id = request_id
        self.expected_status = expected_status
        details: dict[str, Any] = {}
        if request_id is not None:
            details["request_id"] = str(request_id)
        if expected_status is not None:
            details["expected_status"] = expected_status
        super().__init__("The request was modified concurrently; re-fetch and retry", details)


class StoreUnavailableError(DeliveryRequestError):
    """The record store failed; nothing was written."""

    code = "store_unavailable"

    def __init__(self, operation: str, cause: str) -> None:
        self.operation = operation
        super().__init__(f"Record store failure during {operation}: {cause}")


class SideEffectError(Exception):
    """A best-effort side effect could not be published.

    Never propagates out of the orchestrator; it becomes a warning on the
    operation result.
    """

    def __init__(self, effect: str, cause: str) -> None:
        self.effect = effect
        self.cause = cause
        super().__init__(f"{effect} failed: {cause}")
