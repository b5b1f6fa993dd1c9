"""Notification handler for ``notification_send`` jobs.

The payload names a template and an audience. The recipient is resolved at
send time: the client's own mailbox for the client side, the configured
operations mailbox for the admin side. Delivery failures raise so the job is
retried with backoff and eventually dead-lettered.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from autologistics.db.models.delivery_requests import DeliveryRequest
from autologistics.db.models.external import Client, Vehicle
from autologistics.services.lifecycle import AUDIENCE_CLIENT, AUDIENCE_OPERATIONS
from autologistics.worker.handlers._payload import payload_of, require_uuid

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from sqlalchemy.ext.asyncio import AsyncSession

    from autologistics.db.models.jobs import Job
    from autologistics.services.notifications import NotificationService

logger = logging.getLogger(__name__)


def build_notification_handler(
    notifier: NotificationService,
) -> Callable[[AsyncSession, Job], Coroutine[Any, Any, dict[str, Any] | None]]:
    """Bind a notification service into a job handler."""

    async def send_notification_handler(session: AsyncSession, job: Job) -> dict[str, Any] | None:
        """Send the email described by the job payload.

        Expected payload:
            {
                "request_id": "uuid-string",
                "client_id": "uuid-string",
                "template": "approved",
                "audience": "client" | "operations",
                "context": {...}
            }

        Raises:
            ValueError: If the payload is invalid.
            LookupError: If the request no longer exists.
            NotificationError: If rendering or sending fails.
        """
        payload = payload_of(job)
        request_id = require_uuid(payload, "request_id")
        client_id = require_uuid(payload, "client_id")
        template = payload.get("template")
        audience = payload.get("audience")
        if not template:
            msg = "Missing template in job payload"
            raise ValueError(msg)
        if audience not in (AUDIENCE_CLIENT, AUDIENCE_OPERATIONS):
            msg = f"Invalid audience in job payload: {audience}"
            raise ValueError(msg)

        request = await session.get(DeliveryRequest, request_id)
        if request is None:
            msg = f"Delivery request not found: {request_id}"
            raise LookupError(msg)

        client = await session.get(Client, client_id)
        vehicle = await session.get(Vehicle, request.vehicle_id)

        if audience == AUDIENCE_CLIENT:
            if client is None or not client.email:
                logger.warning(
                    "Skipping notification, client has no email: request_id=%s, client_id=%s",
                    request_id,
                    client_id,
                )
                return {"skipped": True, "reason": "client_without_email"}
            to_email = client.email
            recipient_name = client.full_name
        else:
            to_email = notifier.operations_email
            recipient_name = "Operations"

        context = {
            **(payload.get("context") or {}),
            "recipient_name": recipient_name,
            "client_name": client.full_name if client else None,
            "vehicle_ref": _vehicle_ref(vehicle, request.vehicle_id),
            "reference": str(request_id),
        }

        # Run synchronous SMTP in thread pool
        loop = asyncio.get_running_loop()
        message_id = await loop.run_in_executor(None, notifier.send, to_email, template, context)

        return {
            "template": template,
            "audience": audience,
            "message_id": message_id,
            "sent": message_id is not None,
        }

    return send_notification_handler


def _vehicle_ref(vehicle: Vehicle | None, vehicle_id: Any) -> str:
    if vehicle is None:
        return str(vehicle_id)
    parts = [p for p in (vehicle.brand, vehicle.model) if p]
    name = " ".join(parts)
    if vehicle.plate:
        return f"{name} ({vehicle.plate})" if name else vehicle.plate
    return name or str(vehicle_id)
