"""Vehicle timeline handler for ``timeline_append`` jobs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from autologistics.services.timeline import VehicleProjector
from autologistics.worker.handlers._payload import payload_of, require_uuid

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from autologistics.db.models.jobs import Job

logger = logging.getLogger(__name__)


async def append_timeline_handler(session: AsyncSession, job: Job) -> dict[str, Any] | None:
    """Append the transition's timeline entry to the vehicle history.

    Raises:
        ValueError: If the payload is invalid.
    """
    payload = payload_of(job)
    vehicle_id = require_uuid(payload, "vehicle_id")
    label = payload.get("label")
    if not label:
        msg = "Missing label in job payload"
        raise ValueError(msg)

    entry = await VehicleProjector(session).append_timeline(
        vehicle_id, label, payload.get("notes") or ""
    )
    logger.info(
        "Timeline entry appended: vehicle_id=%s, request_id=%s, label=%s",
        vehicle_id,
        payload.get("request_id"),
        label,
    )
    return {"vehicle_history_id": str(entry.vehicle_history_id), "label": label}
