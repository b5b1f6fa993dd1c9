"""Vehicle status sync handler.

Processes ``vehicle_status_sync`` jobs. The label is recomputed from the
vehicle's latest request rather than taken from the payload, so retries and
out-of-order jobs all land on the current status.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from autologistics.services.timeline import VehicleProjector
from autologistics.worker.handlers._payload import payload_of, require_uuid

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from autologistics.db.models.jobs import Job

logger = logging.getLogger(__name__)


async def sync_vehicle_status_handler(session: AsyncSession, job: Job) -> dict[str, Any] | None:
    """Write the projected status label onto the vehicle.

    Args:
        session: Database session (committed by the worker).
        job: Job with ``vehicle_id`` and ``request_id`` in its payload.

    Returns:
        Dict with the label written, or a skip marker.

    Raises:
        ValueError: If the payload is invalid.
    """
    payload = payload_of(job)
    vehicle_id = require_uuid(payload, "vehicle_id")

    label = await VehicleProjector(session).sync_vehicle_status(vehicle_id)
    if label is None:
        return {"skipped": True, "vehicle_id": str(vehicle_id)}

    logger.info(
        "Vehicle status updated: vehicle_id=%s, request_id=%s, status=%s",
        vehicle_id,
        payload.get("request_id"),
        label,
    )
    return {"vehicle_id": str(vehicle_id), "status": label}
