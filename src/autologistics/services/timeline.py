"""Vehicle-facing projections of the request lifecycle.

The vehicle status label is recomputed from the vehicle's most recently
updated request every time, so applying sync jobs in any order (or twice)
converges on the same value. Timeline entries are append-only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select, update

from autologistics.db.models.delivery_requests import DeliveryRequest
from autologistics.db.models.external import Vehicle, VehicleHistory
from autologistics.services.lifecycle import vehicle_status_label

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class VehicleProjector:
    """Writes the vehicle status cache and the vehicle timeline."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def current_label(self, vehicle_id: UUID) -> str | None:
        """Label for the vehicle's latest request, or None if it has none."""
        stmt = (
            select(DeliveryRequest)
            .where(DeliveryRequest.vehicle_id == vehicle_id)
            .order_by(DeliveryRequest.updated_at.desc(), DeliveryRequest.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        latest = result.scalar_one_or_none()
        if latest is None:
            return None
        return vehicle_status_label(latest.is_delivery, latest.status)

    async def sync_vehicle_status(self, vehicle_id: UUID) -> str | None:
        """Overwrite ``vehicles.status`` with the projected label.

        Returns:
            The label written, or None when there was nothing to write.
        """
        label = await self.current_label(vehicle_id)
        if label is None:
            logger.info("No delivery request for vehicle %s, status left as is", vehicle_id)
            return None

        result = await self.session.execute(
            update(Vehicle).where(Vehicle.vehicle_id == vehicle_id).values(status=label)
        )
        if result.rowcount == 0:
            logger.warning("Vehicle %s not found while syncing status", vehicle_id)
            return None

        logger.info("Vehicle status synced: vehicle_id=%s, status=%s", vehicle_id, label)
        return label

    async def append_timeline(self, vehicle_id: UUID, label: str, notes: str) -> VehicleHistory:
        entry = VehicleHistory(vehicle_id=vehicle_id, status=label, notes=notes)
        self.session.add(entry)
        await self.session.flush()
        logger.debug("Timeline entry added: vehicle_id=%s, status=%s", vehicle_id, label)
        return entry
