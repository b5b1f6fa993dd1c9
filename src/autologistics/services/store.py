"""Transactional record store for delivery requests.

DeliveryRequestStore wraps one AsyncSession and exposes the small contract the
orchestrator and read aggregation depend on:
- point and filtered reads of requests
- an insert guarded by the single-active-request index
- a conditional update keyed on the expected prior status
- insert-only audit events
- read access to the externally owned vehicle/client/address/fee tables

Any SQLAlchemy failure is rolled back and surfaced as StoreUnavailableError;
unique-index violations become ConcurrentModificationError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, NoReturn

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from autologistics.db.models.base import ACTIVE_STATUSES, DeliveryRequestStatus
from autologistics.db.models.delivery_requests import DeliveryRequest, DeliveryRequestEvent
from autologistics.db.models.external import Address, Client, CollectionFee, Vehicle
from autologistics.services.errors import ConcurrentModificationError, StoreUnavailableError

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class DeliveryRequestStore:
    """SQLAlchemy-backed record store.

    Attributes:
        session: SQLAlchemy async session the store operates in.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def get_request(self, request_id: UUID) -> DeliveryRequest | None:
        stmt = (
            select(DeliveryRequest)
            .where(DeliveryRequest.request_id == request_id)
            .execution_options(populate_existing=True)
        )
        return await self._scalar_one_or_none(stmt, "get_request")

    async def find_active_request(
        self,
        vehicle_id: UUID,
        *,
        is_delivery: bool,
    ) -> DeliveryRequest | None:
        """The vehicle's active pickup (or delivery) request, if any."""
        kind_clause = (
            DeliveryRequest.address_id.is_not(None)
            if is_delivery
            else DeliveryRequest.address_id.is_(None)
        )
        stmt = (
            select(DeliveryRequest)
            .where(
                DeliveryRequest.vehicle_id == vehicle_id,
                kind_clause,
                DeliveryRequest.status.in_(list(ACTIVE_STATUSES)),
            )
            .order_by(DeliveryRequest.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return await self._scalar_one_or_none(stmt, "find_active_request")

    async def list_requests(
        self,
        *,
        client_id: UUID | None = None,
        statuses: Iterable[DeliveryRequestStatus] | None = None,
    ) -> list[DeliveryRequest]:
        """Requests ordered by desired date, then creation time."""
        stmt = select(DeliveryRequest).order_by(
            DeliveryRequest.desired_date, DeliveryRequest.created_at
        )
        if client_id is not None:
            stmt = stmt.where(DeliveryRequest.client_id == client_id)
        if statuses is not None:
            stmt = stmt.where(DeliveryRequest.status.in_(list(statuses)))
        return await self._scalars(stmt, "list_requests")

    async def insert_request(self, values: dict[str, Any]) -> DeliveryRequest:
        """Insert a new request.

        Raises:
            ConcurrentModificationError: Another active request of the same kind
                was inserted for the vehicle in the meantime.
        """
        request = DeliveryRequest(**values)
        try:
            self.session.add(request)
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(
                "Active request already exists: vehicle_id=%s, error=%s",
                values.get("vehicle_id"),
                str(e.orig),
            )
            raise ConcurrentModificationError(None) from e
        except SQLAlchemyError as e:
            await self._fail("insert_request", e)
        return request

    async def update_request_if_status(
        self,
        request_id: UUID,
        expected_status: DeliveryRequestStatus,
        values: dict[str, Any],
    ) -> DeliveryRequest | None:
        """Apply ``values`` only if the row still has ``expected_status``.

        Returns:
            The updated row, or None when no row matched (status changed or the
            request disappeared).
        """
        stmt = (
            update(DeliveryRequest)
            .where(
                DeliveryRequest.request_id == request_id,
                DeliveryRequest.status == expected_status,
            )
            .values(**values)
            .returning(DeliveryRequest)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConcurrentModificationError(request_id, expected_status.value) from e
        except SQLAlchemyError as e:
            await self._fail("update_request_if_status", e)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    async def append_event(self, **values: Any) -> DeliveryRequestEvent:
        """Insert one audit event. Events are never updated or deleted."""
        event = DeliveryRequestEvent(**values)
        try:
            self.session.add(event)
            await self.session.flush()
        except SQLAlchemyError as e:
            await self._fail("append_event", e)
        return event

    async def list_events(self, request_id: UUID) -> list[DeliveryRequestEvent]:
        stmt = (
            select(DeliveryRequestEvent)
            .where(DeliveryRequestEvent.request_id == request_id)
            .order_by(DeliveryRequestEvent.event_time, DeliveryRequestEvent.event_id)
        )
        return await self._scalars(stmt, "list_events")

    # -------------------------------------------------------------------------
    # External tables (read-only here)
    # -------------------------------------------------------------------------

    async def list_collection_fees(
        self,
        client_id: UUID,
        address_id: UUID,
        statuses: Iterable[str],
    ) -> list[CollectionFee]:
        """Fee rows for the address, most recently updated first."""
        stmt = (
            select(CollectionFee)
            .where(
                CollectionFee.client_id == client_id,
                CollectionFee.address_id == address_id,
                CollectionFee.status.in_(list(statuses)),
            )
            .order_by(CollectionFee.updated_at.desc())
        )
        return await self._scalars(stmt, "list_collection_fees")

    async def get_vehicles(self, vehicle_ids: Iterable[UUID]) -> dict[UUID, Vehicle]:
        ids = set(vehicle_ids)
        if not ids:
            return {}
        rows = await self._scalars(
            select(Vehicle).where(Vehicle.vehicle_id.in_(list(ids))), "get_vehicles"
        )
        return {v.vehicle_id: v for v in rows}

    async def get_clients(self, client_ids: Iterable[UUID]) -> dict[UUID, Client]:
        ids = set(client_ids)
        if not ids:
            return {}
        rows = await self._scalars(
            select(Client).where(Client.client_id.in_(list(ids))), "get_clients"
        )
        return {c.client_id: c for c in rows}

    async def get_addresses(self, address_ids: Iterable[UUID]) -> dict[UUID, Address]:
        ids = {a for a in address_ids if a is not None}
        if not ids:
            return {}
        rows = await self._scalars(
            select(Address).where(Address.address_id.in_(list(ids))), "get_addresses"
        )
        return {a.address_id: a for a in rows}

    # -------------------------------------------------------------------------
    # Transaction control
    # -------------------------------------------------------------------------

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConcurrentModificationError(None) from e
        except SQLAlchemyError as e:
            await self._fail("commit", e)

    async def rollback(self) -> None:
        await self.session.rollback()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _scalar_one_or_none(self, stmt: Any, operation: str) -> Any:
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail(operation, e)

    async def _scalars(self, stmt: Any, operation: str) -> list[Any]:
        try:
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await self._fail(operation, e)

    async def _fail(self, operation: str, error: SQLAlchemyError) -> NoReturn:
        logger.error("Record store failure during %s: %s", operation, str(error))
        await self.session.rollback()
        raise StoreUnavailableError(operation, str(error)) from error
