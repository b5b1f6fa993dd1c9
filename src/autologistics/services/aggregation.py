"""Dashboard read models over delivery requests.

Three views, recomputed on every read with no stored state of their own:
- pending-approval groups: requested/approved requests grouped by address
- negotiation groups: requested requests with ``proposed_by`` attribution
- scheduled lists: scheduled requests joined with vehicle and client data

Grouping always uses address ids. Address labels are looked up only to be
displayed. Vehicle labels come from the status projection, never from the
cached ``vehicles.status`` column.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from autologistics.db.models.base import DeliveryRequestStatus
from autologistics.services.lifecycle import proposed_by, vehicle_status_label

if TYPE_CHECKING:
    from datetime import date, datetime
    from uuid import UUID

    from autologistics.db.models.delivery_requests import DeliveryRequest
    from autologistics.db.models.external import Address
    from autologistics.services.store import DeliveryRequestStore

logger = logging.getLogger(__name__)

PENDING_STATUSES = (DeliveryRequestStatus.REQUESTED, DeliveryRequestStatus.APPROVED)
UNKNOWN_ADDRESS_LABEL = "Unknown address"


@dataclass(slots=True)
class PendingApprovalGroup:
    address_id: UUID | None
    address_label: str
    kind: str
    request_ids: list[UUID] = field(default_factory=list)
    vehicle_ids: set[UUID] = field(default_factory=set)
    status_counts: dict[str, int] = field(default_factory=dict)
    dates: list[date] = field(default_factory=list)
    fee_total: Decimal = Decimal("0.00")

    @property
    def vehicle_count(self) -> int:
        return len(self.vehicle_ids)


@dataclass(frozen=True, slots=True)
class NegotiationEntry:
    request_id: UUID
    vehicle_id: UUID
    desired_date: date
    proposed_by: str
    status: DeliveryRequestStatus


@dataclass(slots=True)
class NegotiationGroup:
    address_id: UUID | None
    address_label: str
    kind: str
    entries: list[NegotiationEntry] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ScheduledItem:
    request_id: UUID
    vehicle_id: UUID
    client_id: UUID
    kind: str
    address_id: UUID | None
    address_label: str
    desired_date: date
    window_start: datetime | None
    window_end: datetime | None
    vehicle_status: str
    client_name: str | None = None
    plate: str | None = None
    brand: str | None = None
    model: str | None = None


@dataclass(frozen=True, slots=True)
class ClientDeliverySummary:
    client_id: UUID
    pending_approval: list[PendingApprovalGroup]
    negotiations: list[NegotiationGroup]
    scheduled: list[ScheduledItem]


class DeliveryRequestSummaryService:
    """Builds per-client and specialist dashboard views."""

    def __init__(self, store: DeliveryRequestStore) -> None:
        self._store = store

    async def build_client_summary(self, client_id: UUID) -> ClientDeliverySummary:
        requests = await self._store.list_requests(
            client_id=client_id,
            statuses=(*PENDING_STATUSES, DeliveryRequestStatus.SCHEDULED),
        )
        addresses = await self._store.get_addresses(r.pricing_address_id for r in requests)

        pending = [r for r in requests if r.status in PENDING_STATUSES]
        negotiating = [r for r in requests if r.status == DeliveryRequestStatus.REQUESTED]
        scheduled = [r for r in requests if r.status == DeliveryRequestStatus.SCHEDULED]

        summary = ClientDeliverySummary(
            client_id=client_id,
            pending_approval=self._group_pending(pending, addresses),
            negotiations=self._group_negotiations(negotiating, addresses),
            scheduled=await self._scheduled_items(scheduled, addresses),
        )
        logger.debug(
            "Client summary built: client_id=%s, pending_groups=%d, negotiations=%d, scheduled=%d",
            client_id,
            len(summary.pending_approval),
            len(summary.negotiations),
            len(summary.scheduled),
        )
        return summary

    async def list_scheduled(self, client_id: UUID | None = None) -> list[ScheduledItem]:
        """Scheduled requests for one client, or for everyone (specialist view)."""
        requests = await self._store.list_requests(
            client_id=client_id,
            statuses=(DeliveryRequestStatus.SCHEDULED,),
        )
        addresses = await self._store.get_addresses(r.pricing_address_id for r in requests)
        return await self._scheduled_items(requests, addresses)

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    @staticmethod
    def _group_pending(
        requests: list[DeliveryRequest],
        addresses: dict[UUID, Address],
    ) -> list[PendingApprovalGroup]:
        groups: dict[tuple[str, UUID | None], PendingApprovalGroup] = {}
        for request in requests:
            key = (request.kind, request.pricing_address_id)
            group = groups.get(key)
            if group is None:
                group = PendingApprovalGroup(
                    address_id=request.pricing_address_id,
                    address_label=_address_label(request.pricing_address_id, addresses),
                    kind=request.kind,
                )
                groups[key] = group
            group.request_ids.append(request.request_id)
            group.vehicle_ids.add(request.vehicle_id)
            status = request.status.value
            group.status_counts[status] = group.status_counts.get(status, 0) + 1
            if request.desired_date not in group.dates:
                group.dates.append(request.desired_date)
            if request.fee_amount is not None:
                group.fee_total += Decimal(request.fee_amount)

        for group in groups.values():
            group.dates.sort()
        return list(groups.values())

    @staticmethod
    def _group_negotiations(
        requests: list[DeliveryRequest],
        addresses: dict[UUID, Address],
    ) -> list[NegotiationGroup]:
        grouped: dict[tuple[str, UUID | None], list[DeliveryRequest]] = defaultdict(list)
        for request in requests:
            grouped[(request.kind, request.pricing_address_id)].append(request)

        return [
            NegotiationGroup(
                address_id=address_id,
                address_label=_address_label(address_id, addresses),
                kind=kind,
                entries=[
                    NegotiationEntry(
                        request_id=r.request_id,
                        vehicle_id=r.vehicle_id,
                        desired_date=r.desired_date,
                        proposed_by=proposed_by(r.created_by, r.client_id),
                        status=r.status,
                    )
                    for r in members
                ],
            )
            for (kind, address_id), members in grouped.items()
        ]

    async def _scheduled_items(
        self,
        requests: list[DeliveryRequest],
        addresses: dict[UUID, Address],
    ) -> list[ScheduledItem]:
        if not requests:
            return []
        vehicles = await self._store.get_vehicles(r.vehicle_id for r in requests)
        clients = await self._store.get_clients(r.client_id for r in requests)

        items = []
        for request in requests:
            vehicle = vehicles.get(request.vehicle_id)
            client = clients.get(request.client_id)
            items.append(
                ScheduledItem(
                    request_id=request.request_id,
                    vehicle_id=request.vehicle_id,
                    client_id=request.client_id,
                    kind=request.kind,
                    address_id=request.pricing_address_id,
                    address_label=_address_label(request.pricing_address_id, addresses),
                    desired_date=request.desired_date,
                    window_start=request.window_start,
                    window_end=request.window_end,
                    vehicle_status=vehicle_status_label(request.is_delivery, request.status),
                    client_name=client.full_name if client else None,
                    plate=vehicle.plate if vehicle else None,
                    brand=vehicle.brand if vehicle else None,
                    model=vehicle.model if vehicle else None,
                )
            )
        items.sort(key=_scheduled_sort_key)
        return items


def _scheduled_sort_key(item: ScheduledItem) -> tuple[date, bool, float]:
    # datetime and date do not compare, so order by date first and window second
    start = item.window_start.timestamp() if item.window_start is not None else 0.0
    return (item.desired_date, item.window_start is None, start)


def _address_label(address_id: UUID | None, addresses: dict[UUID, Address]) -> str:
    address = addresses.get(address_id) if address_id is not None else None
    if address is None:
        return UNKNOWN_ADDRESS_LABEL
    return address.label or UNKNOWN_ADDRESS_LABEL
