"""Collection fee lookup gating pickup proposals.

An address may carry several historical fee rows, and only an older one may
have been priced. The relevant row is the most recently updated one that
actually carries a positive amount, never simply the most recent row.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from autologistics.db.models.external import CollectionFee

logger = logging.getLogger(__name__)

DEFAULT_LIVE_STATUSES = ("requested", "approved")


class FeeSource(Protocol):
    async def list_collection_fees(
        self,
        client_id: UUID,
        address_id: UUID,
        statuses: Iterable[str],
    ) -> Sequence[CollectionFee]: ...


def select_relevant_fee(rows: Iterable[CollectionFee]) -> CollectionFee | None:
    """First row with a positive fee; ``rows`` must be newest first."""
    for row in rows:
        if row.fee_amount is not None and Decimal(row.fee_amount) > 0:
            return row
    return None


class FeeResolver:
    """Answers whether a client address has been priced.

    Example:
        resolver = FeeResolver(store, live_statuses=settings.fees.live_statuses)
        if not await resolver.has_valid_fee(client_id, address_id):
            raise PricingRequiredError(client_id, address_id)
    """

    def __init__(
        self,
        source: FeeSource,
        live_statuses: Iterable[str] = DEFAULT_LIVE_STATUSES,
    ) -> None:
        self._source = source
        self._live_statuses = tuple(live_statuses)

    async def resolve_fee(self, client_id: UUID, address_id: UUID) -> Decimal | None:
        """Positive fee for the address, or None when it has not been priced."""
        rows = await self._source.list_collection_fees(
            client_id, address_id, self._live_statuses
        )
        relevant = select_relevant_fee(rows)
        if relevant is None:
            logger.info(
                "No priced collection fee: client_id=%s, address_id=%s, rows_checked=%d",
                client_id,
                address_id,
                len(rows),
            )
            return None
        return Decimal(relevant.fee_amount)

    async def has_valid_fee(self, client_id: UUID, address_id: UUID) -> bool:
        return await self.resolve_fee(client_id, address_id) is not None
