"""Client dashboard router."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter

from autologistics.api.dependencies import SummaryService  # noqa: TC001
from autologistics.api.middleware.auth import CurrentActor  # noqa: TC001
from autologistics.api.schemas.clients import ClientDeliverySummaryResponse
from autologistics.db.models.base import ActorRole
from autologistics.services.errors import ActorNotPermittedError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/clients",
    tags=["clients"],
    responses={
        401: {"description": "Actor identity required"},
        403: {"description": "Actor not permitted"},
    },
)


@router.get("/{client_id}/delivery-summary", response_model=ClientDeliverySummaryResponse)
async def get_delivery_summary(
    client_id: UUID,
    actor: CurrentActor,
    service: SummaryService,
) -> ClientDeliverySummaryResponse:
    """Pending-approval groups, negotiations and scheduled items for one client.

    Recomputed from current request rows on every call.
    """
    if actor.role == ActorRole.CLIENT and actor.actor_id != client_id:
        raise ActorNotPermittedError(
            "read",
            actor.role.value,
            "Clients may only read their own summary",
        )

    summary = await service.build_client_summary(client_id)
    return ClientDeliverySummaryResponse.model_validate(summary)
