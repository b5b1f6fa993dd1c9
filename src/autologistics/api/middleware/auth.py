"""Actor identity supplied by the upstream gateway.

Authentication happens upstream. The gateway forwards the caller as two
headers, which this module turns into an ``Actor`` for the lifecycle:
- X-Actor-Id: UUID of the acting user
- X-Actor-Role: ``admin``, ``client`` or ``specialist``

Requests without a well-formed identity are refused with 401.
"""

from __future__ import annotations

import logging
import uuid
from typing import Annotated

from fastapi import Depends, Header

from autologistics.api.middleware.errors import AuthenticationError
from autologistics.db.models.base import ActorRole
from autologistics.services.lifecycle import Actor

logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


async def require_actor(
    x_actor_id: Annotated[str | None, Header(alias=ACTOR_ID_HEADER)] = None,
    x_actor_role: Annotated[str | None, Header(alias=ACTOR_ROLE_HEADER)] = None,
) -> Actor:
    """Dependency resolving the calling actor from gateway headers.

    Raises:
        AuthenticationError: If either header is missing or malformed.
    """
    if not x_actor_id or not x_actor_role:
        raise AuthenticationError(
            "Actor identity required",
            detail={"headers": [ACTOR_ID_HEADER, ACTOR_ROLE_HEADER]},
        )

    try:
        actor_id = uuid.UUID(x_actor_id)
    except ValueError:
        logger.warning("Rejected malformed %s header", ACTOR_ID_HEADER)
        raise AuthenticationError(f"Invalid {ACTOR_ID_HEADER} header") from None

    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        logger.warning("Rejected unknown actor role: %s", x_actor_role)
        raise AuthenticationError(
            f"Invalid {ACTOR_ROLE_HEADER} header",
            detail={"allowed": [r.value for r in ActorRole]},
        ) from None

    return Actor(actor_id=actor_id, role=role)


CurrentActor = Annotated[Actor, Depends(require_actor)]
