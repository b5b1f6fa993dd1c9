"""Publishing of post-commit side effects.

After a transition commits, the vehicle status cache, one timeline entry and
one notification are emitted as jobs on the PostgreSQL queue. Publication runs
in its own transaction; a failure rolls back only the job rows and is reported
as SideEffectError, never undoing the committed transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from sqlalchemy.exc import SQLAlchemyError

from autologistics.services.errors import SideEffectError
from autologistics.services.job_queue import JobQueueError, JobQueueService, JobType

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from autologistics.services.lifecycle import TransitionPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SideEffects:
    """Side effects of one committed transition."""

    request_id: UUID
    vehicle_id: UUID
    client_id: UUID
    plan: TransitionPlan


class SideEffectPublisher(Protocol):
    async def publish(self, effects: SideEffects) -> None:
        """Emit the effects.

        Raises:
            SideEffectError: If they could not be emitted.
        """
        ...


class JobQueuePublisher:
    """Publishes side effects as jobs in the caller's database session."""

    def __init__(self, session: AsyncSession, queue: str = "default") -> None:
        self._session = session
        self._queue = JobQueueService(session, default_queue=queue)

    async def publish(self, effects: SideEffects) -> None:
        request_id = str(effects.request_id)
        plan = effects.plan
        try:
            await self._queue.enqueue(
                JobType.VEHICLE_STATUS_SYNC,
                {"request_id": request_id, "vehicle_id": str(effects.vehicle_id)},
                priority=10,
                correlation_id=request_id,
            )
            await self._queue.enqueue(
                JobType.TIMELINE_APPEND,
                {
                    "request_id": request_id,
                    "vehicle_id": str(effects.vehicle_id),
                    "label": plan.timeline.label,
                    "notes": plan.timeline.notes,
                },
                priority=20,
                correlation_id=request_id,
            )
            await self._queue.enqueue(
                JobType.NOTIFICATION_SEND,
                {
                    "request_id": request_id,
                    "client_id": str(effects.client_id),
                    "template": plan.notification.template,
                    "audience": plan.notification.audience,
                    "context": plan.notification.context,
                },
                priority=50,
                correlation_id=request_id,
            )
            await self._session.commit()
        except (JobQueueError, SQLAlchemyError) as e:
            await self._session.rollback()
            logger.warning(
                "Side effects not published: request_id=%s, operation=%s, error=%s",
                request_id,
                plan.operation.value,
                str(e),
            )
            raise SideEffectError("side effect publication", str(e)) from e

        logger.debug(
            "Side effects published: request_id=%s, operation=%s",
            request_id,
            plan.operation.value,
        )
