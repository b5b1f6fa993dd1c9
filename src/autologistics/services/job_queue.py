"""PostgreSQL-backed job queue carrying post-commit side effects.

Transitions commit first; the vehicle status cache, the timeline entry and the
notification email are then enqueued here and applied by the worker.

- Atomic job claiming with SELECT ... FOR UPDATE SKIP LOCKED
- Exponential backoff for retries
- Dead letter (FAILED status) once attempts are exhausted
- Stale lock recovery for crashed workers

Usage:
    queue = JobQueueService(session)
    job = await queue.claim_job("worker-1")
    if job:
        try:
            ...
            await queue.complete_job(job.job_id)
        except Exception as e:
            await queue.fail_job(job.job_id, str(e))
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from autologistics.db.models.base import JobStatus
from autologistics.db.models.jobs import Job

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    """Side-effect job types, one handler each in the worker."""

    VEHICLE_STATUS_SYNC = "vehicle_status_sync"
    TIMELINE_APPEND = "timeline_append"
    NOTIFICATION_SEND = "notification_send"


class JobQueueError(Exception):
    """Base exception for job queue operations."""


class JobNotFoundError(JobQueueError):
    """Raised when a job cannot be found."""


class JobQueueService:
    """Job queue over the ``jobs`` table.

    Attributes:
        session: SQLAlchemy async session for database operations.
        default_queue: Queue used when none is given.
        default_max_attempts: Attempts before a job is dead-lettered.
        default_base_backoff: Seconds before the first retry; doubles each attempt.
    """

    def __init__(
        self,
        session: AsyncSession,
        default_queue: str = "default",
        default_max_attempts: int = 5,
        default_base_backoff: int = 30,
    ) -> None:
        self.session = session
        self.default_queue = default_queue
        self.default_max_attempts = default_max_attempts
        self.default_base_backoff = default_base_backoff

    async def enqueue(
        self,
        job_type: str | JobType,
        payload: dict[str, Any] | None = None,
        *,
        run_at: datetime | None = None,
        queue: str | None = None,
        priority: int = 100,
        max_attempts: int | None = None,
        correlation_id: str | None = None,
    ) -> uuid.UUID:
        """Add a job to the queue (flushed, not committed).

        Raises:
            JobQueueError: If the insert fails.
        """
        job_type_value = job_type.value if isinstance(job_type, JobType) else job_type

        job = Job(
            job_type=job_type_value,
            status=JobStatus.PENDING,
            run_at=run_at or datetime.now(UTC),
            payload_json=payload,
            queue=queue or self.default_queue,
            priority=priority,
            max_attempts=max_attempts or self.default_max_attempts,
            base_backoff_seconds=self.default_base_backoff,
            correlation_id=correlation_id,
        )

        try:
            self.session.add(job)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to enqueue %s job: %s", job_type_value, str(e))
            raise JobQueueError(f"Failed to enqueue job: {e}") from e

        logger.debug(
            "Job enqueued: job_id=%s, job_type=%s, correlation_id=%s",
            job.job_id,
            job_type_value,
            correlation_id,
        )
        return job.job_id

    async def claim_job(
        self,
        worker_id: str,
        queue: str | None = None,
        job_types: list[str] | None = None,
    ) -> Job | None:
        """Lock and mark RUNNING the next due job, or return None.

        Raises:
            JobQueueError: If the claim query fails.
        """
        now = datetime.now(UTC)

        stmt = (
            select(Job)
            .where(
                Job.queue == (queue or self.default_queue),
                Job.status == JobStatus.PENDING,
                Job.run_at <= now,
            )
            .order_by(Job.priority, Job.run_at)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        if job_types:
            stmt = stmt.where(Job.job_type.in_(job_types))

        try:
            result = await self.session.execute(stmt)
            job = result.scalar_one_or_none()
            if job is None:
                return None

            job.status = JobStatus.RUNNING
            job.locked_at = now
            job.locked_by = worker_id
            job.started_at = now
            job.attempts += 1
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to claim job: %s", str(e))
            raise JobQueueError(f"Failed to claim job: {e}") from e

        logger.info(
            "Job claimed: job_id=%s, worker_id=%s, job_type=%s, attempt=%d/%d",
            job.job_id,
            worker_id,
            job.job_type,
            job.attempts,
            job.max_attempts,
        )
        return job

    async def complete_job(
        self,
        job_id: uuid.UUID,
        result: dict[str, Any] | None = None,
    ) -> None:
        """Mark a job COMPLETED and record its duration.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobQueueError: If the update fails.
        """
        now = datetime.now(UTC)
        try:
            job = await self.session.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")

            job.status = JobStatus.COMPLETED
            job.completed_at = now
            job.result_json = result
            job.duration_ms = _elapsed_ms(job.started_at, now)
            job.locked_at = None
            job.locked_by = None
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to complete job %s: %s", job_id, str(e))
            raise JobQueueError(f"Failed to complete job: {e}") from e

        logger.info(
            "Job completed: job_id=%s, job_type=%s, duration_ms=%s",
            job_id,
            job.job_type,
            job.duration_ms,
        )

    async def fail_job(self, job_id: uuid.UUID, error: str) -> bool:
        """Record a failure and schedule a retry with exponential backoff.

        Returns:
            True if the job will be retried, False if it was dead-lettered.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobQueueError: If the update fails.
        """
        now = datetime.now(UTC)
        try:
            job = await self.session.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")

            job.last_error = error
            job.locked_at = None
            job.locked_by = None

            if job.attempts >= job.max_attempts:
                job.status = JobStatus.FAILED
                job.completed_at = now
                job.duration_ms = _elapsed_ms(job.started_at, now)
                await self.session.flush()
                logger.warning(
                    "Job dead-lettered: job_id=%s, job_type=%s, attempts=%d, error=%s",
                    job_id,
                    job.job_type,
                    job.attempts,
                    error,
                )
                return False

            # backoff = base * 2^(attempt-1)
            backoff_seconds = job.base_backoff_seconds * (2 ** (job.attempts - 1))
            job.run_at = now + timedelta(seconds=backoff_seconds)
            job.status = JobStatus.PENDING
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to record failure of job %s: %s", job_id, str(e))
            raise JobQueueError(f"Failed to fail job: {e}") from e

        logger.info(
            "Job scheduled for retry: job_id=%s, job_type=%s, attempt=%d/%d, backoff=%ds",
            job_id,
            job.job_type,
            job.attempts,
            job.max_attempts,
            backoff_seconds,
        )
        return True

    async def cleanup_stale_jobs(self, stale_threshold_seconds: int = 600) -> int:
        """Reset RUNNING jobs locked longer than the threshold.

        Returns:
            Number of jobs put back to PENDING.
        """
        now = datetime.now(UTC)
        threshold = now - timedelta(seconds=stale_threshold_seconds)

        stmt = (
            update(Job)
            .where(Job.status == JobStatus.RUNNING, Job.locked_at < threshold)
            .values(status=JobStatus.PENDING, locked_at=None, locked_by=None, run_at=now)
            .returning(Job.job_id)
        )
        try:
            result = await self.session.execute(stmt)
            stale_job_ids = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to cleanup stale jobs: %s", str(e))
            raise JobQueueError(f"Failed to cleanup stale jobs: {e}") from e

        if stale_job_ids:
            logger.warning("Reset %d stale jobs: %s", len(stale_job_ids), stale_job_ids)
        return len(stale_job_ids)


def _elapsed_ms(started_at: datetime | None, now: datetime) -> int | None:
    if started_at is None:
        return None
    return int((now - started_at).total_seconds() * 1000)
