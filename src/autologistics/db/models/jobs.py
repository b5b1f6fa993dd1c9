"""Job queue model for PostgreSQL-backed background processing.

Side effects of a committed transition (vehicle status cache, timeline entry,
notification email) travel through this table:
- SKIP LOCKED for concurrent worker safety
- Retry with exponential backoff
- Dead letter handling for failed jobs
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import BigInteger, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from autologistics.db.models.base import (
    Base,
    JobStatus,
    OptionalTimestampTZ,
    TimestampTZ,
    UUIDPrimaryKey,
    value_enum,
)


class Job(Base):
    """Background job picked up with SELECT ... FOR UPDATE SKIP LOCKED."""

    __tablename__ = "jobs"

    job_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    # e.g. 'vehicle_status_sync', 'timeline_append', 'notification_send'
    job_type: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[JobStatus] = mapped_column(
        value_enum(JobStatus, "job_status"),
        nullable=False,
        default=JobStatus.PENDING,
    )

    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    locked_at: Mapped[OptionalTimestampTZ]
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Retry tracking
    attempts: Mapped[int] = mapped_column(default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(default=3, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Seconds before the next retry, doubles each attempt
    base_backoff_seconds: Mapped[int] = mapped_column(default=30, nullable=False)

    payload_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    result_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    started_at: Mapped[OptionalTimestampTZ]
    completed_at: Mapped[OptionalTimestampTZ]

    # Lower = higher priority
    priority: Mapped[int] = mapped_column(default=100, nullable=False)

    queue: Mapped[str] = mapped_column(String(100), default="default", nullable=False)

    # Delivery request the job belongs to
    correlation_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    duration_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (
        Index(
            "ix_jobs_queue_pending",
            "queue",
            "status",
            "run_at",
            "priority",
        ),
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_correlation_id", "correlation_id"),
        Index("ix_jobs_completed_at", "completed_at"),
    )
