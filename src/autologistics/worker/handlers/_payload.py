"""Payload helpers shared by job handlers."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from autologistics.db.models.jobs import Job


def payload_of(job: Job) -> dict[str, Any]:
    """Return the job payload, failing if the job carries none."""
    if not job.payload_json:
        msg = f"Job {job.job_id} has no payload"
        raise ValueError(msg)
    return job.payload_json


def require_uuid(payload: dict[str, Any], key: str) -> uuid.UUID:
    """Read a UUID field from a payload.

    Raises:
        ValueError: If the field is missing or not a UUID.
    """
    value = payload.get(key)
    if not value:
        msg = f"Missing {key} in job payload"
        raise ValueError(msg)
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        msg = f"Invalid {key} in job payload: {value}"
        raise ValueError(msg) from e
