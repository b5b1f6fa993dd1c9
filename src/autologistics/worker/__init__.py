"""Auto Logistics worker service.

PostgreSQL-backed background job runner applying the side effects of
committed delivery request transitions:
- Vehicle status cache sync
- Vehicle timeline entries
- Notification emails, with retries

Usage:
    python -m autologistics.worker.main
"""

from autologistics.worker.main import Worker, WorkerConfig, run

__all__ = ["Worker", "WorkerConfig", "run"]
