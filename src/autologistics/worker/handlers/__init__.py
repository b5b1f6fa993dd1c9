"""Job handlers for the worker service.

- vehicle_status: Recompute the cached vehicle status label
- timeline: Append a vehicle timeline entry
- notification: Email the counterparty of a transition
"""

from autologistics.worker.handlers.notification import build_notification_handler
from autologistics.worker.handlers.timeline import append_timeline_handler
from autologistics.worker.handlers.vehicle_status import sync_vehicle_status_handler

__all__ = [
    "append_timeline_handler",
    "build_notification_handler",
    "sync_vehicle_status_handler",
]
