"""API routers.

- delivery_requests: negotiation, execution and reads on one request
- clients: per-client dashboard summary
"""

from autologistics.api.routers.clients import router as clients_router
from autologistics.api.routers.delivery_requests import router as delivery_requests_router

__all__ = [
    "clients_router",
    "delivery_requests_router",
]
