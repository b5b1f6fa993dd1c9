"""Auto Logistics API service.

FastAPI application exposing the delivery request lifecycle:
- Date negotiation between clients and staff
- Scheduling and execution of pickups and deliveries
- Audit trail and dashboard reads

This module provides the app factory used by tests and by ``main.py``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from autologistics.api.middleware import (
    ErrorHandlerMiddleware,
    RequestIDMiddleware,
    request_validation_handler,
)
from autologistics.api.routers import clients_router, delivery_requests_router

if TYPE_CHECKING:
    from autologistics.core.config import Settings

logger = logging.getLogger(__name__)

API_TITLE = "Auto Logistics API"
API_DESCRIPTION = """
Pickup and delivery scheduling for client vehicles.

## Namespaces

- **/api/delivery-requests/** - Negotiation, execution and audit trail
- **/api/clients/** - Client dashboard summaries

Callers are identified by the `X-Actor-Id` and `X-Actor-Role` headers set by
the gateway.

## Documentation

- OpenAPI spec: `/api/openapi.json`
- Swagger UI: `/api/docs`
- ReDoc: `/api/redoc`
"""


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional Settings instance. If not provided, routes fall
            back to the cached environment settings on first use.

    Returns:
        Configured FastAPI application ready to serve requests.

    Example:
        app = create_app()

        # For testing
        app = create_app(Settings(database={"url": "postgresql://u:p@localhost/test"}))
    """
    version = settings.app_version if settings else "0.1.0"

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.state.settings = settings

    app.add_exception_handler(RequestValidationError, request_validation_handler)

    _add_middleware(app, settings)

    app.include_router(delivery_requests_router)
    app.include_router(clients_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for container orchestration."""
        return {"status": "healthy"}

    logger.info("Auto Logistics API application created (version=%s)", version)

    return app


def _add_middleware(app: FastAPI, settings: Settings | None) -> None:
    # Last added is outermost; RequestID must wrap ErrorHandler
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)

    allowed_origins = ["http://localhost:3000", "http://localhost:8000"]
    if settings and settings.is_production:
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
