"""Shared FastAPI dependencies.

Route handlers receive services, never sessions. Tests replace
``get_delivery_service`` and ``get_summary_service`` through
``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autologistics.core.config import Settings
from autologistics.services.aggregation import DeliveryRequestSummaryService
from autologistics.services.delivery_requests import (
    DeliveryRequestService,
    build_delivery_request_service,
)
from autologistics.services.store import DeliveryRequestStore


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the application's async session factory."""
    from autologistics.db import get_async_session

    async with get_async_session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with, else the cached environment settings."""
    settings = getattr(request.app.state, "settings", None)
    if settings is not None:
        return settings

    from autologistics.core.settings import get_settings

    return get_settings()


AppSettings = Annotated[Settings, Depends(get_app_settings)]


async def get_delivery_service(db: DbSession, settings: AppSettings) -> DeliveryRequestService:
    return build_delivery_request_service(db, settings)


async def get_summary_service(db: DbSession) -> DeliveryRequestSummaryService:
    return DeliveryRequestSummaryService(DeliveryRequestStore(db))


DeliveryService = Annotated[DeliveryRequestService, Depends(get_delivery_service)]
SummaryService = Annotated[DeliveryRequestSummaryService, Depends(get_summary_service)]
