"""Pytest configuration and shared fixtures.

Unit and API tests run against the in-memory fakes in ``tests/factories.py``;
no database is needed. The API client overrides the service dependencies so
every request in a test shares one ``InMemoryDatabase``.
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from autologistics.api import create_app
from autologistics.api.dependencies import get_delivery_service, get_summary_service
from autologistics.services.aggregation import DeliveryRequestSummaryService
from autologistics.services.delivery_requests import DeliveryRequestService
from tests.factories import InMemoryDatabase, RecordingPublisher, fixed_clock


@pytest.fixture
def memory_db() -> InMemoryDatabase:
    """Fresh in-memory rows for one test."""
    return InMemoryDatabase()


@pytest.fixture
def recording_publisher() -> RecordingPublisher:
    return RecordingPublisher()


# ---------------------------------------------------------------------------
# API client fixture (in-process testing via ASGI transport)
# ---------------------------------------------------------------------------
@pytest.fixture
def test_app(memory_db: InMemoryDatabase, recording_publisher: RecordingPublisher):
    """Create a FastAPI application wired to the in-memory store."""
    app = create_app()
    clock = fixed_clock()

    async def delivery_service_override() -> DeliveryRequestService:
        return DeliveryRequestService(
            memory_db.store(),
            publisher=recording_publisher,
            clock=clock,
        )

    async def summary_service_override() -> DeliveryRequestSummaryService:
        return DeliveryRequestSummaryService(memory_db.store())

    app.dependency_overrides[get_delivery_service] = delivery_service_override
    app.dependency_overrides[get_summary_service] = summary_service_override
    return app


@pytest.fixture
async def api_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API.

    Uses httpx with ASGI transport for in-process testing.
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
