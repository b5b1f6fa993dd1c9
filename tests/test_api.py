"""Tests for the HTTP API.

Tests cover:
- App factory and health endpoint
- Request ID propagation
- Actor headers and 401 responses
- Error envelope and status mapping for lifecycle errors
- Negotiation, execution and read endpoints end to end
- Client read isolation
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from autologistics.api import create_app
from autologistics.api.middleware.errors import (
    ERROR_STATUS_CODES,
    AuthenticationError,
    build_error_response,
)
from autologistics.db.models.base import DeliveryRequestStatus
from tests.factories import InMemoryDatabase

BASE = "/api/delivery-requests"


def as_client(client_id) -> dict[str, str]:
    return {"X-Actor-Id": str(client_id), "X-Actor-Role": "client"}


def as_admin() -> dict[str, str]:
    return {"X-Actor-Id": str(uuid.uuid4()), "X-Actor-Role": "admin"}


def as_specialist() -> dict[str, str]:
    return {"X-Actor-Id": str(uuid.uuid4()), "X-Actor-Role": "specialist"}


@pytest.fixture
def seeded(memory_db: InMemoryDatabase):
    client = memory_db.add_client(full_name="Ana Souza", email="ana@example.com")
    vehicle = memory_db.add_vehicle(client.client_id)
    home = memory_db.add_address(client.client_id)
    return client, vehicle, home


def pickup_body(client, vehicle, home, desired_date="2025-09-10") -> dict:
    return {
        "vehicle_id": str(vehicle.vehicle_id),
        "client_id": str(client.client_id),
        "collection_address_id": str(home.address_id),
        "desired_date": desired_date,
    }


class TestAppFactory:
    def test_create_app_returns_fastapi_instance(self):
        assert isinstance(create_app(), FastAPI)

    def test_create_app_docs_url(self):
        app = create_app()

        assert app.docs_url == "/api/docs"
        assert app.openapi_url == "/api/openapi.json"

    @pytest.mark.asyncio
    async def test_health(self, api_client: AsyncClient):
        response = await api_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_openapi_lists_namespaces(self, api_client: AsyncClient):
        response = await api_client.get("/api/openapi.json")

        paths = response.json()["paths"]
        assert f"{BASE}/proposals" in paths
        assert "/api/clients/{client_id}/delivery-summary" in paths


class TestRequestID:
    @pytest.mark.asyncio
    async def test_response_includes_request_id_header(self, api_client: AsyncClient):
        response = await api_client.get("/health")

        assert uuid.UUID(response.headers["X-Request-ID"])

    @pytest.mark.asyncio
    async def test_provided_request_id_is_preserved(self, api_client: AsyncClient):
        response = await api_client.get("/health", headers={"X-Request-ID": "gw-1234"})

        assert response.headers["X-Request-ID"] == "gw-1234"

    @pytest.mark.asyncio
    async def test_error_envelope_carries_request_id(self, api_client: AsyncClient):
        response = await api_client.get(
            f"{BASE}/{uuid.uuid4()}",
            headers={**as_admin(), "X-Request-ID": "gw-5678"},
        )

        assert response.status_code == 404
        assert response.json()["request_id"] == "gw-5678"


class TestErrorHelpers:
    def test_build_error_response_basic(self):
        response = build_error_response("invalid_transition", "Nope", 409)

        assert response.status_code == 409

    def test_authentication_error(self):
        error = AuthenticationError()

        assert error.status_code == 401
        assert error.error == "unauthorized"

    def test_status_mapping(self):
        assert ERROR_STATUS_CODES["validation_error"] == 400
        assert ERROR_STATUS_CODES["pricing_required"] == 422
        assert ERROR_STATUS_CODES["invalid_transition"] == 409
        assert ERROR_STATUS_CODES["concurrent_modification"] == 409
        assert ERROR_STATUS_CODES["actor_not_permitted"] == 403


class TestActorHeaders:
    @pytest.mark.asyncio
    async def test_missing_headers(self, api_client: AsyncClient):
        response = await api_client.get(f"{BASE}/{uuid.uuid4()}")

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_malformed_actor_id(self, api_client: AsyncClient):
        response = await api_client.get(
            f"{BASE}/{uuid.uuid4()}",
            headers={"X-Actor-Id": "admin", "X-Actor-Role": "admin"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_role(self, api_client: AsyncClient):
        response = await api_client.get(
            f"{BASE}/{uuid.uuid4()}",
            headers={"X-Actor-Id": str(uuid.uuid4()), "X-Actor-Role": "driver"},
        )

        assert response.status_code == 401
        assert "admin" in response.json()["detail"]["allowed"]

    @pytest.mark.asyncio
    async def test_role_is_case_insensitive(self, api_client: AsyncClient):
        response = await api_client.get(
            f"{BASE}/{uuid.uuid4()}",
            headers={"X-Actor-Id": str(uuid.uuid4()), "X-Actor-Role": "ADMIN"},
        )

        assert response.status_code == 404


class TestNegotiationEndpoints:
    @pytest.mark.asyncio
    async def test_pickup_proposal_requires_fee(self, api_client, memory_db, seeded):
        client, vehicle, home = seeded

        response = await api_client.post(
            f"{BASE}/proposals",
            json=pickup_body(client, vehicle, home),
            headers=as_client(client.client_id),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "pricing_required"
        assert body["detail"]["address_id"] == str(home.address_id)
        assert memory_db.requests == {}

    @pytest.mark.asyncio
    async def test_propose_approve_schedule(
        self, api_client, memory_db, recording_publisher, seeded
    ):
        client, vehicle, home = seeded
        memory_db.add_collection_fee(client.client_id, home.address_id, "50.00")

        proposed = await api_client.post(
            f"{BASE}/proposals",
            json=pickup_body(client, vehicle, home),
            headers=as_client(client.client_id),
        )
        assert proposed.status_code == 200
        proposal = proposed.json()
        assert proposal["created"] is True
        assert proposal["status"] == "requested"
        request_id = proposal["request_id"]

        approved = await api_client.post(f"{BASE}/{request_id}/approve", headers=as_admin())
        assert approved.status_code == 200
        assert approved.json()["new_status"] == "approved"

        scheduled = await api_client.post(f"{BASE}/{request_id}/schedule", headers=as_admin())
        assert scheduled.status_code == 200
        assert scheduled.json()["window_start"].startswith("2025-09-10T09:00:00")

        detail = await api_client.get(f"{BASE}/{request_id}", headers=as_client(client.client_id))
        assert detail.status_code == 200
        body = detail.json()
        assert body["kind"] == "pickup"
        assert body["proposed_by"] == "client"
        assert body["vehicle_status"] == "Awaiting Pickup"
        assert Decimal(body["fee_amount"]) == Decimal("50.00")
        assert len(recording_publisher.published) == 3

    @pytest.mark.asyncio
    async def test_self_approval_is_refused(self, api_client, memory_db, seeded):
        client, vehicle, _ = seeded
        request = memory_db.add_request(vehicle_id=vehicle.vehicle_id, client_id=client.client_id)

        response = await api_client.post(
            f"{BASE}/{request.request_id}/approve", headers=as_client(client.client_id)
        )

        assert response.status_code == 422
        assert response.json()["error"] == "self_approval"

    @pytest.mark.asyncio
    async def test_reject_with_notes(self, api_client, memory_db, seeded):
        client, vehicle, _ = seeded
        request = memory_db.add_request(vehicle_id=vehicle.vehicle_id, client_id=client.client_id)

        response = await api_client.post(
            f"{BASE}/{request.request_id}/reject",
            json={"notes": "Workshop closed that day"},
            headers=as_admin(),
        )

        assert response.status_code == 200
        assert response.json()["new_status"] == "rejected"
        assert memory_db.events_for(request.request_id)[0].notes == "Workshop closed that day"

    @pytest.mark.asyncio
    async def test_invalid_transition_is_conflict(self, api_client, memory_db, seeded):
        client, vehicle, _ = seeded
        request = memory_db.add_request(
            vehicle_id=vehicle.vehicle_id,
            client_id=client.client_id,
            status=DeliveryRequestStatus.CANCELED,
        )

        response = await api_client.post(f"{BASE}/{request.request_id}/approve", headers=as_admin())

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "invalid_transition"
        assert body["detail"]["status"] == "canceled"

    @pytest.mark.asyncio
    async def test_delivery_priced_on_approval_then_accepted(self, api_client, memory_db, seeded):
        client, vehicle, home = seeded
        proposed = await api_client.post(
            f"{BASE}/proposals",
            json={
                "vehicle_id": str(vehicle.vehicle_id),
                "client_id": str(client.client_id),
                "address_id": str(home.address_id),
                "desired_date": "2025-09-15",
            },
            headers=as_client(client.client_id),
        )
        request_id = proposed.json()["request_id"]

        unpriced = await api_client.post(f"{BASE}/{request_id}/approve", headers=as_admin())
        assert unpriced.status_code == 422
        assert unpriced.json()["error"] == "pricing_required"

        approved = await api_client.post(
            f"{BASE}/{request_id}/approve", json={"fee_amount": "120.00"}, headers=as_admin()
        )
        assert approved.status_code == 200

        accepted = await api_client.post(
            f"{BASE}/{request_id}/schedule", headers=as_client(client.client_id)
        )
        assert accepted.status_code == 200

        detail = (
            await api_client.get(f"{BASE}/{request_id}", headers=as_client(client.client_id))
        ).json()
        assert detail["status"] == "scheduled"
        assert detail["vehicle_status"] == "Awaiting Delivery"
        assert Decimal(detail["fee_amount"]) == Decimal("120.00")
        assert detail["approved_by"] is not None

    @pytest.mark.asyncio
    async def test_malformed_body(self, api_client, seeded):
        client, vehicle, home = seeded
        body = {**pickup_body(client, vehicle, home), "desired_date": "10/09/2025"}

        response = await api_client.post(
            f"{BASE}/proposals", json=body, headers=as_client(client.client_id)
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_unknown_body_field(self, api_client, seeded):
        client, vehicle, home = seeded
        body = {**pickup_body(client, vehicle, home), "status": "approved"}

        response = await api_client.post(
            f"{BASE}/proposals", json=body, headers=as_client(client.client_id)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_half_window_is_rejected(self, api_client, memory_db, seeded):
        client, vehicle, _ = seeded
        request = memory_db.add_request(
            vehicle_id=vehicle.vehicle_id,
            client_id=client.client_id,
            status=DeliveryRequestStatus.APPROVED,
        )

        response = await api_client.post(
            f"{BASE}/{request.request_id}/schedule",
            json={"window_start": "2025-09-10T09:00:00Z"},
            headers=as_admin(),
        )

        assert response.status_code == 400
        assert memory_db.requests[request.request_id].status == DeliveryRequestStatus.APPROVED


class TestExecutionEndpoints:
    @pytest.mark.asyncio
    async def test_in_transit_then_delivered(self, api_client, memory_db, seeded):
        client, vehicle, home = seeded
        request = memory_db.add_request(
            vehicle_id=vehicle.vehicle_id,
            client_id=client.client_id,
            address_id=home.address_id,
            status=DeliveryRequestStatus.SCHEDULED,
        )

        moving = await api_client.post(
            f"{BASE}/{request.request_id}/in-transit", headers=as_specialist()
        )
        done = await api_client.post(
            f"{BASE}/{request.request_id}/delivered", headers=as_specialist()
        )

        assert moving.json()["new_status"] == "in_transit"
        assert done.status_code == 200
        assert done.json()["vehicle_status"] == "Vehicle Delivered"

    @pytest.mark.asyncio
    async def test_client_cannot_mark_delivered(self, api_client, memory_db, seeded):
        client, vehicle, _ = seeded
        request = memory_db.add_request(
            vehicle_id=vehicle.vehicle_id,
            client_id=client.client_id,
            status=DeliveryRequestStatus.SCHEDULED,
        )

        response = await api_client.post(
            f"{BASE}/{request.request_id}/delivered", headers=as_client(client.client_id)
        )

        assert response.status_code == 403
        assert response.json()["error"] == "actor_not_permitted"

    @pytest.mark.asyncio
    async def test_cancel_without_body(self, api_client, memory_db, seeded):
        client, vehicle, _ = seeded
        request = memory_db.add_request(vehicle_id=vehicle.vehicle_id, client_id=client.client_id)

        response = await api_client.post(
            f"{BASE}/{request.request_id}/cancel", headers=as_client(client.client_id)
        )

        assert response.status_code == 200
        assert response.json()["new_status"] == "canceled"


class TestReadEndpoints:
    @pytest.mark.asyncio
    async def test_events_oldest_first(self, api_client, memory_db, seeded):
        client, vehicle, _ = seeded
        request = memory_db.add_request(vehicle_id=vehicle.vehicle_id, client_id=client.client_id)
        await api_client.post(f"{BASE}/{request.request_id}/approve", headers=as_admin())
        await api_client.post(f"{BASE}/{request.request_id}/schedule", headers=as_admin())

        response = await api_client.get(
            f"{BASE}/{request.request_id}/events", headers=as_client(client.client_id)
        )

        assert response.status_code == 200
        items = response.json()["items"]
        assert [i["event_type"] for i in items] == ["approved", "scheduled"]
        assert items[0]["status_from"] == "requested"
        assert items[1]["status_from"] == "approved"
        assert items[0]["actor_role"] == "admin"

    @pytest.mark.asyncio
    async def test_client_cannot_read_other_clients_request(self, api_client, memory_db, seeded):
        client, vehicle, _ = seeded
        request = memory_db.add_request(vehicle_id=vehicle.vehicle_id, client_id=client.client_id)
        stranger = memory_db.add_client(full_name="Bruno Lima")

        detail = await api_client.get(
            f"{BASE}/{request.request_id}", headers=as_client(stranger.client_id)
        )
        events = await api_client.get(
            f"{BASE}/{request.request_id}/events", headers=as_client(stranger.client_id)
        )

        assert detail.status_code == 403
        assert events.status_code == 403

    @pytest.mark.asyncio
    async def test_scheduled_list_scoped_to_client(self, api_client, memory_db, seeded):
        client, vehicle, home = seeded
        other = memory_db.add_client(full_name="Carla Dias")
        for owner, car in ((client, vehicle), (other, memory_db.add_vehicle(other.client_id))):
            memory_db.add_request(
                vehicle_id=car.vehicle_id,
                client_id=owner.client_id,
                collection_address_id=home.address_id,
                status=DeliveryRequestStatus.SCHEDULED,
            )

        mine = await api_client.get(f"{BASE}/scheduled", headers=as_client(client.client_id))
        everyone = await api_client.get(f"{BASE}/scheduled", headers=as_specialist())
        snooping = await api_client.get(
            f"{BASE}/scheduled",
            params={"client_id": str(other.client_id)},
            headers=as_client(client.client_id),
        )

        assert mine.json()["total"] == 1
        assert mine.json()["items"][0]["client_name"] == "Ana Souza"
        assert everyone.json()["total"] == 2
        assert snooping.status_code == 403

    @pytest.mark.asyncio
    async def test_client_summary(self, api_client, memory_db, seeded):
        client, vehicle, home = seeded
        memory_db.add_request(
            vehicle_id=vehicle.vehicle_id,
            client_id=client.client_id,
            collection_address_id=home.address_id,
            fee_amount=Decimal("50.00"),
        )

        response = await api_client.get(
            f"/api/clients/{client.client_id}/delivery-summary",
            headers=as_client(client.client_id),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["client_id"] == str(client.client_id)
        group = body["pending_approval"][0]
        assert group["vehicle_count"] == 1
        assert group["address_label"] == "Rua das Flores, 120 - Curitiba"
        assert body["negotiations"][0]["entries"][0]["proposed_by"] == "client"
        assert body["scheduled"] == []

    @pytest.mark.asyncio
    async def test_client_summary_of_another_client(self, api_client, memory_db, seeded):
        client, _, _ = seeded
        stranger = memory_db.add_client(full_name="Bruno Lima")

        response = await api_client.get(
            f"/api/clients/{client.client_id}/delivery-summary",
            headers=as_client(stranger.client_id),
        )

        assert response.status_code == 403
