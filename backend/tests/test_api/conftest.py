"""
Shared pytest fixtures for API tests.

Each test gets a fresh in-memory registry seeded with the default roster
and a mocked delivery gateway, wired into the app through
dependency_overrides.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from main import app
from coursepush.services.push.credentials import get_credential_selector
from coursepush.services.push.dispatch_service import PushDispatchService, get_push_dispatch_service
from coursepush.services.push.gateway import DeliveryGateway
from coursepush.services.push.ingestion import TokenIngestionService, get_token_ingestion_service
from coursepush.services.push.models import DeliveryResult, DeliveryStatus, TopicTarget
from coursepush.services.push.registry import InMemoryDeviceRegistry, get_device_registry, load_roster
from coursepush.services.push.resolver import RecipientResolver


@pytest.fixture
def api_registry():
    """Registry provisioned with the built-in roster."""
    return InMemoryDeviceRegistry.from_roster(load_roster(None))


@pytest.fixture
def api_gateway():
    """Gateway mock where every delivery succeeds."""
    gateway = MagicMock(spec=DeliveryGateway)

    async def send_one(target, notification, data, credential):
        token = target.topic if isinstance(target, TopicTarget) else target.token
        return DeliveryResult(
            device_token=token, success=True,
            status=DeliveryStatus.SUCCESS, message_id="projects/test/messages/1",
        )

    async def send_multicast(tokens, notification, data, credential):
        return [
            DeliveryResult(device_token=t, success=True, status=DeliveryStatus.SUCCESS, message_id=f"m-{t}")
            for t in tokens
        ]

    gateway.send_one = AsyncMock(side_effect=send_one)
    gateway.send_multicast = AsyncMock(side_effect=send_multicast)
    gateway.close = AsyncMock()
    return gateway


@pytest.fixture
def client(api_registry, api_gateway, selector):
    """TestClient with push services replaced by test instances."""
    dispatcher = PushDispatchService(
        selector=selector,
        resolver=RecipientResolver(api_registry),
        gateway=api_gateway,
    )
    ingestion = TokenIngestionService(api_registry)

    app.dependency_overrides[get_push_dispatch_service] = lambda: dispatcher
    app.dependency_overrides[get_token_ingestion_service] = lambda: ingestion
    app.dependency_overrides[get_device_registry] = lambda: api_registry
    app.dependency_overrides[get_credential_selector] = lambda: selector

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register a device through the API."""
    def _register(student_id, token, partner="poc1", environment="qa", version="1.0.0"):
        response = client.post("/api/token", json={
            "studentId": student_id,
            "token": token,
            "partner": partner,
            "environment": environment,
            "version": version,
        })
        assert response.status_code == 200, response.text
        return response.json()
    return _register
