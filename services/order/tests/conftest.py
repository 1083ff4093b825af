"""
Test fixtures for the order service.

The user service and the mailer are replaced by an httpx.MockTransport, and the
order store by an in-memory double, so no network or database is needed.
"""

import asyncio
import json
from datetime import datetime, timezone
from uuid import UUID, uuid4

import httpx
import pytest
from fastapi.testclient import TestClient

from order_service.config import Settings
from order_service.errors import StorageFailure
from order_service.main import app, get_order_store, get_orchestrator
from order_service.models import Order, OrderRequest
from order_service.orchestrator import OrderOrchestrator


class FakeServices:
    """Stands in for both http://localhost/user/{id} and http://mailer.com/send."""

    def __init__(self):
        self.missing_users: set[int] = set()
        self.user_delay = 0.0
        # Scripted (status, json_body, headers) replies, consumed before the default reply
        self.user_script: list[tuple[int, dict | None, dict]] = []
        self.user_calls: list[int] = []
        self.user_error: Exception | None = None

        self.mailer_status = 202
        self.mailer_down = False
        self.emails: list[dict] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "mailer.com" and request.url.path == "/send":
            if self.mailer_down:
                raise httpx.ConnectError("Connection refused", request=request)
            self.emails.append(json.loads(request.content))
            return httpx.Response(self.mailer_status)

        if request.url.path.startswith("/user/"):
            user_id = int(request.url.path.rsplit("/", 1)[1])
            self.user_calls.append(user_id)
            if self.user_error is not None:
                raise self.user_error
            if self.user_delay:
                await asyncio.sleep(self.user_delay)
            if self.user_script:
                status, body, headers = self.user_script.pop(0)
                return httpx.Response(status, json=body, headers=headers)
            if user_id in self.missing_users:
                return httpx.Response(404)
            return httpx.Response(200, json={"id": user_id, "name": "John"})

        return httpx.Response(404)


class InMemoryOrderStore:
    def __init__(self):
        self.orders: dict[UUID, Order] = {}
        self.fail_with: Exception | None = None

    async def add_order(self, request: OrderRequest) -> Order:
        if self.fail_with is not None:
            raise self.fail_with
        order = Order(
            id=uuid4(),
            user_id=request.user_id,
            product_id=request.product_id,
            mode=request.mode,
            created_at=datetime.now(timezone.utc),
        )
        self.orders[order.id] = order
        return order

    async def get_order(self, order_id: UUID) -> Order | None:
        if self.fail_with is not None:
            raise StorageFailure("store is down")
        return self.orders.get(order_id)


def make_settings(**overrides) -> Settings:
    values = {
        "user_service_url": "http://localhost",
        "mailer_url": "http://mailer.com",
        "http_timeout": 2000,
        "send_mails": True,
        "store_manager_email": "store-manager@shop.com",
        "admin_email": "admin@shop.com",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def services():
    return FakeServices()


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
async def http_client(services):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(services.handler)
    ) as client:
        yield client


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def orchestrator(settings, http_client, store):
    return OrderOrchestrator.from_settings(settings, http_client, store)


@pytest.fixture
def build_orchestrator(http_client, store):
    def _build(**overrides) -> OrderOrchestrator:
        return OrderOrchestrator.from_settings(
            make_settings(**overrides), http_client, store
        )

    return _build


@pytest.fixture
def client(orchestrator, store):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_order_store] = lambda: store
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
