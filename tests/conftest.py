"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-signing-tokens-0123456789")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fulfillment.api.routes import get_admin_queries, get_order_engine
from fulfillment.main import app
from fulfillment.models.catalog import CatalogItem
from fulfillment.models.order import CreateOrderRequest
from fulfillment.security import create_access_token
from fulfillment.services.admin import AdminQueryService
from fulfillment.services.broadcaster import RoomBroadcaster, get_broadcaster
from fulfillment.services.catalog import CatalogGateway
from fulfillment.services.order_engine import OrderEngine
from fulfillment.state.manager import StateManager
from fulfillment.state.orders import OrderStore


class FrozenClock:
    """Deterministic clock shared by the engine and the admin queries."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now = self.now + timedelta(minutes=minutes)


@pytest.fixture
def clock() -> FrozenClock:
    # A Wednesday
    return FrozenClock(datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def state_manager() -> AsyncGenerator[StateManager, None]:
    """Create a state manager backed by an in-memory Redis."""
    manager = StateManager(redis_client=fakeredis.FakeAsyncRedis(decode_responses=True))
    yield manager
    await manager.disconnect()


@pytest_asyncio.fixture
async def order_store(state_manager: StateManager) -> OrderStore:
    return OrderStore(state_manager)


@pytest_asyncio.fixture
async def catalog(state_manager: StateManager) -> CatalogGateway:
    """Catalog seeded with a few menu items."""
    gateway = CatalogGateway(state_manager)
    for item in (
        CatalogItem(id="pizza", name="Pepperoni Pizza", price=Decimal("12.99"), category="pizza"),
        CatalogItem(id="burger", name="Cheeseburger", price=Decimal("8.99"), category="burgers"),
        CatalogItem(id="soup", name="Tomato Soup", price=Decimal("5.49"), available=False),
    ):
        await gateway.upsert_item(item)
    return gateway


@pytest.fixture
def broadcaster() -> RoomBroadcaster:
    return RoomBroadcaster(queue_size=32)


@pytest_asyncio.fixture
async def engine(
    order_store: OrderStore,
    catalog: CatalogGateway,
    broadcaster: RoomBroadcaster,
    clock: FrozenClock,
) -> OrderEngine:
    return OrderEngine(order_store, catalog, broadcaster, clock=clock)


@pytest_asyncio.fixture
async def admin_queries(order_store: OrderStore, clock: FrozenClock) -> AdminQueryService:
    return AdminQueryService(order_store, clock=clock)


@pytest_asyncio.fixture
async def test_client(
    engine: OrderEngine,
    admin_queries: AdminQueryService,
    broadcaster: RoomBroadcaster,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client wired to the in-memory engine."""
    app.dependency_overrides[get_order_engine] = lambda: engine
    app.dependency_overrides[get_admin_queries] = lambda: admin_queries
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_token() -> str:
    return create_access_token("admin-1", role="admin")


@pytest.fixture
def customer_token() -> str:
    return create_access_token("user-1", role="customer")


# Sample data fixtures


@pytest.fixture
def order_payload() -> dict:
    """Two pizzas and a burger with a delivery fee, as a client would send it."""
    return {
        "customer": {
            "name": "Jane Doe",
            "address": "12 Market Street",
            "phone": "555-0100",
        },
        "items": [
            {"menuItemId": "pizza", "quantity": 2},
            {"menuItemId": "burger", "quantity": 1},
        ],
        "deliveryFee": 2.99,
    }


@pytest.fixture
def order_request(order_payload: dict) -> CreateOrderRequest:
    return CreateOrderRequest.model_validate(order_payload)
