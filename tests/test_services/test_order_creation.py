"""Tests for checkout validation, pricing and persistence."""

from decimal import Decimal

import pytest

from fulfillment.errors import (
    InvalidQuantity,
    ItemNotFound,
    ItemUnavailable,
    MissingField,
    TotalMismatch,
)
from fulfillment.models.catalog import CatalogItem
from fulfillment.models.order import (
    CreateOrderRequest,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from fulfillment.services.broadcaster import (
    ADMIN_ROOM,
    NEW_ORDER,
    ORDER_STATUS_UPDATED,
    ORDER_UPDATED,
    RoomBroadcaster,
    order_room,
)
from fulfillment.services.catalog import CatalogGateway
from fulfillment.services.order_engine import OrderEngine, generate_order_number
from fulfillment.state.orders import OrderStore
from fulfillment.utils.logging import setup_logging


def make_request(order_payload: dict, **overrides) -> CreateOrderRequest:
    return CreateOrderRequest.model_validate({**order_payload, **overrides})


@pytest.mark.asyncio
async def test_create_order_prices_from_catalog(
    engine: OrderEngine,
    order_store: OrderStore,
    order_request: CreateOrderRequest,
) -> None:
    """Two pizzas and a burger plus delivery are priced from the catalog."""
    order = await engine.create_order(order_request)

    assert order.subtotal == Decimal("34.97")
    assert order.delivery_fee == Decimal("2.99")
    assert order.total_amount == Decimal("37.96")
    assert order.status == OrderStatus.ORDER_RECEIVED
    assert order.payment_method == PaymentMethod.CASH
    assert order.payment_status == PaymentStatus.PENDING
    assert order.customer.email == "N/A"

    pizza, burger = order.items
    assert (pizza.name, pizza.quantity, pizza.unit_price) == ("Pepperoni Pizza", 2, Decimal("12.99"))
    assert pizza.line_total == Decimal("25.98")
    assert (burger.name, burger.quantity, burger.line_total) == ("Cheeseburger", 1, Decimal("8.99"))

    stored = await order_store.get(order.id)
    assert stored is not None
    assert stored.total_amount == Decimal("37.96")
    assert stored.order_number == order.order_number


@pytest.mark.asyncio
async def test_totals_are_consistent(engine: OrderEngine, order_request: CreateOrderRequest) -> None:
    order = await engine.create_order(order_request)

    assert sum(item.line_total for item in order.items) == order.subtotal
    assert order.subtotal + order.delivery_fee == order.total_amount
    for item in order.items:
        assert item.unit_price * item.quantity == item.line_total


@pytest.mark.asyncio
async def test_create_order_resolves_menu_item_display(
    engine: OrderEngine,
    order_request: CreateOrderRequest,
) -> None:
    order = await engine.create_order(order_request)

    pizza = order.items[0]
    assert pizza.menu_item is not None
    assert pizza.menu_item.id == "pizza"
    assert pizza.menu_item.category == "pizza"

    data = order.to_json_dict()
    assert data["totalAmount"] == 37.96
    assert data["items"][0]["menuItem"]["name"] == "Pepperoni Pizza"
    assert data["estimates"] == {"min": 45, "max": 55, "unit": "mins"}


@pytest.mark.asyncio
async def test_matching_client_total_is_accepted(engine: OrderEngine, order_payload: dict) -> None:
    order = await engine.create_order(make_request(order_payload, totalAmount="37.96"))
    assert order.total_amount == Decimal("37.96")


@pytest.mark.asyncio
async def test_client_total_within_a_cent_is_accepted(
    engine: OrderEngine,
    order_payload: dict,
) -> None:
    order = await engine.create_order(make_request(order_payload, totalAmount="37.97"))
    assert order.total_amount == Decimal("37.96")


@pytest.mark.asyncio
async def test_total_mismatch_rejected(
    engine: OrderEngine,
    order_store: OrderStore,
    order_payload: dict,
) -> None:
    with pytest.raises(TotalMismatch) as exc_info:
        await engine.create_order(make_request(order_payload, totalAmount=999))

    assert "Calculated: 37.96" in exc_info.value.message
    assert "Provided: 999" in exc_info.value.message
    assert exc_info.value.details["subtotal"] == "34.97"
    assert await order_store.count() == 0


@pytest.mark.asyncio
async def test_unknown_item_rejected(
    engine: OrderEngine,
    order_store: OrderStore,
    order_payload: dict,
) -> None:
    request = make_request(order_payload, items=[{"menuItemId": "nonexistent", "quantity": 1}])

    with pytest.raises(ItemNotFound) as exc_info:
        await engine.create_order(request)

    assert exc_info.value.status_code == 400
    assert "nonexistent" in exc_info.value.message
    assert await order_store.count() == 0


@pytest.mark.asyncio
async def test_unavailable_item_rejected(engine: OrderEngine, order_payload: dict) -> None:
    request = make_request(order_payload, items=[{"menuItemId": "soup", "quantity": 1}])

    with pytest.raises(ItemUnavailable) as exc_info:
        await engine.create_order(request)

    assert "Tomato Soup" in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -2, None])
async def test_invalid_quantity_rejected(
    engine: OrderEngine,
    order_payload: dict,
    quantity: int | None,
) -> None:
    request = make_request(order_payload, items=[{"menuItemId": "pizza", "quantity": quantity}])

    with pytest.raises(InvalidQuantity):
        await engine.create_order(request)


@pytest.mark.asyncio
async def test_one_bad_line_rejects_whole_order(
    engine: OrderEngine,
    order_store: OrderStore,
    broadcaster: RoomBroadcaster,
    order_payload: dict,
) -> None:
    admin = broadcaster.connect()
    broadcaster.join(admin, ADMIN_ROOM)
    request = make_request(
        order_payload,
        items=[
            {"menuItemId": "pizza", "quantity": 1},
            {"menuItemId": "missing", "quantity": 1},
        ],
    )

    with pytest.raises(ItemNotFound):
        await engine.create_order(request)

    assert await order_store.count() == 0
    assert admin.pending() == []


@pytest.mark.asyncio
async def test_missing_customer_fields_rejected(engine: OrderEngine, order_payload: dict) -> None:
    request = make_request(order_payload, customer={"name": "Jane", "address": "  "})

    with pytest.raises(MissingField) as exc_info:
        await engine.create_order(request)

    assert exc_info.value.details["fields"] == ["customer.address", "customer.phone"]


@pytest.mark.asyncio
async def test_missing_customer_rejected(engine: OrderEngine, order_payload: dict) -> None:
    request = make_request(order_payload)
    request.customer = None

    with pytest.raises(MissingField):
        await engine.create_order(request)


@pytest.mark.asyncio
async def test_empty_items_rejected(engine: OrderEngine, order_payload: dict) -> None:
    with pytest.raises(MissingField) as exc_info:
        await engine.create_order(make_request(order_payload, items=[]))

    assert exc_info.value.details["fields"] == ["items"]


@pytest.mark.asyncio
async def test_line_without_item_id_rejected(engine: OrderEngine, order_payload: dict) -> None:
    with pytest.raises(MissingField):
        await engine.create_order(make_request(order_payload, items=[{"quantity": 1}]))


@pytest.mark.asyncio
async def test_catalog_item_id_alias_accepted(engine: OrderEngine, order_payload: dict) -> None:
    request = make_request(order_payload, items=[{"catalogItemId": "burger", "quantity": 3}])

    order = await engine.create_order(request)

    assert order.subtotal == Decimal("26.97")


@pytest.mark.asyncio
async def test_customer_details_are_trimmed(engine: OrderEngine, order_payload: dict) -> None:
    request = make_request(
        order_payload,
        customer={
            "name": "  Jane Doe ",
            "address": "12 Market Street",
            "phone": " 555-0100",
            "email": "jane@example.com",
        },
        paymentMethod="card",
        deliveryInstructions="Ring twice",
    )

    order = await engine.create_order(request)

    assert order.customer.name == "Jane Doe"
    assert order.customer.phone == "555-0100"
    assert order.customer.email == "jane@example.com"
    assert order.payment_method == PaymentMethod.CARD
    assert order.delivery_instructions == "Ring twice"


@pytest.mark.asyncio
async def test_new_order_announced_to_admin_room_only(
    engine: OrderEngine,
    broadcaster: RoomBroadcaster,
    order_request: CreateOrderRequest,
) -> None:
    admin = broadcaster.connect()
    broadcaster.join(admin, ADMIN_ROOM)
    tracker = broadcaster.connect()
    broadcaster.join(tracker, order_room("something-else"))

    order = await engine.create_order(order_request)

    messages = admin.pending()
    assert len(messages) == 1
    assert messages[0]["event"] == NEW_ORDER
    assert messages[0]["data"]["id"] == order.id
    assert messages[0]["data"]["orderNumber"] == order.order_number
    assert tracker.pending() == []


@pytest.mark.asyncio
async def test_broadcast_failure_does_not_fail_creation(
    order_store: OrderStore,
    catalog: CatalogGateway,
    order_request: CreateOrderRequest,
) -> None:
    class BrokenBroadcaster(RoomBroadcaster):
        def publish(self, room, event, payload):
            raise RuntimeError("socket layer down")

    engine = OrderEngine(order_store, catalog, BrokenBroadcaster(queue_size=4))

    order = await engine.create_order(order_request)

    assert await order_store.get(order.id) is not None


@pytest.mark.asyncio
async def test_price_snapshot_survives_catalog_change(
    engine: OrderEngine,
    catalog: CatalogGateway,
    order_request: CreateOrderRequest,
) -> None:
    order = await engine.create_order(order_request)

    await catalog.upsert_item(
        CatalogItem(id="pizza", name="Pepperoni Pizza XL", price=Decimal("15.49"), category="pizza")
    )
    fetched = await engine.get_order(order.id)

    pizza = fetched.items[0]
    assert pizza.unit_price == Decimal("12.99")
    assert pizza.name == "Pepperoni Pizza"
    assert pizza.menu_item is not None
    assert pizza.menu_item.price == Decimal("15.49")
    assert fetched.total_amount == Decimal("37.96")


def test_order_number_format(clock) -> None:
    number = generate_order_number(clock())

    prefix, millis, suffix = number.split("-")
    assert prefix == "ORD"
    assert millis == str(int(clock().timestamp() * 1000))
    assert 0 <= int(suffix) <= 999


@pytest.mark.asyncio
async def test_lifecycle_announced_under_service_logging(
    engine: OrderEngine,
    broadcaster: RoomBroadcaster,
    order_store: OrderStore,
    order_request: CreateOrderRequest,
) -> None:
    setup_logging()
    admin = broadcaster.connect()
    broadcaster.join(admin, ADMIN_ROOM)

    order = await engine.create_order(order_request)
    tracker = broadcaster.connect()
    broadcaster.join(tracker, order_room(order.id))
    await engine.update_status(order.id, "Preparing")
    await engine.cancel_order(order.id)

    assert (await order_store.get(order.id)).status == OrderStatus.CANCELLED
    assert [m["event"] for m in admin.pending()] == [NEW_ORDER, ORDER_UPDATED, ORDER_UPDATED]
    assert [m["event"] for m in tracker.pending()] == [ORDER_STATUS_UPDATED] * 2
