"""Order Engine - validates, prices and creates orders and drives their status."""

import asyncio
import math
import random
import weakref
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from fulfillment.config import Settings, get_settings
from fulfillment.errors import (
    AlreadyCancelled,
    DuplicateOrderNumber,
    InvalidQuantity,
    InvalidQuery,
    InvalidStatus,
    InvalidTransition,
    ItemNotFound,
    ItemUnavailable,
    MissingField,
    OrderNotFound,
    StoreUnavailable,
    TotalMismatch,
)
from fulfillment.models.base import to_cents
from fulfillment.models.catalog import CatalogItem, CatalogItemSummary
from fulfillment.models.listing import OrderPage, Pagination, StatusCounts
from fulfillment.models.order import (
    CreateOrderRequest,
    CustomerSnapshot,
    Order,
    OrderItem,
    OrderItemView,
    OrderStatus,
    OrderView,
    PaymentMethod,
    TimeEstimate,
    utcnow,
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
from fulfillment.state.orders import OrderStore
from fulfillment.state.workflow import OrderTransitions
from fulfillment.utils.logging import get_logger
from fulfillment.utils.tracing import OperationTracer

logger = get_logger(__name__)

TOTAL_TOLERANCE = Decimal("0.01")
ORDER_NUMBER_ATTEMPTS = 5
REQUIRED_CUSTOMER_FIELDS = ("name", "address", "phone")


def generate_order_number(now: datetime) -> str:
    """Human-facing order number, e.g. ``ORD-1718000000000-417``."""
    return f"ORD-{int(now.timestamp() * 1000)}-{random.randint(0, 999)}"


class OrderEngine:
    """
    Order engine that owns the order lifecycle.

    Responsibilities:
    - Validate checkout requests and price them from the catalog
    - Persist new orders through the order store
    - Enforce the status state machine
    - Compute presentation-only delivery time estimates
    - Notify realtime subscribers of committed changes
    """

    def __init__(
        self,
        store: OrderStore,
        catalog: CatalogGateway,
        broadcaster: RoomBroadcaster,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.catalog = catalog
        self.broadcaster = broadcaster
        self.settings = settings or get_settings()
        self.clock = clock
        self._order_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # Creation

    async def create_order(self, request: CreateOrderRequest) -> OrderView:
        """
        Validate, price and persist a new order.

        Every line must resolve to an available catalog item; any failure
        aborts the whole order and nothing is written.

        Args:
            request: Checkout payload from the client

        Returns:
            The persisted order with catalog display fields resolved
        """
        customer = request.customer
        missing = [
            field
            for field in REQUIRED_CUSTOMER_FIELDS
            if customer is None or not (getattr(customer, field) or "").strip()
        ]
        if missing:
            raise MissingField(
                "Customer name, address, and phone are required",
                fields=[f"customer.{field}" for field in missing],
            )

        if not request.items:
            raise MissingField("Order must contain at least one item", fields=["items"])

        for position, line in enumerate(request.items, start=1):
            if not line.menu_item_id:
                raise MissingField(
                    f"Item {position} is missing menuItemId",
                    fields=[f"items.{position - 1}.menuItemId"],
                )

        tracer = OperationTracer("create_order", lines=len(request.items))

        with tracer.span("catalog_lookup"):
            catalog = await self.catalog.get_items([line.menu_item_id for line in request.items])

        subtotal = Decimal("0.00")
        order_items: list[OrderItem] = []

        for line in request.items:
            item = catalog.get(line.menu_item_id)

            if item is None:
                raise ItemNotFound(
                    f"Menu item with ID {line.menu_item_id} not found",
                    menu_item_id=line.menu_item_id,
                )
            if not item.available:
                raise ItemUnavailable(
                    f'Item "{item.name}" is currently unavailable',
                    menu_item_id=item.id,
                )
            if line.quantity is None or line.quantity < 1:
                raise InvalidQuantity(
                    f'Invalid quantity for item "{item.name}"',
                    menu_item_id=item.id,
                )

            line_total = item.price * line.quantity
            subtotal += line_total
            order_items.append(
                OrderItem(
                    menu_item_id=item.id,
                    name=item.name,
                    quantity=line.quantity,
                    unit_price=item.price,
                    line_total=line_total,
                )
            )

        delivery_fee = to_cents(request.delivery_fee or Decimal("0.00"))
        total = subtotal + delivery_fee

        if request.total_amount is not None and abs(request.total_amount - total) > TOTAL_TOLERANCE:
            raise TotalMismatch(
                f"Total amount mismatch. Calculated: {total:.2f} "
                f"(Subtotal: {subtotal:.2f} + Delivery: {delivery_fee:.2f}), "
                f"Provided: {request.total_amount}",
                calculated=f"{total:.2f}",
                subtotal=f"{subtotal:.2f}",
                delivery_fee=f"{delivery_fee:.2f}",
                provided=str(request.total_amount),
            )

        now = self.clock()
        order = Order(
            order_number=generate_order_number(now),
            customer=CustomerSnapshot(
                name=customer.name.strip(),
                address=customer.address.strip(),
                phone=customer.phone.strip(),
                email=(customer.email or "").strip() or "N/A",
            ),
            items=order_items,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total_amount=total,
            payment_method=request.payment_method or PaymentMethod.CASH,
            delivery_instructions=request.delivery_instructions or "",
            order_date=now,
            created_at=now,
            updated_at=now,
        )

        with tracer.span("store_write"):
            for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
                try:
                    await self.store.create(order)
                    break
                except DuplicateOrderNumber:
                    if attempt == ORDER_NUMBER_ATTEMPTS:
                        raise
                    logger.warning("order_number_collision", order_number=order.order_number)
                    order.order_number = generate_order_number(now)

        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            items=len(order.items),
            total_amount=str(order.total_amount),
        )
        tracer.finish(order_id=order.id)

        view = self._build_view(order, catalog, now)
        self._notify(ADMIN_ROOM, NEW_ORDER, view.to_json_dict())
        return view

    # Queries

    async def get_order(self, order_id: str) -> OrderView:
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return (await self.to_views([order]))[0]

    async def list_orders(
        self,
        status: str | None = None,
        page: int = 1,
        limit: int | None = None,
        sort: str = "createdAt",
        order: str = "desc",
        include_stats: bool = True,
    ) -> OrderPage:
        """
        Get one page of orders plus per-status counts.

        The counts cover every order, not just the returned page.
        """
        status_filter = None if status in (None, "", "all") else self._parse_status(status)
        if page < 1:
            raise InvalidQuery("page must be 1 or greater")
        limit = limit if limit is not None else self.settings.default_page_limit
        if limit < 1:
            raise InvalidQuery("limit must be 1 or greater")
        limit = min(limit, self.settings.max_page_limit)
        if order not in ("asc", "desc"):
            raise InvalidQuery("order must be asc or desc")

        orders, total = await self.store.find(
            status=status_filter,
            page=page,
            limit=limit,
            sort=sort,
            descending=order == "desc",
        )

        stats = None
        if include_stats:
            stats = StatusCounts.from_counts(await self.store.count_by_status())

        return OrderPage(
            orders=await self.to_views(orders),
            pagination=Pagination(
                total=total,
                page=page,
                limit=limit,
                pages=math.ceil(total / limit),
            ),
            stats=stats,
        )

    async def recent_orders(self, limit: int | None = None) -> list[OrderView]:
        orders = await self.store.recent(limit or self.settings.recent_orders_limit)
        return await self.to_views(orders)

    def estimate(self, order: Order, now: datetime | None = None) -> TimeEstimate | None:
        """Remaining-time window for an open order; None once it is terminal."""
        if order.status.is_terminal:
            return None

        now = now or self.clock()
        elapsed_minutes = (now - order.created_at).total_seconds() / 60

        remaining = self.settings.estimate_base_minutes - elapsed_minutes
        remaining = max(remaining, self.settings.estimate_floor_minutes)
        remaining = min(remaining, self.settings.estimate_cap_minutes)

        return TimeEstimate(
            min=math.floor(remaining),
            max=math.floor(remaining + self.settings.estimate_window_minutes),
        )

    # Status transitions

    async def update_status(self, order_id: str, new_status: str | None) -> OrderView:
        """
        Move an order along the delivery pipeline.

        Requesting the status the order already has is a no-op: nothing is
        written and no events are sent.
        """
        target = self._parse_status(new_status)
        return await self._transition(order_id, target)

    async def cancel_order(self, order_id: str) -> OrderView:
        """Cancel an order, rejecting one that is already cancelled."""
        return await self._transition(order_id, OrderStatus.CANCELLED, reject_repeat=True)

    async def _transition(
        self,
        order_id: str,
        target: OrderStatus,
        reject_repeat: bool = False,
    ) -> OrderView:
        tracer = OperationTracer("update_status", order_id=order_id, target=target.value)
        now = self.clock()
        previous: dict[str, OrderStatus] = {}

        def apply(order: Order) -> Order | None:
            previous["status"] = order.status

            if order.status == target:
                if reject_repeat:
                    raise AlreadyCancelled("Order is already cancelled", order_id=order_id)
                return None

            if not OrderTransitions.can_transition(order.status, target):
                allowed = ", ".join(s.value for s in OrderTransitions.allowed_from(order.status))
                raise InvalidTransition(
                    f"Cannot change status from {order.status.value} to {target.value}",
                    current=order.status.value,
                    requested=target.value,
                    allowed=allowed or "none",
                )

            order.apply_status(target, now)
            return order

        # Line items are immutable. Nothing may await between commit and notify
        stored = await self.store.get(order_id)
        if stored is None:
            raise OrderNotFound(order_id)
        with tracer.span("catalog_lookup"):
            catalog = await self._resolve_catalog([item.menu_item_id for item in stored.items])

        async with self._order_lock(order_id):
            with tracer.span("store_update"):
                order, changed = await self.store.update(order_id, apply)

            view = self._build_view(order, catalog, now)
            tracer.finish(changed=changed)

            if not changed:
                logger.info("order_status_unchanged", order_id=order_id, status=target.value)
                return view

            logger.info(
                "order_status_updated",
                order_id=order_id,
                order_number=order.order_number,
                from_status=previous["status"].value,
                to_status=target.value,
            )

            payload = view.to_json_dict()
            self._notify(
                order_room(order_id),
                ORDER_STATUS_UPDATED,
                {"orderId": order_id, "status": target.value, "updatedOrder": payload},
            )
            self._notify(ADMIN_ROOM, ORDER_UPDATED, payload)
            return view

    # Presentation

    async def to_views(
        self,
        orders: list[Order],
        now: datetime | None = None,
    ) -> list[OrderView]:
        """Attach catalog display fields and estimates to stored orders."""
        item_ids = [item.menu_item_id for order in orders for item in order.items]
        catalog = await self._resolve_catalog(item_ids)
        now = now or self.clock()
        return [self._build_view(order, catalog, now) for order in orders]

    async def _resolve_catalog(self, item_ids: list[str]) -> dict[str, CatalogItem | None]:
        if not item_ids:
            return {}
        try:
            return await self.catalog.get_items(item_ids)
        except StoreUnavailable:
            # Display fields are optional; the snapshot is still authoritative
            logger.warning("catalog_resolution_failed", items=len(item_ids))
            return {}

    def _build_view(
        self,
        order: Order,
        catalog: dict[str, CatalogItem | None],
        now: datetime,
    ) -> OrderView:
        items = []
        for item in order.items:
            current = catalog.get(item.menu_item_id)
            items.append(
                OrderItemView(
                    **item.model_dump(),
                    menu_item=CatalogItemSummary.from_item(current) if current else None,
                )
            )

        return OrderView(
            **order.model_dump(exclude={"items"}),
            items=items,
            estimates=self.estimate(order, now),
        )

    # Helpers

    def _order_lock(self, order_id: str) -> asyncio.Lock:
        """Serializes this process's commits and their events for one order."""
        lock = self._order_locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._order_locks[order_id] = lock
        return lock

    def _parse_status(self, value: str | None) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError:
            valid = ", ".join(status.value for status in OrderStatus)
            raise InvalidStatus(f"Invalid status. Must be one of: {valid}", status=value) from None

    def _notify(self, room: str, event: str, payload: dict[str, Any]) -> None:
        # Best-effort; the committed write stands
        try:
            self.broadcaster.publish(room, event, payload)
        except Exception:
            logger.warning("order_notification_failed", room=room, event_name=event, exc_info=True)
