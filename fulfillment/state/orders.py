"""Durable order persistence on Redis."""

from datetime import datetime
from typing import Any, Callable

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from fulfillment.config import get_settings
from fulfillment.errors import DuplicateOrderNumber, InvalidQuery, OrderNotFound, StoreUnavailable
from fulfillment.models.order import Order, OrderStatus
from fulfillment.state.manager import StateManager
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

# Sort fields accepted by find(); createdAt is served straight from the index
SORT_FIELDS: dict[str, Callable[[Order], Any]] = {
    "createdAt": lambda order: order.created_at,
    "updatedAt": lambda order: order.updated_at,
    "orderDate": lambda order: order.order_date,
    "totalAmount": lambda order: order.total_amount,
    "subtotal": lambda order: order.subtotal,
    "orderNumber": lambda order: order.order_number,
    "status": lambda order: order.status.value,
}

Mutation = Callable[[Order], Order | None]


class OrderStore:
    """Order documents plus the indexes used for listing and counting.

    Layout (all keys under the configured prefix):

    - ``order:<id>``: JSON document
    - ``orders:numbers``: hash of order number to id, guarding uniqueness
    - ``orders:index``: sorted set of every id scored by creation time
    - ``orders:status:<status>``: sorted set of ids currently in that status
    """

    def __init__(self, state_manager: StateManager):
        self.state = state_manager
        self.max_retries = get_settings().store_max_retries

    def _order_key(self, order_id: str) -> str:
        return self.state.key("order", order_id)

    def _numbers_key(self) -> str:
        return self.state.key("orders", "numbers")

    def _index_key(self) -> str:
        return self.state.key("orders", "index")

    def _status_key(self, status: OrderStatus) -> str:
        return self.state.key("orders", "status", status.value)

    async def create(self, order: Order) -> Order:
        """Persist a new order and index it."""
        try:
            client = await self.state.client()

            claimed = await client.hsetnx(self._numbers_key(), order.order_number, order.id)
            if not claimed:
                raise DuplicateOrderNumber(
                    f"Order number {order.order_number} already exists",
                    order_number=order.order_number,
                )

            score = order.created_at.timestamp()
            try:
                async with client.pipeline(transaction=True) as pipe:
                    pipe.set(self._order_key(order.id), order.model_dump_json())
                    pipe.zadd(self._index_key(), {order.id: score})
                    pipe.zadd(self._status_key(order.status), {order.id: score})
                    await pipe.execute()
            except RedisError:
                await self._release_number(client, order)
                raise
        except RedisError as e:
            raise StoreUnavailable("Failed to save order", error=str(e)) from e

        logger.debug("order_persisted", order_id=order.id, order_number=order.order_number)
        return order

    async def _release_number(self, client: redis.Redis, order: Order) -> None:
        """Drop an order number claim whose document was never written."""
        try:
            await client.hdel(self._numbers_key(), order.order_number)
        except RedisError as e:
            logger.error(
                "order_number_release_failed",
                order_id=order.id,
                order_number=order.order_number,
                error=str(e),
            )

    async def get(self, order_id: str) -> Order | None:
        """Retrieve an order by ID."""
        try:
            data = await self.state.get_json(self._order_key(order_id))
        except RedisError as e:
            raise StoreUnavailable("Failed to load order", error=str(e)) from e

        return Order.model_validate(data) if data else None

    async def update(self, order_id: str, mutate: Mutation) -> tuple[Order, bool]:
        """Atomically read-modify-write a single order.

        ``mutate`` receives the committed order and returns the replacement,
        or None to leave it untouched. It may raise to abort. The write is
        retried against the fresh state if another writer commits first.

        Returns the resulting order and whether anything was written.
        """
        key = self._order_key(order_id)

        try:
            client = await self.state.client()
            async with client.pipeline(transaction=True) as pipe:
                for attempt in range(1, self.max_retries + 1):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            raise OrderNotFound(order_id)

                        current = Order.model_validate_json(raw)
                        previous_status = current.status
                        updated = mutate(current)
                        if updated is None:
                            await pipe.unwatch()
                            return current, False

                        pipe.multi()
                        pipe.set(key, updated.model_dump_json())
                        if updated.status != previous_status:
                            score = updated.created_at.timestamp()
                            pipe.zrem(self._status_key(previous_status), order_id)
                            pipe.zadd(self._status_key(updated.status), {order_id: score})
                        await pipe.execute()
                        return updated, True
                    except WatchError:
                        logger.debug("order_update_retry", order_id=order_id, attempt=attempt)
                        continue
        except RedisError as e:
            raise StoreUnavailable("Failed to update order", error=str(e)) from e

        raise StoreUnavailable(
            "Order is being updated concurrently, try again",
            order_id=order_id,
        )

    async def _load_many(self, order_ids: list[str]) -> list[Order]:
        documents = await self.state.mget_json([self._order_key(i) for i in order_ids])
        return [Order.model_validate(doc) for doc in documents if doc]

    async def find(
        self,
        status: OrderStatus | None = None,
        page: int = 1,
        limit: int = 50,
        sort: str = "createdAt",
        descending: bool = True,
    ) -> tuple[list[Order], int]:
        """Return one page of orders and the number matching the filter."""
        if sort not in SORT_FIELDS:
            raise InvalidQuery(
                f"Cannot sort by {sort}. Must be one of: {', '.join(SORT_FIELDS)}",
            )

        set_key = self._status_key(status) if status else self._index_key()
        start = (page - 1) * limit

        try:
            client = await self.state.client()
            total = await client.zcard(set_key)

            if sort == "createdAt":
                end = start + limit - 1
                if descending:
                    ids = await client.zrevrange(set_key, start, end)
                else:
                    ids = await client.zrange(set_key, start, end)
                orders = await self._load_many(ids)
            else:
                ids = await client.zrange(set_key, 0, -1)
                orders = await self._load_many(ids)
                orders.sort(key=SORT_FIELDS[sort], reverse=descending)
                orders = orders[start : start + limit]
        except RedisError as e:
            raise StoreUnavailable("Failed to list orders", error=str(e)) from e

        return orders, total

    async def recent(self, limit: int) -> list[Order]:
        orders, _ = await self.find(page=1, limit=limit)
        return orders

    async def with_status(self, status: OrderStatus) -> list[Order]:
        """Every order currently in ``status``."""
        try:
            client = await self.state.client()
            ids = await client.zrange(self._status_key(status), 0, -1)
            return await self._load_many(ids)
        except RedisError as e:
            raise StoreUnavailable("Failed to load orders", error=str(e)) from e

    async def count_by_status(self) -> dict[OrderStatus, int]:
        try:
            client = await self.state.client()
            async with client.pipeline(transaction=False) as pipe:
                for status in OrderStatus:
                    pipe.zcard(self._status_key(status))
                counts = await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable("Failed to count orders", error=str(e)) from e

        return dict(zip(OrderStatus, counts))

    async def count(self, since: datetime | None = None) -> int:
        """Count all orders, or those created at or after ``since``."""
        try:
            client = await self.state.client()
            if since is None:
                return await client.zcard(self._index_key())
            return await client.zcount(self._index_key(), since.timestamp(), "+inf")
        except RedisError as e:
            raise StoreUnavailable("Failed to count orders", error=str(e)) from e
