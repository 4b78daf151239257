"""Room-based realtime fan-out of order events."""

import asyncio
import json
from collections import defaultdict
from typing import Any
from uuid import uuid4

from redis.exceptions import RedisError

from fulfillment.config import get_settings
from fulfillment.state.manager import StateManager
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

ADMIN_ROOM = "admin"

# Event catalog
NEW_ORDER = "newOrder"
ORDER_UPDATED = "orderUpdated"
ORDER_STATUS_UPDATED = "orderStatusUpdated"


def order_room(order_id: str) -> str:
    """Room followed by customers tracking a single order."""
    return f"order-{order_id}"


class Subscriber:
    """A live connection: its room memberships and its outbound buffer.

    Messages are queued without awaiting; the transport drains the queue
    with ``next_message``. A ``None`` message means the subscriber was closed
    and the transport should hang up.
    """

    def __init__(self, connection_id: str | None = None, queue_size: int = 256):
        self.id = connection_id or uuid4().hex
        self.rooms: set[str] = set()
        self.closed = False
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(maxsize=queue_size)

    def offer(self, message: dict[str, Any]) -> bool:
        """Queue a message; False if the subscriber is closed or full."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def next_message(self) -> dict[str, Any] | None:
        return await self._queue.get()

    def pending(self) -> list[dict[str, Any]]:
        """Take every queued message without waiting."""
        messages = []
        while not self._queue.empty():
            message = self._queue.get_nowait()
            if message is not None:
                messages.append(message)
        return messages

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.pending()
        self._queue.put_nowait(None)


class RoomBroadcaster:
    """Tracks which connections are in which rooms and delivers events.

    Membership changes and emission are plain synchronous calls, so on the
    event loop they never interleave and each subscriber receives events in
    the order they were emitted.
    """

    def __init__(self, queue_size: int | None = None) -> None:
        self.queue_size = queue_size or get_settings().subscriber_queue_size
        self.subscribers: dict[str, Subscriber] = {}
        self.rooms: defaultdict[str, set[str]] = defaultdict(set)
        self.relay: "RedisEventRelay | None" = None

    def use_relay(self, relay: "RedisEventRelay") -> None:
        """Route published events through Redis so every worker receives them."""
        relay.attach(self)
        self.relay = relay

    def connect(self, connection_id: str | None = None) -> Subscriber:
        subscriber = Subscriber(connection_id, queue_size=self.queue_size)
        self.subscribers[subscriber.id] = subscriber
        return subscriber

    def join(self, subscriber: Subscriber, room: str) -> None:
        self.rooms[room].add(subscriber.id)
        subscriber.rooms.add(room)
        logger.debug("room_joined", connection_id=subscriber.id, room=room)

    def leave(self, subscriber: Subscriber, room: str) -> None:
        members = self.rooms.get(room)
        if members is not None:
            members.discard(subscriber.id)
            if not members:
                del self.rooms[room]
        subscriber.rooms.discard(room)

    def disconnect(self, subscriber: Subscriber) -> None:
        """Forget a connection and remove it from every room."""
        for room in list(subscriber.rooms):
            self.leave(subscriber, room)
        self.subscribers.pop(subscriber.id, None)

    def room_size(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    def emit(self, room: str, event: str, payload: Any) -> int:
        """Deliver an event to this process's members of ``room``.

        Returns how many subscribers it was queued for. Subscribers whose
        buffer is full are disconnected rather than allowed to stall others.
        """
        message = {"type": "event", "event": event, "room": room, "data": payload}
        delivered = 0

        for connection_id in list(self.rooms.get(room, ())):
            subscriber = self.subscribers.get(connection_id)
            if subscriber is None:
                continue
            if subscriber.offer(message):
                delivered += 1
                continue

            logger.warning(
                "broadcast_dropped_subscriber",
                connection_id=connection_id,
                room=room,
                event_name=event,
            )
            self.disconnect(subscriber)
            subscriber.close()

        logger.debug("event_emitted", room=room, event_name=event, delivered=delivered)
        return delivered

    def publish(self, room: str, event: str, payload: Any) -> None:
        """Fire-and-forget entry point for order mutations; never raises."""
        try:
            if self.relay is not None:
                self.relay.forward(room, event, payload)
            else:
                self.emit(room, event, payload)
        except Exception:
            logger.warning("broadcast_failed", room=room, event_name=event, exc_info=True)


class RedisEventRelay:
    """Carries events between workers over Redis pub/sub.

    Outgoing events go through one publisher task so they reach the channel
    in the order they were published; a listener task hands every event on
    the channel to the local broadcaster. The listener resubscribes with
    exponential backoff whenever the pub/sub connection drops.
    """

    def __init__(
        self,
        state_manager: StateManager,
        channel: str | None = None,
        retry_delay: float | None = None,
        max_retry_delay: float | None = None,
    ):
        settings = get_settings()
        self.state = state_manager
        self.channel = channel or settings.broadcast_channel
        self.retry_delay = retry_delay or settings.relay_retry_seconds
        self.max_retry_delay = max_retry_delay or settings.relay_max_retry_seconds
        self.broadcaster: RoomBroadcaster | None = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    def attach(self, broadcaster: RoomBroadcaster) -> None:
        self.broadcaster = broadcaster

    def forward(self, room: str, event: str, payload: Any) -> None:
        self._outbox.put_nowait(json.dumps({"room": room, "event": event, "data": payload}))

    def dispatch(self, raw: str) -> None:
        """Emit one event received from the channel to local subscribers."""
        try:
            envelope = json.loads(raw)
            room, event, payload = envelope["room"], envelope["event"], envelope["data"]
        except (json.JSONDecodeError, KeyError, TypeError):
            logger.warning("relay_message_invalid", channel=self.channel)
            return

        if self.broadcaster is None:
            return
        try:
            self.broadcaster.emit(room, event, payload)
        except Exception:
            logger.exception("relay_dispatch_failed", channel=self.channel, room=room)

    async def start(self) -> None:
        self._tasks = [
            asyncio.create_task(self._publish_loop()),
            asyncio.create_task(self._listen_loop()),
        ]
        logger.info("event_relay_started", channel=self.channel)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("event_relay_stopped", channel=self.channel)

    async def _publish_loop(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await self.state.publish(self.channel, message)
            except RedisError as e:
                logger.warning("relay_publish_failed", channel=self.channel, error=str(e))

    async def _listen_loop(self) -> None:
        delay = self.retry_delay
        while True:
            try:
                client = await self.state.client()
                pubsub = client.pubsub()
                try:
                    await pubsub.subscribe(self.channel)
                    delay = self.retry_delay
                    async for message in pubsub.listen():
                        if message.get("type") == "message":
                            self.dispatch(message["data"])
                finally:
                    await pubsub.aclose()
            except RedisError as e:
                logger.warning(
                    "relay_listener_disconnected",
                    channel=self.channel,
                    error=str(e),
                    retry_in=delay,
                )
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_retry_delay)


# Global broadcaster instance
_broadcaster: RoomBroadcaster | None = None


def get_broadcaster() -> RoomBroadcaster:
    """Get the process-wide broadcaster."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = RoomBroadcaster()
    return _broadcaster
