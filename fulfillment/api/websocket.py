"""WebSocket handlers for realtime order updates."""

import asyncio
import json
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fulfillment.config import Settings, get_settings
from fulfillment.errors import AuthenticationFailed, PermissionDenied
from fulfillment.security import verify_admin_token, verify_tracking_token
from fulfillment.services.broadcaster import ADMIN_ROOM, RoomBroadcaster, Subscriber, order_room
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

# Close code sent to subscribers dropped for falling behind
CLOSE_TRY_AGAIN_LATER = 1013


class ClientMessage(BaseModel):
    """Control message sent by a realtime client."""

    model_config = ConfigDict(populate_by_name=True)

    type: str  # "subscribeToOrder", "unsubscribeFromOrder", "joinAdminRoom", "ping"
    order_id: str | None = Field(default=None, alias="orderId")
    token: str | None = None


def handle_client_message(
    broadcaster: RoomBroadcaster,
    subscriber: Subscriber,
    raw: str,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """
    Apply one client control message and build the reply frame.

    Args:
        broadcaster: Room registry the connection belongs to
        subscriber: The connection that sent the message
        raw: Text frame as received
        settings: Overrides the global settings (tests)

    Returns:
        Reply to queue for the client
    """
    settings = settings or get_settings()

    try:
        message = ClientMessage(**json.loads(raw))
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        return {"type": "error", "message": "Invalid message format", "details": str(e)}

    if message.type == "ping":
        return {"type": "pong"}

    if message.type in ("subscribeToOrder", "unsubscribeFromOrder"):
        if not message.order_id:
            return {"type": "error", "message": "orderId is required"}
        room = order_room(message.order_id)

        if message.type == "unsubscribeFromOrder":
            broadcaster.leave(subscriber, room)
            return {"type": "unsubscribed", "room": room}

        if settings.realtime_auth_required:
            try:
                verify_tracking_token(message.token, message.order_id)
            except (AuthenticationFailed, PermissionDenied) as e:
                logger.info(
                    "realtime_join_denied",
                    connection_id=subscriber.id,
                    room=room,
                    reason=e.message,
                )
                return {"type": "error", "message": e.message}

        broadcaster.join(subscriber, room)
        return {"type": "subscribed", "room": room}

    if message.type == "joinAdminRoom":
        if settings.realtime_auth_required:
            try:
                verify_admin_token(message.token)
            except (AuthenticationFailed, PermissionDenied) as e:
                logger.info(
                    "realtime_join_denied",
                    connection_id=subscriber.id,
                    room=ADMIN_ROOM,
                    reason=e.message,
                )
                return {"type": "error", "message": e.message}

        broadcaster.join(subscriber, ADMIN_ROOM)
        return {"type": "subscribed", "room": ADMIN_ROOM}

    return {"type": "error", "message": f"Unknown message type: {message.type}"}


async def _read_messages(
    websocket: WebSocket,
    broadcaster: RoomBroadcaster,
    subscriber: Subscriber,
    settings: Settings | None,
) -> None:
    try:
        while True:
            data = await websocket.receive_text()
            subscriber.offer(handle_client_message(broadcaster, subscriber, data, settings))
    except WebSocketDisconnect:
        logger.info("realtime_client_disconnected", connection_id=subscriber.id)


async def _write_messages(websocket: WebSocket, subscriber: Subscriber) -> None:
    # Sole writer to the socket; replies and events share one ordered queue
    while True:
        message = await subscriber.next_message()
        if message is None:
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Subscriber too slow")
            return
        await websocket.send_json(message)


async def handle_realtime_connection(
    websocket: WebSocket,
    broadcaster: RoomBroadcaster,
    settings: Settings | None = None,
) -> None:
    """
    Serve one realtime connection until either side hangs up.

    The connection starts in no rooms; clients join rooms with control
    messages. Missed events are not replayed, so reconnecting clients
    re-fetch state over HTTP and subscribe again.
    """
    await websocket.accept()
    subscriber = broadcaster.connect()
    logger.info("realtime_connected", connection_id=subscriber.id)

    subscriber.offer({"type": "connected", "connectionId": subscriber.id})

    reader = asyncio.create_task(_read_messages(websocket, broadcaster, subscriber, settings))
    writer = asyncio.create_task(_write_messages(websocket, subscriber))

    try:
        done, pending = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            error = task.exception()
            if error is not None:
                logger.info(
                    "realtime_connection_closed",
                    connection_id=subscriber.id,
                    error=str(error),
                )
    finally:
        reader.cancel()
        writer.cancel()
        broadcaster.disconnect(subscriber)
        logger.info("realtime_disconnected", connection_id=subscriber.id)
        await asyncio.gather(reader, writer, return_exceptions=True)
