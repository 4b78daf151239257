"""Order fulfillment services."""

from fulfillment.services.admin import AdminQueryService
from fulfillment.services.broadcaster import (
    ADMIN_ROOM,
    NEW_ORDER,
    ORDER_STATUS_UPDATED,
    ORDER_UPDATED,
    RedisEventRelay,
    RoomBroadcaster,
    Subscriber,
    get_broadcaster,
    order_room,
)
from fulfillment.services.catalog import CatalogGateway
from fulfillment.services.order_engine import OrderEngine

__all__ = [
    "OrderEngine",
    "CatalogGateway",
    "AdminQueryService",
    "RoomBroadcaster",
    "RedisEventRelay",
    "Subscriber",
    "get_broadcaster",
    "order_room",
    "ADMIN_ROOM",
    "NEW_ORDER",
    "ORDER_UPDATED",
    "ORDER_STATUS_UPDATED",
]
