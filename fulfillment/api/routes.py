"""HTTP routes for the order lifecycle."""

from typing import Any

from fastapi import APIRouter, Depends, status

from fulfillment.models.order import CreateOrderRequest, StatusUpdateRequest
from fulfillment.security import create_tracking_token, require_admin
from fulfillment.services.admin import AdminQueryService
from fulfillment.services.broadcaster import get_broadcaster
from fulfillment.services.catalog import CatalogGateway
from fulfillment.services.order_engine import OrderEngine
from fulfillment.state.manager import get_state_manager
from fulfillment.state.orders import OrderStore

router = APIRouter(prefix="/orders")


# Dependencies


async def get_order_engine() -> OrderEngine:
    """Get an order engine bound to the shared store and broadcaster."""
    state_manager = await get_state_manager()
    return OrderEngine(
        store=OrderStore(state_manager),
        catalog=CatalogGateway(state_manager),
        broadcaster=get_broadcaster(),
    )


async def get_admin_queries() -> AdminQueryService:
    state_manager = await get_state_manager()
    return AdminQueryService(OrderStore(state_manager))


# Customer routes


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    engine: OrderEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    """
    Place a new order.

    Prices are taken from the catalog; a client-supplied total is only
    cross-checked. The response carries a token for realtime tracking.
    """
    order = await engine.create_order(request)

    return {
        "success": True,
        "message": "Order created successfully",
        "data": order.to_json_dict(),
        "trackingToken": create_tracking_token(order.id),
    }


@router.get("")
async def list_orders(
    status: str | None = None,
    limit: int | None = None,
    page: int = 1,
    sort: str = "createdAt",
    order: str = "desc",
    engine: OrderEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    """List orders with pagination and per-status counts."""
    result = await engine.list_orders(
        status=status,
        page=page,
        limit=limit,
        sort=sort,
        order=order,
    )
    return {"success": True, "data": result.to_json_dict()}


# Admin routes (declared before /{order_id} so the paths are not captured)


@router.get("/admin/stats")
async def get_order_stats(
    _admin: dict[str, Any] = Depends(require_admin),
    queries: AdminQueryService = Depends(get_admin_queries),
) -> dict[str, Any]:
    """Dashboard counters and revenue from delivered orders."""
    stats = await queries.stats()
    return {"success": True, "data": stats.to_json_dict()}


@router.get("/admin/all")
async def list_admin_orders(
    status: str = "all",
    page: int = 1,
    limit: int | None = None,
    _admin: dict[str, Any] = Depends(require_admin),
    engine: OrderEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    result = await engine.list_orders(
        status=status,
        page=page,
        limit=limit,
        include_stats=False,
    )
    data = result.to_json_dict()
    data.pop("stats", None)
    return {"success": True, "data": data}


@router.get("/admin/recent")
async def list_recent_orders(
    limit: int | None = None,
    _admin: dict[str, Any] = Depends(require_admin),
    engine: OrderEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    orders = await engine.recent_orders(limit)
    return {"success": True, "data": [order.to_json_dict() for order in orders]}


# Single order routes


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    engine: OrderEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    """Order detail with catalog items resolved for display."""
    order = await engine.get_order(order_id)
    return order.to_json_dict()


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    engine: OrderEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    order = await engine.update_status(order_id, request.status)
    return {
        "success": True,
        "message": f"Order status updated to {order.status.value}",
        "data": order.to_json_dict(),
    }


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    engine: OrderEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    order = await engine.cancel_order(order_id)
    return {
        "success": True,
        "message": "Order cancelled successfully",
        "data": order.to_json_dict(),
    }
