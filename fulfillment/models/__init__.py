"""Data models for the order fulfillment service."""

from fulfillment.models.catalog import CatalogItem, CatalogItemSummary
from fulfillment.models.listing import (
    OrderPage,
    OrderStats,
    Pagination,
    RevenueSummary,
    StatusCounts,
)
from fulfillment.models.order import (
    CreateOrderRequest,
    CustomerInput,
    CustomerSnapshot,
    Order,
    OrderItem,
    OrderItemView,
    OrderLineRequest,
    OrderStatus,
    OrderView,
    PaymentMethod,
    PaymentStatus,
    StatusUpdateRequest,
    TimeEstimate,
)

__all__ = [
    # Catalog
    "CatalogItem",
    "CatalogItemSummary",
    # Order
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "CustomerSnapshot",
    "TimeEstimate",
    # Views
    "OrderView",
    "OrderItemView",
    # Requests
    "CreateOrderRequest",
    "CustomerInput",
    "OrderLineRequest",
    "StatusUpdateRequest",
    # Listing
    "OrderPage",
    "Pagination",
    "StatusCounts",
    "OrderStats",
    "RevenueSummary",
]
