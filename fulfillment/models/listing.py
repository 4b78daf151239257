"""Listing, pagination and dashboard aggregate models."""

from decimal import Decimal

from fulfillment.models.base import CamelModel, Money
from fulfillment.models.order import OrderStatus, OrderView


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    pages: int


class StatusCounts(CamelModel):
    """Number of orders per status, keyed the way dashboards expect."""

    received: int = 0
    preparing: int = 0
    delivery: int = 0
    delivered: int = 0
    cancelled: int = 0

    @classmethod
    def from_counts(cls, counts: dict[OrderStatus, int]) -> "StatusCounts":
        return cls(
            received=counts.get(OrderStatus.ORDER_RECEIVED, 0),
            preparing=counts.get(OrderStatus.PREPARING, 0),
            delivery=counts.get(OrderStatus.OUT_FOR_DELIVERY, 0),
            delivered=counts.get(OrderStatus.DELIVERED, 0),
            cancelled=counts.get(OrderStatus.CANCELLED, 0),
        )


class OrderPage(CamelModel):
    orders: list[OrderView]
    pagination: Pagination
    stats: StatusCounts | None = None


class RevenueSummary(CamelModel):
    """Revenue over delivered orders only."""

    total_revenue: Money = Decimal("0.00")
    avg_order_value: Money = Decimal("0.00")
    order_count: int = 0


class OrderStats(StatusCounts):
    total: int = 0
    revenue: RevenueSummary
    today: int = 0
    this_week: int = 0
