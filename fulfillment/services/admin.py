"""Dashboard aggregates computed from the order store."""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

from fulfillment.models.base import to_cents
from fulfillment.models.listing import OrderStats, RevenueSummary, StatusCounts
from fulfillment.models.order import OrderStatus, utcnow
from fulfillment.state.orders import OrderStore


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime) -> datetime:
    """Most recent Sunday at midnight."""
    today = start_of_day(now)
    return today - timedelta(days=(today.weekday() + 1) % 7)


class AdminQueryService:
    """Read-only statistics for the admin dashboard."""

    def __init__(self, store: OrderStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def stats(self) -> OrderStats:
        now = self.clock()

        counts = StatusCounts.from_counts(await self.store.count_by_status())
        delivered = await self.store.with_status(OrderStatus.DELIVERED)

        revenue = sum((order.total_amount for order in delivered), Decimal("0.00"))
        average = to_cents(revenue / len(delivered)) if delivered else Decimal("0.00")

        return OrderStats(
            **counts.model_dump(),
            total=await self.store.count(),
            revenue=RevenueSummary(
                total_revenue=revenue,
                avg_order_value=average,
                order_count=len(delivered),
            ),
            today=await self.store.count(since=start_of_day(now)),
            this_week=await self.store.count(since=start_of_week(now)),
        )
