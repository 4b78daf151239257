"""Tests for dashboard statistics."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fulfillment.models.order import CreateOrderRequest
from fulfillment.services.admin import AdminQueryService, start_of_day, start_of_week
from fulfillment.services.order_engine import OrderEngine


def test_start_of_week_is_previous_sunday() -> None:
    wednesday = datetime(2024, 5, 15, 18, 30, tzinfo=timezone.utc)
    sunday = datetime(2024, 5, 12, 9, 0, tzinfo=timezone.utc)

    assert start_of_week(wednesday) == datetime(2024, 5, 12, tzinfo=timezone.utc)
    assert start_of_week(sunday) == datetime(2024, 5, 12, tzinfo=timezone.utc)
    assert start_of_day(wednesday) == datetime(2024, 5, 15, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_stats_on_empty_store(admin_queries: AdminQueryService) -> None:
    stats = await admin_queries.stats()

    assert stats.total == 0
    assert stats.revenue.total_revenue == Decimal("0.00")
    assert stats.revenue.avg_order_value == Decimal("0.00")
    assert stats.today == 0


@pytest.mark.asyncio
async def test_stats(
    engine: OrderEngine,
    admin_queries: AdminQueryService,
    order_request: CreateOrderRequest,
    clock,
) -> None:
    now = clock()

    clock.now = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
    last_week = await engine.create_order(order_request)
    clock.now = datetime(2024, 5, 13, 12, 0, tzinfo=timezone.utc)
    this_week = await engine.create_order(order_request)
    clock.now = datetime(2024, 5, 15, 8, 0, tzinfo=timezone.utc)
    today = await engine.create_order(order_request)
    cancelled = await engine.create_order(order_request)

    clock.now = now
    await engine.update_status(last_week.id, "Delivered")
    await engine.update_status(this_week.id, "Delivered")
    await engine.update_status(today.id, "Preparing")
    await engine.cancel_order(cancelled.id)

    stats = await admin_queries.stats()

    assert stats.total == 4
    assert stats.today == 2
    assert stats.this_week == 3
    assert stats.delivered == 2
    assert stats.preparing == 1
    assert stats.cancelled == 1
    assert stats.received == 0
    assert stats.revenue.order_count == 2
    assert stats.revenue.total_revenue == Decimal("75.92")
    assert stats.revenue.avg_order_value == Decimal("37.96")

    data = stats.to_json_dict()
    assert data["thisWeek"] == 3
    assert data["revenue"]["totalRevenue"] == 75.92
