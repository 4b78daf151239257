"""Seed the menu catalog read by the order engine."""

import asyncio
from decimal import Decimal

from fulfillment.models.catalog import CatalogItem
from fulfillment.services.catalog import CatalogGateway
from fulfillment.state.manager import StateManager

MENU_ITEMS = [
    CatalogItem(
        id="pizza_pepperoni",
        name="Pepperoni Pizza",
        category="pizza",
        price=Decimal("12.99"),
        image="/images/pizza_pepperoni.jpg",
    ),
    CatalogItem(
        id="pizza_margherita",
        name="Margherita Pizza",
        category="pizza",
        price=Decimal("11.49"),
        image="/images/pizza_margherita.jpg",
    ),
    CatalogItem(
        id="burger_cheese",
        name="Cheeseburger",
        category="burgers",
        price=Decimal("8.99"),
        image="/images/burger_cheese.jpg",
    ),
    CatalogItem(
        id="burger_veggie",
        name="Veggie Burger",
        category="burgers",
        price=Decimal("9.49"),
        image="/images/burger_veggie.jpg",
        available=False,
    ),
    CatalogItem(
        id="salad_caesar",
        name="Caesar Salad",
        category="salads",
        price=Decimal("7.99"),
        image="/images/salad_caesar.jpg",
    ),
    CatalogItem(
        id="drink_coke",
        name="Coca-Cola",
        category="drinks",
        price=Decimal("2.49"),
        image="/images/drink_coke.jpg",
    ),
]


async def seed_catalog() -> None:
    """Write the sample menu items."""
    print("Seeding menu catalog...")

    state_manager = StateManager()
    await state_manager.connect()
    catalog = CatalogGateway(state_manager)

    for item in MENU_ITEMS:
        await catalog.upsert_item(item)
        availability = "available" if item.available else "unavailable"
        print(f"  ✓ Added {item.name} ({item.price}, {availability})")

    await state_manager.disconnect()
    print("✓ Menu catalog seeded successfully\n")


if __name__ == "__main__":
    asyncio.run(seed_catalog())
