"""Catalog (menu item) models."""

from pydantic import Field

from fulfillment.models.base import CamelModel, Money


class CatalogItem(CamelModel):
    """A sellable menu item as published by the catalog."""

    id: str
    name: str = Field(min_length=1)
    price: Money = Field(ge=0)
    available: bool = True
    category: str | None = None
    image: str | None = None
    description: str | None = None


class CatalogItemSummary(CamelModel):
    """Display fields of a catalog item attached to order line items."""

    id: str
    name: str
    price: Money
    image: str | None = None
    category: str | None = None

    @classmethod
    def from_item(cls, item: CatalogItem) -> "CatalogItemSummary":
        return cls(
            id=item.id,
            name=item.name,
            price=item.price,
            image=item.image,
            category=item.category,
        )
