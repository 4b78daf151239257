"""Read-only view of the menu catalog."""

from redis.exceptions import RedisError

from fulfillment.errors import StoreUnavailable
from fulfillment.models.catalog import CatalogItem
from fulfillment.state.manager import StateManager
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogGateway:
    """Looks up sellable items by id.

    Menu management lives in another service and writes the items this
    gateway reads; ``upsert_item`` exists for seeding and tests.
    """

    def __init__(self, state_manager: StateManager):
        self.state = state_manager

    def _item_key(self, item_id: str) -> str:
        return self.state.key("menu_item", item_id)

    async def get_item(self, item_id: str) -> CatalogItem | None:
        items = await self.get_items([item_id])
        return items[item_id]

    async def get_items(self, item_ids: list[str]) -> dict[str, CatalogItem | None]:
        """Resolve several ids in one round trip; unknown ids map to None."""
        unique_ids = list(dict.fromkeys(item_ids))
        try:
            documents = await self.state.mget_json([self._item_key(i) for i in unique_ids])
        except RedisError as e:
            raise StoreUnavailable("Failed to read catalog", error=str(e)) from e

        return {
            item_id: CatalogItem.model_validate(doc) if doc else None
            for item_id, doc in zip(unique_ids, documents)
        }

    async def upsert_item(self, item: CatalogItem) -> None:
        await self.state.set_json(self._item_key(item.id), item.model_dump(mode="json"))
        logger.debug("catalog_item_saved", item_id=item.id, name=item.name)
