"""Redis connection shared by the order store, catalog and event relay."""

import json
from typing import Any

import redis.asyncio as redis

from fulfillment.config import get_settings
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


class StateManager:
    """Owns the Redis client and the key namespace."""

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        settings = get_settings()
        self.redis_client: redis.Redis | None = redis_client
        self.redis_url = settings.redis_url
        self.prefix = settings.key_prefix

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("redis_connected", url=self.redis_url)

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("redis_disconnected")

    async def client(self) -> redis.Redis:
        """Return the Redis client, connecting lazily."""
        if not self.redis_client:
            await self.connect()
        return self.redis_client

    def key(self, *parts: str) -> str:
        """Build a namespaced key, e.g. ``fulfillment:order:<id>``."""
        return ":".join((self.prefix, *parts))

    async def ping(self) -> bool:
        client = await self.client()
        return bool(await client.ping())

    async def get_json(self, key: str) -> Any:
        """Get and decode a JSON value."""
        client = await self.client()
        value = await client.get(key)
        return json.loads(value) if value else None

    async def mget_json(self, keys: list[str]) -> list[Any]:
        """Get several JSON values in one round trip; missing keys yield None."""
        if not keys:
            return []
        client = await self.client()
        values = await client.mget(keys)
        return [json.loads(value) if value else None for value in values]

    async def set_json(self, key: str, value: Any) -> None:
        client = await self.client()
        await client.set(key, json.dumps(value))
        logger.debug("state_set", key=key)

    async def publish(self, channel: str, message: str) -> None:
        """Publish a message to a channel."""
        client = await self.client()
        await client.publish(channel, message)
        logger.debug("message_published", channel=channel)


# Global state manager instance
_state_manager: StateManager | None = None


async def get_state_manager() -> StateManager:
    """Get the global state manager instance."""
    global _state_manager
    if _state_manager is None:
        _state_manager = StateManager()
        await _state_manager.connect()
    return _state_manager
