"""Redis message bus."""
import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisBus:
    """Redis pub/sub: JSON messages on named channels."""

    def __init__(self, url: str):
        self._url = url
        self._redis: Optional[redis.Redis] = None

    async def connect(self):
        """Connect to Redis."""
        self._redis = redis.from_url(self._url, decode_responses=True)

    async def disconnect(self):
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, channel: str, message: dict) -> int:
        """Publish a message to a channel. Returns the number of subscribers that received it."""
        if not self._redis:
            await self.connect()
        return await self._redis.publish(channel, json.dumps(message, default=str))

    async def subscribe_forever(
        self, channel: str, handler: Callable[[dict], Awaitable[None]]
    ) -> None:
        """Subscribe to a channel and call handler for each message. Runs until cancelled."""
        if not self._redis:
            await self.connect()
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("Subscribed to %s", channel)
        try:
            while True:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if msg and msg.get("type") == "message" and msg.get("data"):
                    try:
                        data = json.loads(msg["data"])
                    except ValueError:
                        logger.warning("Dropping non-JSON message on %s", channel)
                        continue
                    try:
                        await handler(data)
                    except Exception as e:
                        logger.error("Handler for %s failed: %s", channel, e, exc_info=True)
        except asyncio.CancelledError:
            logger.info("Subscription to %s cancelled", channel)
            raise
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
