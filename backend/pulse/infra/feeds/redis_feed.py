"""Change feed over Redis pub/sub.

Producers publish one JSON message per changed entity on
`<prefix>:<collection>`: {"key": ..., "kind": "added"|"modified"|"removed", "data": {...}}.
"""
import logging

from pulse.domain.common.errors import ValidationError
from pulse.domain.watchers.models import ChangeEvent, ChangeHandler
from pulse.infra.messaging.redis_bus import RedisBus

logger = logging.getLogger(__name__)


class RedisChangeFeed:
    def __init__(self, bus: RedisBus, channel_prefix: str = "changes"):
        self._bus = bus
        self._prefix = channel_prefix

    def channel_for(self, collection: str) -> str:
        return f"{self._prefix}:{collection}"

    async def subscribe(self, collection: str, handler: ChangeHandler) -> None:
        async def on_message(message: dict) -> None:
            try:
                event = ChangeEvent.from_message(collection, message)
            except ValidationError as e:
                logger.warning("Malformed change on %s: %s", collection, e.message)
                return
            await handler(event)

        await self._bus.subscribe_forever(self.channel_for(collection), on_message)

    async def publish(self, event: ChangeEvent) -> int:
        return await self._bus.publish(self.channel_for(event.collection), event.to_message())
