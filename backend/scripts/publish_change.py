"""Script to publish one change event on the Redis change feed (for local testing of the watchers).

Usage:
    python scripts/publish_change.py <collection> <key> <kind> '<json data>'
    python scripts/publish_change.py community_notices n1 added '{"title": "Hi", "authorId": "u1", ...}'
"""
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path to import pulse modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulse.domain.common.errors import ValidationError
from pulse.domain.watchers.models import ChangeEvent
from pulse.infra.feeds.redis_feed import RedisChangeFeed
from pulse.infra.messaging.redis_bus import RedisBus
from pulse.settings import get_settings


async def publish_change(collection: str, key: str, kind: str, data: dict) -> int:
    config = get_settings()
    bus = RedisBus(config.redis_url)
    feed = RedisChangeFeed(bus, channel_prefix=config.change_feed_channel_prefix)
    try:
        event = ChangeEvent.from_message(collection, {"key": key, "kind": kind, "data": data})
        receivers = await feed.publish(event)
        print(f"Published {event.kind.value} {collection}/{key} on {feed.channel_for(collection)} ({receivers} subscriber(s))")
        return receivers
    finally:
        await bus.disconnect()


if __name__ == "__main__":
    if len(sys.argv) < 4:
        print(__doc__)
        sys.exit(1)
    try:
        payload = json.loads(sys.argv[4]) if len(sys.argv) > 4 else {}
        asyncio.run(publish_change(sys.argv[1], sys.argv[2], sys.argv[3], payload))
    except (ValueError, ValidationError) as e:
        print(f"Invalid change event: {e}")
        sys.exit(1)
