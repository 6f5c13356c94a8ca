"""Watcher supervisor: one subscription per collection, fanned out to its watchers."""
import asyncio
import logging
from collections import defaultdict

from pulse.domain.watchers.models import ChangeEvent, ChangeFeed
from pulse.domain.watchers.watcher import Watcher

logger = logging.getLogger(__name__)


class WatcherSupervisor:
    """Starts every watcher once and keeps the subscriptions alive until stop_all()."""

    def __init__(self, feed: ChangeFeed, watchers: list[Watcher], resubscribe_delay_seconds: float = 5.0):
        self._feed = feed
        self._by_collection: dict[str, list[Watcher]] = defaultdict(list)
        for watcher in watchers:
            self._by_collection[watcher.collection].append(watcher)
        self._resubscribe_delay = resubscribe_delay_seconds
        self._subscriptions: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def collections(self) -> list[str]:
        return list(self._by_collection)

    async def dispatch(self, event: ChangeEvent) -> None:
        """Hand one event to every watcher of its collection, each as its own task."""
        for watcher in self._by_collection.get(event.collection, []):
            if not watcher.accepts(event):
                continue
            task = asyncio.create_task(watcher.handle(event), name=f"{watcher.name}:{event.key}")
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _run(self, collection: str) -> None:
        while True:
            try:
                await self._feed.subscribe(collection, self.dispatch)
                logger.warning("Subscription to %s ended; resubscribing", collection)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Subscription to %s failed: %s; retrying in %ss", collection, e, self._resubscribe_delay,
                             exc_info=True)
            await asyncio.sleep(self._resubscribe_delay)

    def start_all(self) -> None:
        """Subscribe every collection. Later calls are no-ops."""
        if self._started:
            logger.info("Watchers already running")
            return
        self._started = True
        for collection, watchers in self._by_collection.items():
            self._subscriptions.append(asyncio.create_task(self._run(collection), name=f"watch:{collection}"))
            logger.info("Watching %s (%s)", collection, ", ".join(w.name for w in watchers))

    async def drain(self) -> None:
        """Wait until every in-flight event task is done."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def stop_all(self) -> None:
        if not self._started:
            return
        tasks = self._subscriptions + list(self._inflight)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._subscriptions.clear()
        self._inflight.clear()
        self._started = False
        logger.info("Watchers stopped")
