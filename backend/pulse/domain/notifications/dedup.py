"""Dedup & progress tracker: durable markers that stop duplicate notifications.

Markers live in the database so process restarts neither replay old
notifications nor lose track of pending ones. Two near-simultaneous claims for
one key are serialized by a per-key asyncio lock inside the process and by the
marker primary key across processes.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from pulse.domain.common.types import Clock, utcnow
from pulse.domain.notifications.record_store import NotificationRecordStore
from pulse.infra.db.repositories.tracking_repo import TrackingRepository

logger = logging.getLogger(__name__)

STATE_PENDING = "pending"
STATE_SENT = "sent"


@dataclass
class MembershipState:
    """Persisted per-entity membership progress."""
    processed: set[str] = field(default_factory=set)
    previous: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.processed and not self.previous


@dataclass
class MembershipDelta:
    """Result of diffing an entity's live membership against tracked state."""
    joined: list[str] = field(default_factory=list)
    left: list[str] = field(default_factory=list)
    baseline: bool = False  # True when existing members were absorbed without notifying


class _KeyLocks:
    """asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def hold(self, key: str) -> "_HeldLock":
        return _HeldLock(self, key)


class _HeldLock:
    def __init__(self, owner: _KeyLocks, key: str):
        self._owner = owner
        self._key = key

    async def __aenter__(self):
        lock = self._owner._locks.setdefault(self._key, asyncio.Lock())
        self._owner._users[self._key] = self._owner._users.get(self._key, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            # Cancelled while waiting
            self._leave()
            raise
        return lock

    async def __aexit__(self, exc_type, exc, tb):
        self._owner._locks[self._key].release()
        self._leave()
        return False

    def _leave(self) -> None:
        remaining = self._owner._users[self._key] - 1
        if remaining:
            self._owner._users[self._key] = remaining
        else:
            del self._owner._users[self._key]
            del self._owner._locks[self._key]


class DedupTracker:
    """Durable dedup markers, membership diffs and value snapshots."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        records: NotificationRecordStore,
        *,
        cache_ttl_seconds: float = 120.0,
        claim_timeout_seconds: float = 600.0,
        startup_grace_seconds: float = 30.0,
        clock: Clock = utcnow,
        started_at: Optional[datetime] = None,
    ):
        self._session_factory = session_factory
        self._records = records
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._claim_timeout = timedelta(seconds=claim_timeout_seconds)
        self._startup_grace = timedelta(seconds=startup_grace_seconds)
        self._clock = clock
        self.started_at = started_at or clock()
        # Read-through cache of keys known to be sent; the database stays authoritative
        self._sent_cache: dict[str, datetime] = {}
        self._locks = _KeyLocks()

    # Time windowing
    def is_recent(self, created_at: Optional[datetime], window_seconds: float) -> bool:
        """True when created_at is no older than the window (future timestamps count as recent)."""
        if created_at is None:
            return False
        return (self._clock() - created_at).total_seconds() <= window_seconds

    def in_startup_grace(self) -> bool:
        return self._clock() - self.started_at < self._startup_grace

    # Local cache
    def _cached(self, key: str) -> bool:
        expires = self._sent_cache.get(key)
        if expires is None:
            return False
        if expires <= self._clock():
            del self._sent_cache[key]
            return False
        return True

    def _remember(self, key: str) -> None:
        now = self._clock()
        self._sent_cache[key] = now + self._cache_ttl
        if len(self._sent_cache) > 10_000:
            self._sent_cache = {k: v for k, v in self._sent_cache.items() if v > now}

    def _is_stale(self, marker_updated_at: datetime) -> bool:
        return self._clock() - marker_updated_at > self._claim_timeout

    # Markers
    async def should_notify(self, key: str) -> bool:
        """False if this occurrence was already notified (or is being notified right now)."""
        if self._cached(key):
            return False
        async with self._session_factory() as session:
            marker = await TrackingRepository(session).get_marker(key)
        if marker is not None:
            if marker.state == STATE_SENT:
                self._remember(key)
                return False
            if not self._is_stale(marker.updated_at):
                return False
        if await self._records.exists_for_source(key):
            self._remember(key)
            return False
        return True

    async def claim(self, key: str) -> bool:
        """Atomically take the right to notify for key. False if someone else holds or finished it."""
        async with self._locks.hold(key):
            if self._cached(key):
                return False
            now = self._clock()
            async with self._session_factory() as session:
                repo = TrackingRepository(session)
                marker = await repo.get_marker(key)
                if marker is not None:
                    if marker.state == STATE_SENT:
                        self._remember(key)
                        return False
                    if not self._is_stale(marker.updated_at):
                        return False
                    logger.info("Reclaiming abandoned dedup marker %s", key)
                    marker.updated_at = now
                    await session.commit()
                    return True
                try:
                    await repo.insert_marker(key, STATE_PENDING, now)
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.debug("Dedup marker %s claimed concurrently", key)
                    return False
        return True

    async def mark_notified(self, key: str) -> None:
        """Record that key was handled; later observations are suppressed."""
        now = self._clock()
        async with self._session_factory() as session:
            repo = TrackingRepository(session)
            marker = await repo.get_marker(key)
            if marker is None:
                await repo.insert_marker(key, STATE_SENT, now)
            else:
                marker.state = STATE_SENT
                marker.updated_at = now
            await session.commit()
        self._remember(key)

    async def release(self, key: str) -> None:
        """Drop a pending claim so a later observation may try again.

        Records already stored for the occurrence are detached from it. A sent
        marker is left alone.
        """
        async with self._session_factory() as session:
            repo = TrackingRepository(session)
            marker = await repo.get_marker(key)
            if marker is not None and marker.state == STATE_SENT:
                return
            await repo.delete_marker(key, state=STATE_PENDING)
            await session.commit()
        await self._records.detach_source(key)
        self._sent_cache.pop(key, None)

    # Membership
    async def load_membership(self, entity_key: str) -> MembershipState:
        async with self._session_factory() as session:
            row = await TrackingRepository(session).get_tracking(entity_key)
        if row is None:
            return MembershipState()
        return MembershipState(processed=set(row.processed or []), previous=list(row.previous or []))

    async def save_membership(self, entity_key: str, state: MembershipState) -> None:
        async with self._session_factory() as session:
            row = await TrackingRepository(session).get_or_create_tracking(entity_key, self._clock())
            row.processed = sorted(state.processed)
            row.previous = list(state.previous)
            row.updated_at = self._clock()
            await session.commit()

    async def diff_membership(
        self, entity_key: str, current: Iterable[str], exclude: Iterable[str] = ()
    ) -> MembershipDelta:
        """Members that joined since the last observation and were not notified yet.

        Members that left are dropped from the processed set so a rejoin
        notifies again. An entity seen for the first time during the startup
        grace period is absorbed as a baseline without notifying anyone.
        """
        current_list = list(dict.fromkeys(m for m in current if m))
        excluded = set(exclude)
        async with self._locks.hold(f"membership:{entity_key}"):
            state = await self.load_membership(entity_key)
            if state.is_empty and current_list and self.in_startup_grace():
                state.processed = {m for m in current_list if m not in excluded}
                state.previous = current_list
                await self.save_membership(entity_key, state)
                logger.info("Baseline of %d member(s) for %s during startup grace", len(current_list), entity_key)
                return MembershipDelta(baseline=True)
            previous = set(state.previous)
            current_set = set(current_list)
            joined = [
                m for m in current_list
                if m not in previous and m not in state.processed and m not in excluded
            ]
            left = [m for m in state.previous if m not in current_set]
            state.processed = {m for m in state.processed if m in current_set}
            state.previous = current_list
            await self.save_membership(entity_key, state)
        return MembershipDelta(joined=joined, left=left)

    async def mark_member_processed(self, entity_key: str, member_id: str) -> None:
        async with self._locks.hold(f"membership:{entity_key}"):
            state = await self.load_membership(entity_key)
            state.processed.add(member_id)
            await self.save_membership(entity_key, state)

    async def forget_member(self, entity_key: str, member_id: str) -> None:
        """Undo the observation of a member whose notification was never delivered.

        The next diff sees the member as newly joined again.
        """
        async with self._locks.hold(f"membership:{entity_key}"):
            state = await self.load_membership(entity_key)
            state.processed.discard(member_id)
            state.previous = [m for m in state.previous if m != member_id]
            await self.save_membership(entity_key, state)

    # Value snapshots
    async def remember_value(self, entity_key: str, value: Optional[str]) -> Optional[str]:
        """Store the latest observed value for an entity; return the one seen before (None if first)."""
        async with self._locks.hold(f"snapshot:{entity_key}"):
            async with self._session_factory() as session:
                row = await TrackingRepository(session).get_or_create_tracking(entity_key, self._clock())
                previous = row.snapshot
                row.snapshot = value
                row.updated_at = self._clock()
                await session.commit()
        return previous
