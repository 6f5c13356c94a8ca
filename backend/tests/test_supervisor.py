"""Tests for the watcher supervisor."""
import asyncio

from pulse.domain.watchers.catalog import CHATS, COMMUNITY_NOTICES
from pulse.domain.watchers.models import ChangeEvent, ChangeKind
from pulse.domain.watchers.supervisor import WatcherSupervisor


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


async def test_start_all_is_idempotent(feed, watchers) -> None:
    supervisor = WatcherSupervisor(feed, list(watchers.values()), resubscribe_delay_seconds=0)

    supervisor.start_all()
    supervisor.start_all()
    await _settle()

    assert supervisor.started
    assert set(feed.subscribe_calls) == set(supervisor.collections)
    assert all(count == 1 for count in feed.subscribe_calls.values())
    await supervisor.stop_all()
    assert not supervisor.started


async def test_events_reach_accepting_watchers(feed, watchers, seed_users, register, gateway, clock) -> None:
    await seed_users(
        {"id": "author", "community_id": "c1", "full_name": "Ada Admin"},
        {"id": "m1", "community_id": "c1", "full_name": "Mia Member"},
    )
    await register("m1", "tok-m1")
    supervisor = WatcherSupervisor(feed, list(watchers.values()), resubscribe_delay_seconds=0)
    supervisor.start_all()
    await _settle()

    await feed.emit(ChangeEvent(COMMUNITY_NOTICES, "n1", ChangeKind.ADDED, {
        "title": "Street party",
        "content": "Saturday at noon",
        "authorId": "author",
        "authorName": "Ada Admin",
        "communityId": "c1",
        "createdAt": clock.ms(),
    }))
    await supervisor.drain()

    assert gateway.tokens == ["tok-m1"]
    assert gateway.titles == ["Community Notice"]
    await supervisor.stop_all()


async def test_failed_subscription_is_retried(feed, watchers) -> None:
    feed.fail_next[CHATS] = ConnectionError("listener dropped")
    supervisor = WatcherSupervisor(feed, list(watchers.values()), resubscribe_delay_seconds=0)

    supervisor.start_all()
    await _settle()

    assert feed.subscribe_calls[CHATS] == 2
    assert CHATS in feed.handlers
    await supervisor.stop_all()


async def test_stop_before_start_is_noop(feed, watchers) -> None:
    supervisor = WatcherSupervisor(feed, list(watchers.values()))

    await supervisor.stop_all()

    assert feed.subscribe_calls == {}
