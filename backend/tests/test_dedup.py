"""Tests for the dedup & progress tracker."""
import asyncio
from datetime import timedelta

import pytest

from pulse.domain.notifications.dedup import DedupTracker, STATE_PENDING, STATE_SENT
from pulse.domain.notifications.models import Category, Scope
from pulse.infra.db.models.tracking import NotificationMarkerModel


@pytest.fixture
def tracker(session_factory, components, clock):
    return DedupTracker(
        session_factory, components.records,
        cache_ttl_seconds=60, claim_timeout_seconds=600, startup_grace_seconds=30, clock=clock,
    )


async def _state(session_factory, key):
    async with session_factory() as session:
        marker = await session.get(NotificationMarkerModel, key)
        return marker.state if marker else None


def test_is_recent(clock) -> None:
    tracker = DedupTracker(None, None, clock=clock)
    now = clock()

    assert tracker.is_recent(now, 120)
    assert tracker.is_recent(now - timedelta(seconds=120), 120)
    assert not tracker.is_recent(now - timedelta(seconds=121), 120)
    assert not tracker.is_recent(None, 120)
    # Client clocks run ahead sometimes
    assert tracker.is_recent(now + timedelta(seconds=30), 120)


def test_startup_grace(clock) -> None:
    tracker = DedupTracker(None, None, startup_grace_seconds=30, clock=clock)
    assert tracker.in_startup_grace()
    clock.advance(seconds=31)
    assert not tracker.in_startup_grace()


async def test_claim_then_mark_notified(tracker, session_factory) -> None:
    key = "notice:n1|community:c1"
    assert await tracker.should_notify(key)
    assert await tracker.claim(key)
    assert await _state(session_factory, key) == STATE_PENDING
    # A concurrent observer sees the pending claim
    assert not await tracker.should_notify(key)
    assert not await tracker.claim(key)

    await tracker.mark_notified(key)

    assert await _state(session_factory, key) == STATE_SENT
    assert not await tracker.should_notify(key)
    assert not await tracker.claim(key)


async def test_markers_survive_a_new_tracker(tracker, session_factory, components, clock) -> None:
    key = "chat:c1:m1|user:u2"
    await tracker.claim(key)
    await tracker.mark_notified(key)

    restarted = DedupTracker(session_factory, components.records, clock=clock)

    assert not await restarted.should_notify(key)


async def test_release_allows_a_retry(tracker, session_factory) -> None:
    key = "report:r1|user:admin"
    assert await tracker.claim(key)

    await tracker.release(key)

    assert await _state(session_factory, key) is None
    assert await tracker.should_notify(key)
    assert await tracker.claim(key)


async def test_release_never_drops_a_sent_marker(tracker, session_factory) -> None:
    key = "report:r1|user:admin"
    await tracker.claim(key)
    await tracker.mark_notified(key)

    await tracker.release(key)

    assert await _state(session_factory, key) == STATE_SENT


async def test_abandoned_claim_is_reclaimed(tracker, clock) -> None:
    key = "volunteer:v1|community:c1"
    assert await tracker.claim(key)
    clock.advance(seconds=601)

    assert await tracker.should_notify(key)
    assert await tracker.claim(key)


async def test_concurrent_claims_have_one_winner(tracker) -> None:
    key = "market-item:i1|community:c1"

    results = await asyncio.gather(*(tracker.claim(key) for _ in range(5)))

    assert results.count(True) == 1


async def test_existing_record_for_source_counts_as_notified(tracker, components) -> None:
    key = "notice:n9|community:c1"
    await components.records.create_record(
        Scope.COMMUNITY, "c1", "Community Notice", "Body", Category.COMMUNITY_NOTICES, {}, source_key=key,
    )

    assert not await tracker.should_notify(key)


async def test_release_detaches_stored_records(tracker, components) -> None:
    key = "notice:n9|community:c1"
    assert await tracker.claim(key)
    record_id = await components.records.create_record(
        Scope.COMMUNITY, "c1", "Community Notice", "Body", Category.COMMUNITY_NOTICES, {}, source_key=key,
    )
    assert not await tracker.should_notify(key)

    await tracker.release(key)

    assert await tracker.should_notify(key)
    assert (await components.records.get_record(record_id)).source_key is None


async def test_release_after_send_keeps_records_attached(tracker, components) -> None:
    key = "notice:n9|community:c1"
    await tracker.claim(key)
    await components.records.create_record(
        Scope.COMMUNITY, "c1", "Community Notice", "Body", Category.COMMUNITY_NOTICES, {}, source_key=key,
    )
    await tracker.mark_notified(key)

    await tracker.release(key)

    assert await components.records.exists_for_source(key)


async def test_membership_baseline_during_startup_grace(tracker) -> None:
    delta = await tracker.diff_membership("volunteer-joins:v1", ["a", "b"])

    assert delta.baseline
    assert delta.joined == []
    state = await tracker.load_membership("volunteer-joins:v1")
    assert state.processed == {"a", "b"}
    assert state.previous == ["a", "b"]


async def test_membership_diff_and_rejoin(tracker, clock) -> None:
    clock.advance(seconds=31)
    key = "volunteer-joins:v1"

    first = await tracker.diff_membership(key, ["a"], exclude=["owner"])
    assert first.joined == ["a"]
    await tracker.mark_member_processed(key, "a")

    # Seen again with no change: nothing new
    assert (await tracker.diff_membership(key, ["a"])).joined == []

    second = await tracker.diff_membership(key, ["a", "b", "owner"], exclude=["owner"])
    assert second.joined == ["b"]
    await tracker.mark_member_processed(key, "b")

    left = await tracker.diff_membership(key, ["b"])
    assert left.left == ["a", "owner"]
    assert left.joined == []
    assert "a" not in (await tracker.load_membership(key)).processed

    rejoined = await tracker.diff_membership(key, ["b", "a"])
    assert rejoined.joined == ["a"]


async def test_remember_value_returns_previous(tracker) -> None:
    assert await tracker.remember_value("report-status:r1", "pending") is None
    assert await tracker.remember_value("report-status:r1", "in_progress") == "pending"
    assert await tracker.remember_value("report-status:r1", "in_progress") == "in_progress"


async def test_forget_member_allows_detection_again(tracker, clock) -> None:
    clock.advance(seconds=31)
    key = "volunteer-joins:v1"
    await tracker.diff_membership(key, ["a", "b"])
    await tracker.mark_member_processed(key, "a")

    await tracker.forget_member(key, "b")

    state = await tracker.load_membership(key)
    assert state.processed == {"a"}
    assert state.previous == ["a"]
    assert (await tracker.diff_membership(key, ["a", "b"])).joined == ["b"]


async def test_cancelled_waiter_does_not_leak_its_lock(tracker) -> None:
    locks = tracker._locks
    entered = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("k"):
            entered.set()
            await release.wait()

    async def waiter():
        async with locks.hold("k"):
            pass

    holding = asyncio.create_task(holder())
    await entered.wait()
    waiting = asyncio.create_task(waiter())
    await asyncio.sleep(0)
    waiting.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiting
    release.set()
    await holding

    assert locks._locks == {}
    assert locks._users == {}
