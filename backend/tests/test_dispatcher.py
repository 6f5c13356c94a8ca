"""Tests for the dispatcher: preference filtering, token pruning and community fan-out."""
import pytest

from pulse.domain.common.errors import ValidationError
from pulse.domain.notifications.dispatcher import NO_MEMBERS, NO_TOKENS, TYPE_DISABLED, build_data
from pulse.domain.notifications.models import Category, FailureKind


def test_build_data_stringifies_and_adds_routing_keys() -> None:
    data = build_data(
        {"chatId": "c1", "count": 3, "missing": None},
        category=Category.CHAT, notification_id="n1", now_ms=1700000000000,
    )

    assert data == {
        "chatId": "c1",
        "count": "3",
        "type": "chat",
        "notificationId": "n1",
        "timestamp": "1700000000000",
        "click_action": "FLUTTER_NOTIFICATION_CLICK",
    }


async def test_send_to_user_delivers_to_every_active_token(components, gateway, register) -> None:
    await register("u1", "tok-a", "tok-b")

    result = await components.dispatcher.send_to_user("u1", "Hi", "There", {"type": "chat", "chatId": "c1"})

    assert result.success
    assert result.success_count == 2
    assert sorted(gateway.tokens) == ["tok-a", "tok-b"]
    assert gateway.sent[0].data["notificationId"] == result.notification_id
    views = await components.records.list_for_user("u1")
    assert [v.title for v in views] == ["Hi"]
    assert views[0].category is Category.CHAT


async def test_send_to_user_without_tokens(components, gateway) -> None:
    result = await components.dispatcher.send_to_user("u1", "Hi", "There")

    assert not result.success
    assert result.error == NO_TOKENS
    assert gateway.sent == []
    # Recorded for the recovery job
    report = await components.registry.recover_missing_tokens()
    assert report.checked == 1


async def test_send_to_user_respects_preferences(components, gateway, register) -> None:
    await register("u1", "tok-a")
    await components.registry.set_preferences("u1", {"chat": False})

    result = await components.dispatcher.send_to_user("u1", "Hi", "There", category=Category.CHAT)

    assert not result.success
    assert result.error == TYPE_DISABLED
    assert gateway.sent == []
    assert await components.records.list_for_user("u1") == []
    # Direct sends ignore preferences
    direct = await components.dispatcher.send_to_user("u1", "Hi", "There")
    assert direct.success


async def test_send_to_user_requires_fields(components) -> None:
    with pytest.raises(ValidationError):
        await components.dispatcher.send_to_user("u1", "", "There")
    with pytest.raises(ValidationError):
        await components.dispatcher.send_to_user("", "Hi", "There")


async def test_permanent_failures_are_pruned_transient_kept(components, gateway, register) -> None:
    await register("u1", "good", "invalid", "gone", "flaky")
    gateway.failures = {
        "invalid": FailureKind.INVALID_TOKEN,
        "gone": FailureKind.UNREGISTERED,
        "flaky": FailureKind.TRANSIENT,
    }

    result = await components.dispatcher.send_to_user("u1", "Hi", "There")

    assert result.success
    assert result.success_count == 1
    assert result.failure_count == 3
    assert sorted(result.pruned_tokens) == ["gone", "invalid"]
    bundle = await components.registry.get_bundle("u1")
    assert sorted(t.token for t in bundle.tokens) == ["flaky", "good"]


async def test_gateway_exception_is_isolated_per_token(components, gateway, register) -> None:
    await register("u1", "boom", "fine")
    gateway.errors["boom"] = RuntimeError("socket closed")

    result = await components.dispatcher.send_to_user("u1", "Hi", "There")

    assert result.success
    assert result.success_count == 1
    assert not result.should_retry
    bundle = await components.registry.get_bundle("u1")
    assert len(bundle.tokens) == 2


async def test_only_transient_failures_should_retry(components, gateway, register) -> None:
    await register("u1", "flaky")
    await register("u2", "gone")
    gateway.failures = {"flaky": FailureKind.TRANSIENT, "gone": FailureKind.UNREGISTERED}

    flaky = await components.dispatcher.send_to_user("u1", "Hi", "There")
    gone = await components.dispatcher.send_to_user("u2", "Hi", "There")

    assert not flaky.success and flaky.should_retry
    assert not gone.success and not gone.should_retry


async def test_send_reuses_given_notification_id(components, gateway, register) -> None:
    await register("u1", "tok-a")
    first = await components.dispatcher.send_to_user("u1", "Hi", "There")

    again = await components.dispatcher.send_to_user("u1", "Hi", "There", notification_id=first.notification_id)

    assert again.notification_id == first.notification_id
    assert again.status_id == first.status_id
    assert len(await components.records.list_for_user("u1")) == 1


async def test_send_to_community_excludes_actor(components, gateway, register, seed_users) -> None:
    await seed_users(
        {"id": "actor", "community_id": "c1"},
        {"id": "m1", "community_id": "c1"},
        {"id": "m2", "community_id": "c1"},
        {"id": "outsider", "community_id": "c2"},
    )
    await register("actor", "tok-actor")
    await register("m1", "tok-m1")
    await register("outsider", "tok-out")

    result = await components.dispatcher.send_to_community(
        "c1", "Notice", "Body", {"type": "communityNotices"}, exclude_user_id="actor",
    )

    assert result.success
    assert result.total_users == 2
    assert result.sent_count == 1
    assert gateway.tokens == ["tok-m1"]
    by_user = {r.user_id: r for r in result.results}
    assert by_user["m2"].error == NO_TOKENS
    # One shared record; a status row for the member that was reached
    record = await components.records.get_record(result.notification_id)
    assert record.created_by == "actor"
    views = await components.records.list_for_user("m1")
    assert views[0].notification_id == result.notification_id
    assert views[0].community_id == "c1"
    assert await components.records.list_for_user("actor") == []


async def test_send_to_community_filters_each_member(components, gateway, register, seed_users) -> None:
    await seed_users({"id": "m1", "community_id": "c1"}, {"id": "m2", "community_id": "c1"})
    await register("m1", "tok-m1")
    await register("m2", "tok-m2")
    await components.registry.set_preferences("m2", {"marketplace": False})

    result = await components.dispatcher.send_to_community("c1", "Item", "Body", category=Category.MARKETPLACE)

    assert gateway.tokens == ["tok-m1"]
    assert result.sent_count == 1
    assert {r.user_id: r.error for r in result.results}["m2"] == TYPE_DISABLED


async def test_send_to_community_without_members(components, gateway) -> None:
    result = await components.dispatcher.send_to_community("empty", "Notice", "Body")

    assert not result.success
    assert result.error == NO_MEMBERS
    assert gateway.sent == []


async def test_send_to_users_sends_individually(components, gateway, register) -> None:
    await register("a1", "tok-a1")
    await register("a2", "tok-a2")

    results = await components.dispatcher.send_to_users(["a1", "a2", "a1"], "Report", "Body", category=Category.REPORTS)

    assert [r.user_id for r in results] == ["a1", "a2"]
    assert all(r.success for r in results)
    assert results[0].notification_id != results[1].notification_id
