"""Tests for the token registry and the preference filter."""
from datetime import datetime, timedelta

import pytest

from pulse.domain.common.errors import NotFoundError, ValidationError
from pulse.domain.notifications.models import Category, DeviceToken, Platform, TokenBundle
from pulse.domain.notifications.preferences import default_preferences, is_enabled
from pulse.domain.notifications.token_registry import TokenRegistry
from pulse.infra.db.models.tokens import MissingTokenModel

START = datetime(2026, 3, 1, 12, 0, 0)


def _bundle(**prefs) -> TokenBundle:
    return TokenBundle(user_id="u1", tokens=[], preferences=prefs, created_at=START, updated_at=START)


def test_preferences_fail_open() -> None:
    """Only an explicit False disables a category."""
    assert is_enabled(None, Category.CHAT)
    assert is_enabled(_bundle(), Category.CHAT)
    assert is_enabled(_bundle(chat=True), Category.CHAT)
    assert not is_enabled(_bundle(chat=False), Category.CHAT)
    # Direct sends are never filtered
    assert is_enabled(_bundle(general=False), Category.GENERAL)


def test_default_preferences_cover_filterable_categories() -> None:
    prefs = default_preferences()
    assert set(prefs) == {c.value for c in Category.filterable()}
    assert all(prefs.values())
    assert Category.GENERAL.value not in prefs


async def test_register_creates_bundle_with_defaults(components, clock) -> None:
    bundle = await components.registry.register("u1", "tok-a", "android")

    assert [t.token for t in bundle.tokens] == ["tok-a"]
    assert bundle.preferences == default_preferences()
    stored = await components.registry.get_bundle("u1")
    assert stored.tokens[0].platform is Platform.ANDROID
    assert stored.tokens[0].created_at == clock()


async def test_register_is_idempotent_and_refreshes(components, clock) -> None:
    registry = components.registry
    await registry.register("u1", "tok-a", "android")
    clock.advance(hours=1)
    bundle = await registry.register("u1", "tok-a", "ios")

    assert len(bundle.tokens) == 1
    token = bundle.tokens[0]
    assert token.platform is Platform.IOS
    assert token.last_active_at == clock()
    assert token.created_at == clock() - timedelta(hours=1)


async def test_register_rejects_bad_input(components) -> None:
    with pytest.raises(ValidationError):
        await components.registry.register("u1", "", "android")
    with pytest.raises(ValidationError):
        await components.registry.register("u1", "tok-a", "blackberry")


async def test_register_evicts_oldest_at_limit(session_factory, clock) -> None:
    registry = TokenRegistry(session_factory, token_limit=3, clock=clock)
    for token in ("t1", "t2", "t3"):
        await registry.register("u1", token, "android")
        clock.advance(seconds=1)

    bundle = await registry.register("u1", "t4", "android")

    assert [t.token for t in bundle.tokens] == ["t2", "t3", "t4"]


async def test_register_reactivates_logged_out_token(components) -> None:
    registry = components.registry
    await registry.register("u1", "tok-a", "android")
    await registry.logout("u1")

    bundle = await registry.register("u1", "tok-a", "android")

    assert [t.token for t in bundle.active_tokens()] == ["tok-a"]


async def test_register_drops_stale_tokens(components, clock) -> None:
    registry = components.registry
    await registry.register("u1", "old", "android")
    clock.advance(days=91)

    bundle = await registry.register("u1", "new", "android")

    assert [t.token for t in bundle.tokens] == ["new"]


def test_cleanup_stale_keeps_recent_tokens(clock) -> None:
    registry = TokenRegistry(None, retention_days=90, clock=clock)
    recent = DeviceToken("recent", Platform.WEB, START, START)
    logged_out = DeviceToken("gone", Platform.WEB, START, START, logged_out=True)
    idle = DeviceToken("idle", Platform.WEB, START - timedelta(days=100), START - timedelta(days=100))
    bundle = TokenBundle("u1", [recent, logged_out, idle], {}, START, START)

    removed = registry.cleanup_stale(bundle)

    assert [t.token for t in bundle.tokens] == ["recent"]
    assert {t.token for t in removed} == {"gone", "idle"}


def test_token_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        TokenRegistry(None, token_limit=0)


async def test_set_preferences_merges(components) -> None:
    registry = components.registry
    await registry.register("u1", "tok-a", "android")

    bundle = await registry.set_preferences("u1", {"chat": False})

    assert bundle.preferences["chat"] is False
    assert bundle.preferences["marketplace"] is True
    stored = await registry.get_bundle("u1")
    assert stored.preferences["chat"] is False


async def test_set_preferences_rejects_unknown_category(components) -> None:
    await components.registry.register("u1", "tok-a", "android")
    with pytest.raises(ValidationError):
        await components.registry.set_preferences("u1", {"weather": False})


async def test_set_preferences_requires_bundle(components) -> None:
    with pytest.raises(NotFoundError):
        await components.registry.set_preferences("nobody", {"chat": False})


async def test_logout_marks_every_token(components) -> None:
    registry = components.registry
    await registry.register("u1", "tok-a", "android")
    await registry.register("u1", "tok-b", "ios")

    bundle = await registry.logout("u1")

    assert len(bundle.tokens) == 2
    assert bundle.active_tokens() == []


async def test_remove_token(components) -> None:
    registry = components.registry
    await registry.register("u1", "tok-a", "android")
    await registry.register("u1", "tok-b", "android")

    bundle = await registry.remove("u1", "tok-a")

    assert [t.token for t in bundle.tokens] == ["tok-b"]
    with pytest.raises(NotFoundError):
        await registry.remove("u1", "tok-a")
    with pytest.raises(NotFoundError):
        await registry.remove("nobody", "tok-a")


async def test_prune_failed_removes_only_listed_tokens(components) -> None:
    registry = components.registry
    await registry.register("u1", "tok-a", "android")
    await registry.register("u1", "tok-b", "android")

    bundle = await registry.prune_failed("u1", ["tok-a", "unknown"])

    assert [t.token for t in bundle.tokens] == ["tok-b"]
    assert await registry.prune_failed("nobody", ["tok-a"]) is None


async def test_registration_clears_missing_marker(components, session_factory) -> None:
    registry = components.registry
    await registry.record_missing("u1")

    await registry.register("u1", "tok-a", "android")

    async with session_factory() as session:
        assert await session.get(MissingTokenModel, "u1") is None


async def test_recover_missing_tokens(components, seed_users, clock) -> None:
    registry = components.registry
    await seed_users({"id": "old-timer"}, {"id": "newcomer"}, {"id": "has-token"})
    await registry.record_missing("old-timer")
    await registry.record_missing("deleted-user")
    clock.advance(days=31)
    await registry.record_missing("newcomer")
    await registry.record_missing("has-token")
    await registry.register("has-token", "tok", "android")
    # Registration already cleared has-token; put the marker back to exercise the recovery branch
    await registry.record_missing("has-token")

    report = await registry.recover_missing_tokens()

    assert report.checked == 4
    assert report.recovered == ["has-token"]
    assert report.removed == ["deleted-user"]
    assert sorted(report.still_missing) == ["newcomer", "old-timer"]
    assert report.long_term_missing == ["old-timer"]
    assert (await registry.recover_missing_tokens()).checked == 2
