"""Tests for the user directory and display-name resolution."""
import pytest

from pulse.domain.users.directory import DisplayNameResolver, UserDirectory, truncated_id
from pulse.domain.users.models import IdentityRecord


@pytest.fixture
def directory(session_factory):
    return UserDirectory(session_factory)


@pytest.fixture
async def people(seed_users):
    await seed_users(
        {"id": "u-full", "community_id": "c1", "full_name": "  Alice Smith ", "display_name": "Ali"},
        {"id": "u-display", "community_id": "c1", "display_name": "Bobby"},
        {"id": "u-role", "community_id": "c1", "username": "carol", "role": "admin"},
        {"id": "u-flag", "community_id": "c1", "is_admin": True},
        {"id": "u-bare", "community_id": "c2"},
        profiles=({"user_id": "u-bare", "name": "dora_legacy"},),
    )


def test_truncated_id() -> None:
    assert truncated_id("abcdefghijkl") == "abcdefgh..."


async def test_membership_queries(directory, people) -> None:
    assert await directory.list_member_ids("c1") == ["u-display", "u-flag", "u-full", "u-role"]
    assert await directory.list_admin_ids("c1") == ["u-flag", "u-role"]
    assert await directory.list_member_ids("nowhere") == []
    assert await directory.is_admin("u-role")
    assert not await directory.is_admin("u-full")
    assert not await directory.is_admin("ghost")


async def test_find_id_by_name(directory, people) -> None:
    assert await directory.find_id_by_name("bobby") == "u-display"
    assert await directory.find_id_by_name("CAROL") == "u-role"
    assert await directory.find_id_by_name("Nobody Here") is None
    assert await directory.find_id_by_name("   ") is None


async def test_name_from_primary_profile(directory, people) -> None:
    names = DisplayNameResolver(directory)

    assert await names.resolve("u-full") == "Alice Smith"
    assert await names.resolve("u-display") == "Bobby"


async def test_name_from_secondary_profile(directory, people) -> None:
    assert await DisplayNameResolver(directory).resolve("u-bare") == "dora_legacy"


async def test_preferred_name_wins(directory, people) -> None:
    names = DisplayNameResolver(directory)

    assert await names.resolve("u-full", preferred="Al") == "Al"
    assert await names.resolve("u-full", preferred="  ") == "Alice Smith"
    assert await names.resolve(None) == "Someone"


async def test_name_from_identity_provider(directory, identity) -> None:
    identity.users = {
        "with-email-abc": IdentityRecord(uid="with-email-abc", email="erin@example.com", display_name="Erin E"),
        "no-email-abcdef": IdentityRecord(uid="no-email-abcdef", display_name="Frank"),
    }
    names = DisplayNameResolver(directory, identity)

    assert await names.resolve("with-email-abc") == "erin"
    assert await names.resolve("no-email-abcdef") == "Frank"
    assert await names.resolve("unknown-user-id") == "unknown-..."


async def test_identity_failure_falls_back_to_id(directory) -> None:
    class BrokenIdentity:
        async def get_user(self, uid):
            raise ConnectionError("auth service down")

    names = DisplayNameResolver(directory, BrokenIdentity())

    assert await names.resolve("ghost-user-1") == "ghost-us..."
