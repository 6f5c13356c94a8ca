"""Pytest configuration: in-memory database, fake push gateway, fake clock and fake change feed."""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pulse.domain.common.errors import AuthorizationError
from pulse.domain.common.types import to_epoch_ms
from pulse.domain.notifications.models import DeliveryOutcome, FailureKind, PushMessage
from pulse.domain.users.models import IdentityRecord
from pulse.domain.watchers.models import ChangeEvent, ChangeHandler
from pulse.infra.db.base import Base
# Import all models to ensure they're registered with Base
from pulse.infra.db import models  # noqa: F401
from pulse.infra.db.models.user import UserModel, UserProfileModel
from pulse.services.container import build_components, build_watchers
from pulse.settings import Settings

START = datetime(2026, 3, 1, 12, 0, 0)


class FakeClock:
    """Settable clock; every component in a test shares one."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> None:
        self.now += timedelta(seconds=seconds, **kwargs)

    def ms(self, offset_seconds: float = 0) -> int:
        """Epoch ms of now (+ offset), as the mobile clients write timestamps."""
        return to_epoch_ms(self.now + timedelta(seconds=offset_seconds))


class FakeGateway:
    """PushGateway that records every message. Tokens listed in `failures` fail with that kind."""

    def __init__(self):
        self.sent: list[PushMessage] = []
        self.failures: dict[str, FailureKind] = {}
        self.errors: dict[str, Exception] = {}

    async def send(self, push: PushMessage) -> DeliveryOutcome:
        self.sent.append(push)
        if push.token in self.errors:
            raise self.errors[push.token]
        kind = self.failures.get(push.token)
        if kind is not None:
            return DeliveryOutcome.failed(push.token, kind, kind.value)
        return DeliveryOutcome.ok(push.token, f"msg-{len(self.sent)}")

    @property
    def tokens(self) -> list[str]:
        return [p.token for p in self.sent]

    @property
    def titles(self) -> list[str]:
        return [p.title for p in self.sent]


class FakeIdentity:
    """IdentityProvider with in-memory accounts and ID tokens (token -> claims)."""

    def __init__(self):
        self.users: dict[str, IdentityRecord] = {}
        self.tokens: dict[str, dict] = {}

    async def get_user(self, uid: str) -> Optional[IdentityRecord]:
        return self.users.get(uid)

    async def verify_token(self, id_token: str) -> dict:
        claims = self.tokens.get(id_token)
        if claims is None:
            raise AuthorizationError("Invalid authentication token")
        return claims


class FakeFeed:
    """ChangeFeed whose subscriptions stay open until cancelled; tests push events with emit()."""

    def __init__(self):
        self.handlers: dict[str, ChangeHandler] = {}
        self.subscribe_calls: dict[str, int] = {}
        self.fail_next: dict[str, Exception] = {}

    async def subscribe(self, collection: str, handler: ChangeHandler) -> None:
        self.subscribe_calls[collection] = self.subscribe_calls.get(collection, 0) + 1
        error = self.fail_next.pop(collection, None)
        if error is not None:
            raise error
        self.handlers[collection] = handler
        await asyncio.Event().wait()

    async def emit(self, event: ChangeEvent) -> None:
        await self.handlers[event.collection](event)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
async def engine():
    """Create a test database engine."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def config():
    """Settings with pacing and retry delays switched off."""
    return Settings(
        community_send_delay_seconds=0,
        broadcast_retry_delay_seconds=0,
        broadcast_max_retries=3,
        startup_grace_period_seconds=0,
        watch_recency_window_seconds=120,
    )


@pytest.fixture
def components(session_factory, config, gateway, identity, clock):
    return build_components(session_factory, config, gateway, identity, clock=clock)


@pytest.fixture
def seed_users(session_factory):
    """Insert user rows: await seed_users({"id": "u1", "community_id": "c1", ...}, ...)."""

    async def _seed(*users: dict[str, Any], profiles: tuple[dict[str, Any], ...] = ()) -> None:
        async with session_factory() as session:
            for user in users:
                session.add(UserModel(**{"is_admin": False, "created_at": START, **user}))
            for profile in profiles:
                session.add(UserProfileModel(**{"updated_at": START, **profile}))
            await session.commit()

    return _seed


@pytest.fixture
def register(components):
    """Register device tokens: await register("u1", "tok-1", "tok-2")."""

    async def _register(user_id: str, *tokens: str, platform: str = "android") -> None:
        for token in tokens:
            await components.registry.register(user_id, token, platform)

    return _register


@pytest.fixture
def watchers(components, config):
    """Every catalog watcher, by name."""
    return {w.name: w for w in build_watchers(components, config)}


@pytest.fixture
def feed():
    return FakeFeed()
