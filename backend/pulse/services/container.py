"""Wiring: build every component from settings with explicit dependencies."""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from pulse.domain.common.types import Clock, utcnow
from pulse.domain.notifications.dedup import DedupTracker
from pulse.domain.notifications.dispatcher import Dispatcher, PushGateway
from pulse.domain.notifications.record_store import NotificationRecordStore
from pulse.domain.notifications.token_registry import TokenRegistry
from pulse.domain.users.directory import DisplayNameResolver, IdentityProvider, UserDirectory
from pulse.domain.watchers.catalog import build_watch_specs
from pulse.domain.watchers.failures import FailureLog
from pulse.domain.watchers.models import WatchContext
from pulse.domain.watchers.watcher import Watcher
from pulse.services.notification_service import NotificationService
from pulse.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Components:
    session_factory: async_sessionmaker
    registry: TokenRegistry
    records: NotificationRecordStore
    directory: UserDirectory
    names: DisplayNameResolver
    dedup: DedupTracker
    dispatcher: Dispatcher
    failures: FailureLog
    service: NotificationService
    identity: Optional[IdentityProvider] = None
    clock: Clock = utcnow


def build_components(
    session_factory: async_sessionmaker,
    config: Settings,
    gateway: PushGateway,
    identity: Optional[IdentityProvider] = None,
    clock: Clock = utcnow,
) -> Components:
    registry = TokenRegistry(
        session_factory,
        token_limit=config.token_limit,
        retention_days=config.token_retention_days,
        missing_alert_days=config.missing_token_alert_days,
        clock=clock,
    )
    records = NotificationRecordStore(session_factory, clock=clock)
    directory = UserDirectory(session_factory)
    dispatcher = Dispatcher(
        registry, records, directory, gateway,
        member_delay_seconds=config.community_send_delay_seconds,
        clock=clock,
    )
    dedup = DedupTracker(
        session_factory, records,
        cache_ttl_seconds=config.dedup_cache_ttl_seconds,
        claim_timeout_seconds=config.dedup_claim_timeout_seconds,
        startup_grace_seconds=config.startup_grace_period_seconds,
        clock=clock,
    )
    return Components(
        session_factory=session_factory,
        registry=registry,
        records=records,
        directory=directory,
        names=DisplayNameResolver(directory, identity),
        dedup=dedup,
        dispatcher=dispatcher,
        failures=FailureLog(session_factory, clock=clock),
        service=NotificationService(registry, records, dispatcher, retention_days=config.notification_retention_days),
        identity=identity,
        clock=clock,
    )


def build_watchers(components: Components, config: Settings) -> list[Watcher]:
    context = WatchContext(
        dispatcher=components.dispatcher,
        dedup=components.dedup,
        directory=components.directory,
        names=components.names,
        failures=components.failures,
        recency_window_for=config.recency_window_for,
        max_retries=config.broadcast_max_retries,
        retry_delay_seconds=config.broadcast_retry_delay_seconds,
        clock=components.clock,
    )
    watchers = [Watcher(spec, context) for spec in build_watch_specs()]
    logger.info("Built %d watcher(s)", len(watchers))
    return watchers
