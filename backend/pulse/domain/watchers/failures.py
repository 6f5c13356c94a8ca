"""Failure log for exhausted broadcasts and watcher errors."""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from pulse.domain.common.types import Clock, generate_id, utcnow
from pulse.domain.watchers.models import NotificationIntent
from pulse.infra.db.models.failure import FailedNotificationModel
from pulse.infra.db.repositories.failure_repo import FailureRepository

logger = logging.getLogger(__name__)

KIND_DELIVERY = "delivery"
KIND_WATCHER_ERROR = "watcher_error"


class FailureLog:
    """Writes are best effort: a failing log write is logged, never raised."""

    def __init__(self, session_factory: async_sessionmaker, *, clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    async def _add(self, entry: FailedNotificationModel) -> None:
        try:
            async with self._session_factory() as session:
                await FailureRepository(session).add(entry)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Could not write failure log entry (%s/%s): %s", entry.kind, entry.watcher, e)

    async def record_delivery_failure(
        self,
        watcher: str,
        entity_id: str,
        source_key: Optional[str],
        intent: NotificationIntent,
        error: str,
    ) -> None:
        logger.error("Watcher %s gave up on %s after retries: %s", watcher, entity_id, error)
        await self._add(
            FailedNotificationModel(
                id=generate_id(),
                kind=KIND_DELIVERY,
                watcher=watcher,
                entity_id=entity_id,
                source_key=source_key,
                intent=intent.to_dict(),
                error=error,
                created_at=self._clock(),
            )
        )

    async def record_watcher_error(self, watcher: str, entity_id: Optional[str], error: BaseException) -> None:
        await self._add(
            FailedNotificationModel(
                id=generate_id(),
                kind=KIND_WATCHER_ERROR,
                watcher=watcher,
                entity_id=entity_id,
                error=f"{type(error).__name__}: {error}",
                created_at=self._clock(),
            )
        )

    async def list_recent(self, limit: int = 50, kind: Optional[str] = None) -> list[FailedNotificationModel]:
        async with self._session_factory() as session:
            return await FailureRepository(session).list_recent(limit=limit, kind=kind)
