"""Notification record store: canonical content plus per-recipient unread rows."""
import logging
from datetime import timedelta
from typing import Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from pulse.domain.common.errors import NotFoundError, StorageDegradedError
from pulse.domain.common.types import Clock, generate_id, to_epoch_ms, utcnow
from pulse.domain.notifications.models import (
    Category,
    NotificationRecord,
    NotificationStatus,
    NotificationView,
    Scope,
)
from pulse.infra.db.repositories.notification_repo import NotificationRepository

logger = logging.getLogger(__name__)

FALLBACK_ID_PREFIX = "local_"


def is_fallback_id(record_id: Optional[str]) -> bool:
    return bool(record_id) and record_id.startswith(FALLBACK_ID_PREFIX)


class NotificationRecordStore:
    """Read state model: a status row exists while unread; reading deletes it."""

    def __init__(self, session_factory: async_sessionmaker, *, clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def _fallback_id(self) -> str:
        return f"{FALLBACK_ID_PREFIX}{to_epoch_ms(self._clock())}_{uuid4().hex[:12]}"

    async def create_record(
        self,
        scope: Scope,
        scope_id: str,
        title: str,
        body: str,
        category: Category,
        payload: dict[str, str],
        *,
        created_by: str = "system",
        source_key: Optional[str] = None,
    ) -> str:
        """Persist content once per logical event. Falls back to a local id when storage fails."""
        record = NotificationRecord(
            id=generate_id(),
            scope=scope,
            scope_id=scope_id,
            title=title,
            body=body,
            category=category,
            payload=dict(payload),
            created_at=self._clock(),
            created_by=created_by or "system",
            source_key=source_key,
        )
        try:
            async with self._session_factory() as session:
                await NotificationRepository(session).add_record(record)
                await session.commit()
        except SQLAlchemyError as e:
            fallback = self._fallback_id()
            logger.warning("%s; continuing with local id %s", StorageDegradedError("create_record", e), fallback)
            return fallback
        return record.id

    async def create_status(
        self, record_id: str, user_id: str, community_id: Optional[str] = None
    ) -> Optional[str]:
        """Get-or-create the unread row for (record, user). None when storage is degraded."""
        if is_fallback_id(record_id):
            return None
        try:
            async with self._session_factory() as session:
                repo = NotificationRepository(session)
                existing = await repo.find_status(record_id, user_id)
                if existing is not None:
                    return existing.id
                status_id = await repo.add_status(record_id, user_id, community_id, self._clock())
                try:
                    await session.commit()
                except IntegrityError:
                    # Another task created it first
                    await session.rollback()
                    existing = await repo.find_status(record_id, user_id)
                    return existing.id if existing else None
                return status_id
        except SQLAlchemyError as e:
            logger.warning("%s (user %s)", StorageDegradedError("create_status", e), user_id)
            return None

    async def get_status(self, status_id: str) -> Optional[NotificationStatus]:
        async with self._session_factory() as session:
            return await NotificationRepository(session).get_status(status_id)

    async def get_record(self, record_id: str) -> Optional[NotificationRecord]:
        async with self._session_factory() as session:
            return await NotificationRepository(session).get_record(record_id)

    async def exists_for_source(self, source_key: str) -> bool:
        async with self._session_factory() as session:
            return await NotificationRepository(session).exists_for_source(source_key)

    async def detach_source(self, source_key: str) -> int:
        """Records stored for an undelivered occurrence stop counting as notified."""
        async with self._session_factory() as session:
            count = await NotificationRepository(session).detach_source(source_key)
            await session.commit()
        if count:
            logger.info("Detached %d notification record(s) from %s", count, source_key)
        return count

    async def list_for_user(self, user_id: str, limit: int = 20, offset: int = 0) -> list[NotificationView]:
        """Unread notifications, newest first.

        Community- and user-scoped records are resolved with separate queries,
        then merged and re-sorted by record creation time.
        """
        async with self._session_factory() as session:
            repo = NotificationRepository(session)
            statuses = await repo.list_statuses(user_id, limit=limit, offset=offset)
            community_ids = [s.notification_id for s in statuses if s.community_id]
            user_ids = [s.notification_id for s in statuses if not s.community_id]
            records = await repo.get_records(community_ids, scope=Scope.COMMUNITY)
            records.update(await repo.get_records(user_ids, scope=Scope.USER))
        views = []
        for status in statuses:
            record = records.get(status.notification_id)
            if record is None:
                logger.debug("Status %s references missing record %s", status.id, status.notification_id)
                continue
            views.append(NotificationView.build(status, record))
        views.sort(key=lambda v: v.created_at, reverse=True)
        return views

    async def mark_read(self, status_id: str) -> NotificationView:
        """Resolve the status, return it as read, delete the row."""
        async with self._session_factory() as session:
            repo = NotificationRepository(session)
            status = await repo.get_status(status_id)
            if status is None:
                raise NotFoundError("Notification status", status_id)
            record = await repo.get_record(status.notification_id)
            if record is None:
                raise NotFoundError("Notification", status.notification_id)
            await repo.delete_status(status_id)
            await session.commit()
        return NotificationView.build(status, record, read=True)

    async def mark_all_read(self, user_id: str) -> list[NotificationView]:
        """Batch mark_read: resolve every unread status, delete them all in one transaction."""
        async with self._session_factory() as session:
            repo = NotificationRepository(session)
            statuses = await repo.list_statuses(user_id)
            records = await repo.get_records([s.notification_id for s in statuses])
            await repo.delete_statuses([s.id for s in statuses])
            await session.commit()
        views = [
            NotificationView.build(s, records[s.notification_id], read=True)
            for s in statuses
            if s.notification_id in records
        ]
        views.sort(key=lambda v: v.created_at, reverse=True)
        return views

    async def purge_older_than(self, days: int) -> int:
        """Delete status rows older than the cutoff. Returns the count."""
        cutoff = self._clock() - timedelta(days=days)
        async with self._session_factory() as session:
            count = await NotificationRepository(session).delete_statuses_older_than(cutoff)
            await session.commit()
        logger.info("Purged %d notification status row(s) older than %d days", count, days)
        return count
