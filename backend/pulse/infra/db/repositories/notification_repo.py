"""Notification record / status repository."""
from datetime import datetime
from typing import Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, update

from pulse.domain.common.types import generate_id
from pulse.domain.notifications.models import NotificationRecord, NotificationStatus, Scope
from pulse.infra.db.models.notification import NotificationRecordModel, NotificationStatusModel


class NotificationRepository:
    """Notification repository. Callers commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Records
    async def add_record(self, record: NotificationRecord) -> None:
        self.session.add(NotificationRecordModel.from_entity(record))

    async def get_record(self, record_id: str) -> Optional[NotificationRecord]:
        model = await self.session.get(NotificationRecordModel, record_id)
        return model.to_entity() if model else None

    async def get_records(self, record_ids: Iterable[str], scope: Optional[Scope] = None) -> dict[str, NotificationRecord]:
        """Resolve many records by id (optionally restricted to one scope)."""
        ids = list(set(record_ids))
        if not ids:
            return {}
        q = select(NotificationRecordModel).where(NotificationRecordModel.id.in_(ids))
        if scope is not None:
            q = q.where(NotificationRecordModel.scope == scope.value)
        result = await self.session.execute(q)
        return {m.id: m.to_entity() for m in result.scalars().all()}

    async def exists_for_source(self, source_key: str) -> bool:
        """True if a record was already stored for this occurrence."""
        result = await self.session.execute(
            select(func.count())
            .select_from(NotificationRecordModel)
            .where(NotificationRecordModel.source_key == source_key)
        )
        return (result.scalar() or 0) > 0

    async def detach_source(self, source_key: str) -> int:
        """Unlink records from the occurrence that produced them. Returns the count."""
        result = await self.session.execute(
            update(NotificationRecordModel)
            .where(NotificationRecordModel.source_key == source_key)
            .values(source_key=None)
        )
        return result.rowcount or 0

    # Statuses
    async def get_status(self, status_id: str) -> Optional[NotificationStatus]:
        model = await self.session.get(NotificationStatusModel, status_id)
        return model.to_entity() if model else None

    async def find_status(self, notification_id: str, user_id: str) -> Optional[NotificationStatus]:
        result = await self.session.execute(
            select(NotificationStatusModel).where(
                NotificationStatusModel.notification_id == notification_id,
                NotificationStatusModel.user_id == user_id,
            )
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def add_status(
        self, notification_id: str, user_id: str, community_id: Optional[str], now: datetime
    ) -> str:
        status_id = generate_id()
        self.session.add(
            NotificationStatusModel(
                id=status_id,
                user_id=user_id,
                notification_id=notification_id,
                community_id=community_id,
                read=False,
                created_at=now,
            )
        )
        return status_id

    async def list_statuses(
        self, user_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[NotificationStatus]:
        """Unread statuses for a user, newest first."""
        q = (
            select(NotificationStatusModel)
            .where(NotificationStatusModel.user_id == user_id)
            .order_by(NotificationStatusModel.created_at.desc(), NotificationStatusModel.id)
            .offset(offset)
        )
        if limit is not None:
            q = q.limit(limit)
        result = await self.session.execute(q)
        return [m.to_entity() for m in result.scalars().all()]

    async def delete_status(self, status_id: str) -> bool:
        result = await self.session.execute(
            delete(NotificationStatusModel).where(NotificationStatusModel.id == status_id)
        )
        return (result.rowcount or 0) > 0

    async def delete_statuses(self, status_ids: Iterable[str]) -> int:
        ids = list(status_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            delete(NotificationStatusModel).where(NotificationStatusModel.id.in_(ids))
        )
        return result.rowcount or 0

    async def delete_statuses_older_than(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(NotificationStatusModel).where(NotificationStatusModel.created_at < cutoff)
        )
        return result.rowcount or 0
