"""Failure log repository."""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from pulse.infra.db.models.failure import FailedNotificationModel


class FailureRepository:
    """Failure log repository. Callers commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, entry: FailedNotificationModel) -> None:
        self.session.add(entry)

    async def list_recent(self, limit: int = 50, kind: Optional[str] = None) -> List[FailedNotificationModel]:
        q = select(FailedNotificationModel).order_by(FailedNotificationModel.created_at.desc()).limit(limit)
        if kind is not None:
            q = q.where(FailedNotificationModel.kind == kind)
        result = await self.session.execute(q)
        return list(result.scalars().all())
