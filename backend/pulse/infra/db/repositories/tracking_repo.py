"""Dedup marker / membership tracking repository."""
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete

from pulse.infra.db.models.tracking import NotificationMarkerModel, MemberTrackingModel


class TrackingRepository:
    """Tracking repository. Callers commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Markers
    async def get_marker(self, key: str) -> Optional[NotificationMarkerModel]:
        return await self.session.get(NotificationMarkerModel, key)

    async def insert_marker(self, key: str, state: str, now: datetime) -> None:
        """Insert and flush so a concurrent claim surfaces as IntegrityError here."""
        self.session.add(NotificationMarkerModel(key=key, state=state, created_at=now, updated_at=now))
        await self.session.flush()

    async def delete_marker(self, key: str, state: Optional[str] = None) -> bool:
        q = delete(NotificationMarkerModel).where(NotificationMarkerModel.key == key)
        if state is not None:
            q = q.where(NotificationMarkerModel.state == state)
        result = await self.session.execute(q)
        return (result.rowcount or 0) > 0

    # Membership / snapshots
    async def get_tracking(self, entity_key: str) -> Optional[MemberTrackingModel]:
        return await self.session.get(MemberTrackingModel, entity_key)

    async def get_or_create_tracking(self, entity_key: str, now: datetime) -> MemberTrackingModel:
        row = await self.session.get(MemberTrackingModel, entity_key)
        if row is None:
            row = MemberTrackingModel(entity_key=entity_key, processed=[], previous=[], snapshot=None, updated_at=now)
            self.session.add(row)
        return row
