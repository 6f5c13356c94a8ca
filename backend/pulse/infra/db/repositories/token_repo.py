"""Token bundle repository."""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from pulse.domain.notifications.models import TokenBundle
from pulse.infra.db.models.tokens import UserTokensModel, MissingTokenModel


class TokenRepository:
    """Token bundle repository. Callers commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> Optional[TokenBundle]:
        """Get a user's bundle."""
        model = await self.session.get(UserTokensModel, user_id)
        return model.to_entity() if model else None

    async def save(self, bundle: TokenBundle) -> None:
        """Insert or overwrite a bundle."""
        model = await self.session.get(UserTokensModel, bundle.user_id)
        if model is None:
            self.session.add(UserTokensModel.from_entity(bundle))
        else:
            model.apply(bundle)

    # Missing-token markers
    async def get_missing(self, user_id: str) -> Optional[MissingTokenModel]:
        return await self.session.get(MissingTokenModel, user_id)

    async def upsert_missing(self, user_id: str, now: datetime) -> MissingTokenModel:
        """Record (or refresh) a missing-token marker."""
        row = await self.session.get(MissingTokenModel, user_id)
        if row is None:
            row = MissingTokenModel(
                user_id=user_id,
                first_detected=now,
                last_checked=now,
                recovery_attempts=0,
            )
            self.session.add(row)
        else:
            row.last_checked = now
        return row

    async def delete_missing(self, user_id: str) -> bool:
        result = await self.session.execute(
            delete(MissingTokenModel).where(MissingTokenModel.user_id == user_id)
        )
        return (result.rowcount or 0) > 0

    async def list_missing(self) -> List[MissingTokenModel]:
        result = await self.session.execute(
            select(MissingTokenModel).order_by(MissingTokenModel.first_detected)
        )
        return list(result.scalars().all())
