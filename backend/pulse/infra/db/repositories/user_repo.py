"""User profile repository (read-only)."""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, func

from pulse.domain.users.models import UserProfile
from pulse.infra.db.models.user import UserModel, UserProfileModel


class UserRepository:
    """User repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> Optional[UserProfile]:
        model = await self.session.get(UserModel, user_id)
        return model.to_entity() if model else None

    async def get_secondary_profile(self, user_id: str) -> Optional[UserProfile]:
        model = await self.session.get(UserProfileModel, user_id)
        return model.to_entity() if model else None

    async def list_member_ids(self, community_id: str) -> List[str]:
        """All users of a community, in stable id order."""
        result = await self.session.execute(
            select(UserModel.id).where(UserModel.community_id == community_id).order_by(UserModel.id)
        )
        return list(result.scalars().all())

    async def list_admin_ids(self, community_id: str) -> List[str]:
        result = await self.session.execute(
            select(UserModel.id)
            .where(
                UserModel.community_id == community_id,
                or_(UserModel.is_admin.is_(True), UserModel.role == "admin"),
            )
            .order_by(UserModel.id)
        )
        return list(result.scalars().all())

    async def find_id_by_name(self, name: str) -> Optional[str]:
        """Case-insensitive exact match on display name, full name, then username."""
        needle = name.strip().lower()
        if not needle:
            return None
        for column in (UserModel.display_name, UserModel.full_name, UserModel.username):
            result = await self.session.execute(
                select(UserModel.id).where(func.lower(column) == needle).order_by(UserModel.id).limit(1)
            )
            user_id = result.scalar_one_or_none()
            if user_id:
                return user_id
        return None
