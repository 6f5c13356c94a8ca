"""User directory: community membership, admins, and display-name resolution."""
import logging
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from pulse.domain.users.models import IdentityRecord, UserProfile
from pulse.infra.db.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Identity provider (auth accounts)."""

    async def get_user(self, uid: str) -> Optional[IdentityRecord]:
        ...

    async def verify_token(self, id_token: str) -> dict:
        ...


class UserDirectory:
    """Read-only view over the user profile stores."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        async with self._session_factory() as session:
            return await UserRepository(session).get(user_id)

    async def get_secondary_profile(self, user_id: str) -> Optional[UserProfile]:
        async with self._session_factory() as session:
            return await UserRepository(session).get_secondary_profile(user_id)

    async def list_member_ids(self, community_id: str) -> list[str]:
        async with self._session_factory() as session:
            return await UserRepository(session).list_member_ids(community_id)

    async def list_admin_ids(self, community_id: str) -> list[str]:
        async with self._session_factory() as session:
            return await UserRepository(session).list_admin_ids(community_id)

    async def is_admin(self, user_id: str) -> bool:
        user = await self.get_user(user_id)
        return bool(user and user.is_admin)

    async def find_id_by_name(self, name: str) -> Optional[str]:
        async with self._session_factory() as session:
            return await UserRepository(session).find_id_by_name(name)


def truncated_id(user_id: str) -> str:
    return f"{user_id[:8]}..."


class DisplayNameResolver:
    """Recipient-facing names are never empty.

    Fallback chain: primary profile store -> secondary profile store ->
    identity provider (email local part, then display name) -> truncated id.
    Each lookup failure is logged and the chain continues.
    """

    def __init__(self, directory: UserDirectory, identity: Optional[IdentityProvider] = None):
        self._directory = directory
        self._identity = identity

    async def resolve(self, user_id: Optional[str], preferred: Optional[str] = None) -> str:
        """Name for user_id; `preferred` (e.g. a name embedded in the event) wins when non-blank."""
        if preferred and str(preferred).strip():
            return str(preferred).strip()
        if not user_id:
            return "Someone"
        try:
            user = await self._directory.get_user(user_id)
            if user and user.best_name:
                return user.best_name
            profile = await self._directory.get_secondary_profile(user_id)
            if profile and profile.best_name:
                return profile.best_name
        except SQLAlchemyError as e:
            logger.warning("Profile lookup failed for %s: %s", user_id, e)
        if self._identity is not None:
            try:
                record = await self._identity.get_user(user_id)
            except Exception as e:
                logger.info("Identity lookup failed for %s: %s", user_id, e)
                record = None
            if record is not None:
                if record.email and record.email.split("@")[0]:
                    return record.email.split("@")[0]
                if record.display_name:
                    return record.display_name
        return truncated_id(user_id)
