"""User profile database models (owned by the community app; read-only here)."""
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime

from pulse.infra.db.base import Base
from pulse.domain.users.models import UserProfile


class UserModel(Base):
    """Primary user profile store."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    community_id = Column(String, nullable=True, index=True)
    full_name = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    username = Column(String, nullable=True)
    email = Column(String, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    role = Column(String, nullable=True)  # 'admin' also grants admin rights
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_entity(self) -> UserProfile:
        """Convert to domain entity."""
        return UserProfile(
            id=self.id,
            community_id=self.community_id,
            full_name=self.full_name,
            display_name=self.display_name,
            username=self.username,
            email=self.email,
            is_admin=bool(self.is_admin) or self.role == "admin",
        )


class UserProfileModel(Base):
    """Secondary profile store (older clients wrote names here)."""

    __tablename__ = "user_profiles"

    user_id = Column(String, primary_key=True)
    full_name = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    name = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_entity(self) -> UserProfile:
        """Convert to domain entity."""
        return UserProfile(
            id=self.user_id,
            full_name=self.full_name,
            display_name=self.display_name,
            username=self.name,
        )
