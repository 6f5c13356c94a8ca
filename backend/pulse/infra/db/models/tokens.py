"""Device token database models."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime

from pulse.infra.db.base import Base, JSONType
from pulse.domain.notifications.models import DeviceToken, TokenBundle


class UserTokensModel(Base):
    """One row per user: the token bundle (tokens + category preferences)."""

    __tablename__ = "user_tokens"

    user_id = Column(String, primary_key=True)
    tokens = Column(JSONType, nullable=False, default=list)  # list of DeviceToken dicts
    preferences = Column(JSONType, nullable=False, default=dict)  # category -> bool
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_entity(self) -> TokenBundle:
        """Convert to domain entity."""
        return TokenBundle(
            user_id=self.user_id,
            tokens=[DeviceToken.from_dict(t) for t in (self.tokens or [])],
            preferences=dict(self.preferences or {}),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def apply(self, bundle: TokenBundle) -> None:
        """Copy mutable bundle state onto this row (JSON columns are reassigned, not mutated)."""
        self.tokens = [t.to_dict() for t in bundle.tokens]
        self.preferences = dict(bundle.preferences)
        self.updated_at = bundle.updated_at

    @classmethod
    def from_entity(cls, bundle: TokenBundle) -> "UserTokensModel":
        """Create from domain entity."""
        return cls(
            user_id=bundle.user_id,
            tokens=[t.to_dict() for t in bundle.tokens],
            preferences=dict(bundle.preferences),
            created_at=bundle.created_at,
            updated_at=bundle.updated_at,
        )


class MissingTokenModel(Base):
    """A user a send found without tokens; cleared by registration or the recovery job."""

    __tablename__ = "missing_tokens"

    user_id = Column(String, primary_key=True)
    first_detected = Column(DateTime, nullable=False)
    last_checked = Column(DateTime, nullable=False)
    recovery_attempts = Column(Integer, default=0, nullable=False)
