"""Notification record and status database models."""
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Text, UniqueConstraint, Index

from pulse.infra.db.base import Base, JSONType
from pulse.domain.notifications.models import (
    Category,
    NotificationRecord,
    NotificationStatus,
    Scope,
)


class NotificationRecordModel(Base):
    """Canonical notification content (one per logical event)."""

    __tablename__ = "notification_records"

    id = Column(String, primary_key=True)
    scope = Column(String, nullable=False)  # 'user' or 'community'
    scope_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    source_key = Column(String, nullable=True, index=True)  # dedup key of the triggering occurrence
    created_by = Column(String, nullable=False, default="system")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_entity(self) -> NotificationRecord:
        """Convert to domain entity."""
        return NotificationRecord(
            id=self.id,
            scope=Scope(self.scope),
            scope_id=self.scope_id,
            title=self.title,
            body=self.body,
            category=Category.from_value(self.category),
            payload=dict(self.payload or {}),
            created_at=self.created_at,
            created_by=self.created_by,
            source_key=self.source_key,
        )

    @classmethod
    def from_entity(cls, record: NotificationRecord) -> "NotificationRecordModel":
        """Create from domain entity."""
        return cls(
            id=record.id,
            scope=record.scope.value,
            scope_id=record.scope_id,
            title=record.title,
            body=record.body,
            category=record.category.value,
            payload=dict(record.payload),
            source_key=record.source_key,
            created_by=record.created_by,
            created_at=record.created_at,
        )


class NotificationStatusModel(Base):
    """Per-recipient unread row. Deleted on read and by the retention purge."""

    __tablename__ = "notification_status"
    __table_args__ = (
        UniqueConstraint("notification_id", "user_id", name="uq_notification_status_recipient"),
        Index("ix_notification_status_user_created", "user_id", "created_at"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    notification_id = Column(String, nullable=False, index=True)
    community_id = Column(String, nullable=True)  # set for community-scoped records
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_entity(self) -> NotificationStatus:
        """Convert to domain entity."""
        return NotificationStatus(
            id=self.id,
            user_id=self.user_id,
            notification_id=self.notification_id,
            community_id=self.community_id,
            read=self.read,
            created_at=self.created_at,
        )
