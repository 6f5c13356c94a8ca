"""Failure log database model."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text

from pulse.infra.db.base import Base, JSONType


class FailedNotificationModel(Base):
    """Broadcasts that exhausted their retries, and per-event watcher errors."""

    __tablename__ = "failed_notifications"

    id = Column(String, primary_key=True)
    kind = Column(String, nullable=False)  # 'delivery' or 'watcher_error'
    watcher = Column(String, nullable=False, index=True)
    entity_id = Column(String, nullable=True)
    source_key = Column(String, nullable=True)
    intent = Column(JSONType, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
