"""Dedup marker and membership tracking database models."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime

from pulse.infra.db.base import Base, JSONType


class NotificationMarkerModel(Base):
    """Durable dedup marker: 'a notification was (or is being) emitted for this occurrence'."""

    __tablename__ = "notification_markers"

    key = Column(String, primary_key=True)
    state = Column(String, nullable=False)  # 'pending' (claimed) or 'sent'
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class MemberTrackingModel(Base):
    """Per-entity progress: processed member ids, last observed membership, last observed value."""

    __tablename__ = "member_tracking"

    entity_key = Column(String, primary_key=True)
    processed = Column(JSONType, nullable=False, default=list)
    previous = Column(JSONType, nullable=False, default=list)
    snapshot = Column(String, nullable=True)  # e.g. last seen status of a report
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
