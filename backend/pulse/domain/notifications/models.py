"""Notification domain models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pulse.domain.common.errors import DeliveryError, PermanentDeliveryError, TransientDeliveryError
from pulse.domain.common.types import parse_timestamp, to_epoch_ms


class Category(str, Enum):
    """Notification category. Values are the mobile client's preference keys."""
    COMMUNITY_NOTICES = "communityNotices"
    SOCIAL_INTERACTIONS = "socialInteractions"
    MARKETPLACE = "marketplace"
    CHAT = "chat"
    REPORTS = "reports"
    VOLUNTEER = "volunteer"
    GENERAL = "general"  # direct sends; never filtered

    @classmethod
    def from_value(cls, value: Optional[str]) -> "Category":
        """Map a payload 'type' (or None) to a category; unknown values become GENERAL."""
        if isinstance(value, Category):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.GENERAL

    @classmethod
    def filterable(cls) -> list["Category"]:
        """Categories a user can switch off."""
        return [c for c in cls if c is not cls.GENERAL]


class Platform(str, Enum):
    """Device platform."""
    ANDROID = "android"
    IOS = "ios"
    WEB = "web"


class Scope(str, Enum):
    """Who a notification record was addressed to."""
    USER = "user"
    COMMUNITY = "community"


class FailureKind(str, Enum):
    """Classified per-token push failure."""
    INVALID_TOKEN = "invalid-token"
    UNREGISTERED = "unregistered"
    TRANSIENT = "transient"
    OTHER = "other"

    @property
    def is_permanent(self) -> bool:
        return self in (FailureKind.INVALID_TOKEN, FailureKind.UNREGISTERED)


@dataclass
class DeviceToken:
    """Device push token. Owned by a TokenBundle."""
    token: str
    platform: Platform
    created_at: datetime
    last_active_at: datetime
    logged_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "platform": self.platform.value,
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat(),
            "logged_out": self.logged_out,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeviceToken":
        created_at = parse_timestamp(data.get("created_at"))
        last_active_at = parse_timestamp(data.get("last_active_at")) or created_at
        return cls(
            token=data["token"],
            platform=Platform(data.get("platform") or Platform.ANDROID.value),
            created_at=created_at,
            last_active_at=last_active_at,
            logged_out=bool(data.get("logged_out", False)),
        )


@dataclass
class TokenBundle:
    """All device tokens and category preferences of one user."""
    user_id: str
    tokens: list[DeviceToken]
    preferences: dict[str, bool]
    created_at: datetime
    updated_at: datetime

    def find(self, token: str) -> Optional[DeviceToken]:
        for t in self.tokens:
            if t.token == token:
                return t
        return None

    def active_tokens(self) -> list[DeviceToken]:
        """Tokens that may be delivered to (not logged out)."""
        return [t for t in self.tokens if not t.logged_out]

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "tokens": [t.to_dict() for t in self.tokens],
            "preferences": dict(self.preferences),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class NotificationRecord:
    """Canonical, immutable notification content shared by every recipient."""
    id: str
    scope: Scope
    scope_id: str
    title: str
    body: str
    category: Category
    payload: dict[str, str]
    created_at: datetime
    created_by: str = "system"
    source_key: Optional[str] = None


@dataclass
class NotificationStatus:
    """Per-recipient unread marker. Existence means unread."""
    id: str
    user_id: str
    notification_id: str
    community_id: Optional[str]
    read: bool
    created_at: datetime


@dataclass
class NotificationView:
    """A status row resolved against its record."""
    status_id: str
    notification_id: str
    user_id: str
    community_id: Optional[str]
    scope: Scope
    title: str
    body: str
    category: Category
    payload: dict[str, str]
    created_at: datetime
    created_by: str
    read: bool = False

    @classmethod
    def build(cls, status: NotificationStatus, record: NotificationRecord, read: bool = False) -> "NotificationView":
        return cls(
            status_id=status.id,
            notification_id=record.id,
            user_id=status.user_id,
            community_id=status.community_id,
            scope=record.scope,
            title=record.title,
            body=record.body,
            category=record.category,
            payload=dict(record.payload),
            created_at=record.created_at,
            created_by=record.created_by,
            read=read,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status_id": self.status_id,
            "notification_id": self.notification_id,
            "user_id": self.user_id,
            "community_id": self.community_id,
            "scope": self.scope.value,
            "title": self.title,
            "body": self.body,
            "category": self.category.value,
            "payload": dict(self.payload),
            "created_at": self.created_at.isoformat(),
            "timestamp": to_epoch_ms(self.created_at),
            "created_by": self.created_by,
            "read": self.read,
        }


@dataclass
class PushMessage:
    """One outbound push for one device token."""
    token: str
    platform: Platform
    title: str
    body: str
    data: dict[str, str]


@dataclass
class DeliveryOutcome:
    """Result of sending one PushMessage."""
    token: str
    delivered: bool
    failure_kind: Optional[FailureKind] = None
    error: Optional[str] = None
    message_id: Optional[str] = None

    @classmethod
    def ok(cls, token: str, message_id: Optional[str] = None) -> "DeliveryOutcome":
        return cls(token=token, delivered=True, message_id=message_id)

    @classmethod
    def failed(cls, token: str, kind: FailureKind, error: str) -> "DeliveryOutcome":
        return cls(token=token, delivered=False, failure_kind=kind, error=error)

    @property
    def is_permanent_failure(self) -> bool:
        return not self.delivered and self.failure_kind is not None and self.failure_kind.is_permanent

    def as_error(self) -> Optional[DeliveryError]:
        """The failure as a typed error; None when delivered."""
        if self.delivered:
            return None
        kind = (self.failure_kind or FailureKind.OTHER).value
        error_cls = PermanentDeliveryError if self.is_permanent_failure else TransientDeliveryError
        return error_cls(self.token, kind, self.error or kind)


@dataclass
class UserDispatchResult:
    """Outcome of one send_to_user (or one member of a community send)."""
    user_id: str
    success: bool
    notification_id: Optional[str] = None
    status_id: Optional[str] = None
    success_count: int = 0
    failure_count: int = 0
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    pruned_tokens: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def attempted(self) -> bool:
        return bool(self.outcomes)

    @property
    def should_retry(self) -> bool:
        """Nothing delivered and at least one failure that may clear up on its own."""
        if self.success_count > 0:
            return False
        return any(not o.delivered and not o.is_permanent_failure for o in self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "user_id": self.user_id,
            "notification_id": self.notification_id,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "pruned_tokens": [t[:20] for t in self.pruned_tokens],
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class CommunityDispatchResult:
    """Aggregate outcome of a community broadcast."""
    community_id: str
    success: bool
    notification_id: Optional[str] = None
    sent_count: int = 0
    total_users: int = 0
    results: list[UserDispatchResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def should_retry(self) -> bool:
        if self.sent_count > 0:
            return False
        return any(r.should_retry for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "community_id": self.community_id,
            "notification_id": self.notification_id,
            "sent_count": self.sent_count,
            "total_users": self.total_users,
            "results": [r.to_dict() for r in self.results],
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class RecoveryReport:
    """Summary of one missing-token recovery pass."""
    checked: int = 0
    recovered: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    still_missing: list[str] = field(default_factory=list)
    long_term_missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "recovered": list(self.recovered),
            "removed": list(self.removed),
            "still_missing": list(self.still_missing),
            "long_term_missing": list(self.long_term_missing),
        }
