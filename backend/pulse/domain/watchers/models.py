"""Watcher domain models: change events, occurrences, intents and watch specs."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, TYPE_CHECKING

from pulse.domain.common.errors import ValidationError
from pulse.domain.common.types import Clock, utcnow
from pulse.domain.notifications.models import Category

if TYPE_CHECKING:
    from pulse.domain.notifications.dedup import DedupTracker
    from pulse.domain.notifications.dispatcher import Dispatcher
    from pulse.domain.users.directory import DisplayNameResolver, UserDirectory
    from pulse.domain.watchers.failures import FailureLog


class ChangeKind(str, Enum):
    """Structural change on a watched collection."""
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class ChangeEvent:
    """One entity of a collection changed. `data` is the full entity after the change."""
    collection: str
    key: str
    kind: ChangeKind
    data: dict[str, Any]

    @classmethod
    def from_message(cls, collection: str, message: dict[str, Any]) -> "ChangeEvent":
        """Parse a transport message {key, kind, data}."""
        key = message.get("key")
        if not key:
            raise ValidationError("Change event without key")
        try:
            kind = ChangeKind(message.get("kind", ChangeKind.MODIFIED.value))
        except ValueError:
            raise ValidationError(f"Unknown change kind: {message.get('kind')!r}") from None
        data = message.get("data") or {}
        if not isinstance(data, dict):
            raise ValidationError("Change event data must be an object")
        return cls(collection=collection, key=str(key), kind=kind, data=data)

    def to_message(self) -> dict[str, Any]:
        return {"key": self.key, "kind": self.kind.value, "data": self.data}


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


class ChangeFeed(Protocol):
    """Live-update store: deliver every change of a collection to handler until cancelled."""

    async def subscribe(self, collection: str, handler: ChangeHandler) -> None:
        ...


@dataclass(frozen=True)
class Recipient:
    """Who an intent is addressed to. `role` lets one template word messages per recipient."""
    kind: str  # 'user' or 'community'
    id: str
    exclude_user_id: Optional[str] = None
    role: str = ""
    notify_self: bool = False

    @classmethod
    def user(cls, user_id: str, role: str = "", notify_self: bool = False) -> "Recipient":
        return cls(kind="user", id=user_id, role=role, notify_self=notify_self)

    @classmethod
    def community(cls, community_id: str, exclude_user_id: Optional[str] = None, role: str = "community") -> "Recipient":
        return cls(kind="community", id=community_id, exclude_user_id=exclude_user_id, role=role)

    @property
    def is_community(self) -> bool:
        return self.kind == "community"

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.id}"


@dataclass
class Occurrence:
    """A qualifying sub-element change extracted from an event (a comment, a like, a join...)."""
    entity_id: str
    dedup_key: Optional[str]  # None when the membership tracker dedups instead
    actor_id: Optional[str]
    created_at: Optional[datetime]
    context: dict[str, Any] = field(default_factory=dict)
    member_of: Optional[str] = None  # membership entity key; set for join-style occurrences
    member_id: Optional[str] = None


@dataclass
class NotificationIntent:
    """Everything the dispatcher needs for one recipient selector."""
    recipient: Recipient
    title: str
    body: str
    category: Category
    payload: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        if not self.recipient.id:
            raise ValidationError("Notification intent without recipient")
        if not self.title or not self.title.strip():
            raise ValidationError("Notification intent without title")
        if not self.body or not self.body.strip():
            raise ValidationError("Notification intent without body")

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient": {
                "kind": self.recipient.kind,
                "id": self.recipient.id,
                "exclude_user_id": self.recipient.exclude_user_id,
                "role": self.recipient.role,
            },
            "title": self.title,
            "body": self.body,
            "category": self.category.value,
            "payload": {k: str(v) for k, v in self.payload.items() if v is not None},
        }


@dataclass
class WatchContext:
    """Collaborators injected into every watcher."""
    dispatcher: "Dispatcher"
    dedup: "DedupTracker"
    directory: "UserDirectory"
    names: "DisplayNameResolver"
    failures: "FailureLog"
    recency_window_for: Callable[[str], float]
    max_retries: int = 3
    retry_delay_seconds: float = 3.0
    clock: Clock = utcnow


Extractor = Callable[[ChangeEvent, WatchContext], Awaitable[list[Occurrence]]]
RecipientResolver = Callable[[Occurrence, WatchContext], Awaitable[list[Recipient]]]
Template = Callable[[Occurrence, Recipient, WatchContext], Awaitable[Optional[NotificationIntent]]]


@dataclass
class WatchSpec:
    """Parameterization of the generic Watcher for one entity category."""
    name: str
    collection: str
    kinds: tuple[ChangeKind, ...]
    category: Category
    extract: Extractor
    recipients: RecipientResolver
    template: Template
    use_recency: bool = True
    recency_window_seconds: Optional[float] = None  # overrides the configured window for this watcher
