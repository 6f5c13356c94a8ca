"""Dispatcher: fan-out of one notification to a user or a whole community.

Per-token sends within one user and per-member work within one community are
sequential. That bounds outbound load on the push gateway and keeps failure
attribution (which token to prune) unambiguous. The dispatcher never retries;
callers decide from the returned result.
"""
import asyncio
import logging
from typing import Any, Iterable, Optional, Protocol

from pulse.domain.common.errors import ValidationError
from pulse.domain.common.types import Clock, to_epoch_ms, utcnow
from pulse.domain.notifications.models import (
    Category,
    CommunityDispatchResult,
    DeliveryOutcome,
    FailureKind,
    PushMessage,
    Scope,
    TokenBundle,
    UserDispatchResult,
)
from pulse.domain.notifications.preferences import is_enabled
from pulse.domain.notifications.record_store import NotificationRecordStore
from pulse.domain.notifications.token_registry import TokenRegistry
from pulse.domain.users.directory import UserDirectory

logger = logging.getLogger(__name__)

NO_TOKENS = "No tokens found"
TYPE_DISABLED = "Notification type disabled by user"
NO_MEMBERS = "No users found in community"
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"


class PushGateway(Protocol):
    """Push gateway collaborator: send one message, get a classified outcome."""

    async def send(self, push: PushMessage) -> DeliveryOutcome:
        ...


def build_data(payload: Optional[dict[str, Any]], *, category: Category, notification_id: str, now_ms: int) -> dict[str, str]:
    """FCM data payload: string values only, None dropped, plus routing keys for the client."""
    data = {k: str(v) for k, v in (payload or {}).items() if v is not None}
    data["type"] = category.value
    data["notificationId"] = notification_id
    data["timestamp"] = str(now_ms)
    data["click_action"] = CLICK_ACTION
    return data


def _require(value: Optional[str], name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"Missing required field: {name}")
    return value


class Dispatcher:
    """Resolves recipients, filters by preference, persists records and sends pushes."""

    def __init__(
        self,
        registry: TokenRegistry,
        records: NotificationRecordStore,
        directory: UserDirectory,
        gateway: PushGateway,
        *,
        member_delay_seconds: float = 0.1,
        clock: Clock = utcnow,
    ):
        self.registry = registry
        self.records = records
        self.directory = directory
        self.gateway = gateway
        self.member_delay_seconds = member_delay_seconds
        self._clock = clock

    async def _send_tokens(self, bundle: TokenBundle, title: str, body: str, data: dict[str, str]) -> list[DeliveryOutcome]:
        outcomes = []
        for device in bundle.active_tokens():
            push = PushMessage(token=device.token, platform=device.platform, title=title, body=body, data=data)
            try:
                outcome = await self.gateway.send(push)
            except Exception as e:
                # Isolated per token; the remaining tokens still get their attempt
                logger.warning("Unexpected push error for %s...: %s", device.token[:20], e, exc_info=True)
                outcome = DeliveryOutcome.failed(device.token, FailureKind.OTHER, str(e))
            if not outcome.delivered:
                logger.info("%s", outcome.as_error())
            outcomes.append(outcome)
        return outcomes

    async def _deliver(
        self,
        user_id: str,
        bundle: TokenBundle,
        title: str,
        body: str,
        data: dict[str, str],
        notification_id: str,
        community_id: Optional[str],
    ) -> UserDispatchResult:
        """Status row, per-token sends, one batched prune of permanent failures."""
        status_id = await self.records.create_status(notification_id, user_id, community_id)
        outcomes = await self._send_tokens(bundle, title, body, data)
        success_count = sum(1 for o in outcomes if o.delivered)
        permanent = [o.token for o in outcomes if o.is_permanent_failure]
        if permanent:
            await self.registry.prune_failed(user_id, permanent)
        result = UserDispatchResult(
            user_id=user_id,
            success=success_count > 0,
            notification_id=notification_id,
            status_id=status_id,
            success_count=success_count,
            failure_count=len(outcomes) - success_count,
            outcomes=outcomes,
            pruned_tokens=permanent,
        )
        if not result.success:
            result.error = "All push deliveries failed"
        logger.info(
            "Delivered %s to user %s: %d ok, %d failed, %d pruned",
            notification_id, user_id, result.success_count, result.failure_count, len(permanent),
        )
        return result

    async def _eligible_bundle(self, user_id: str, category: Category) -> tuple[Optional[TokenBundle], Optional[str]]:
        """Bundle if the user can receive this category, else the reason they cannot."""
        bundle = await self.registry.get_bundle(user_id)
        if bundle is None:
            await self.registry.record_missing(user_id)
            return None, NO_TOKENS
        if not is_enabled(bundle, category):
            return None, TYPE_DISABLED
        if not bundle.active_tokens():
            await self.registry.record_missing(user_id)
            return None, NO_TOKENS
        return bundle, None

    async def send_to_user(
        self,
        user_id: str,
        title: str,
        body: str,
        payload: Optional[dict[str, Any]] = None,
        *,
        category: Optional[Category] = None,
        notification_id: Optional[str] = None,
        source_key: Optional[str] = None,
        created_by: str = "system",
    ) -> UserDispatchResult:
        """Send to every active device of one user. success means at least one device accepted it."""
        _require(user_id, "user_id")
        _require(title, "title")
        _require(body, "body")
        category = category or Category.from_value((payload or {}).get("type"))

        bundle, reason = await self._eligible_bundle(user_id, category)
        if bundle is None:
            logger.info("Not sending to user %s: %s", user_id, reason)
            return UserDispatchResult(user_id=user_id, success=False, error=reason)

        record_payload = {k: str(v) for k, v in (payload or {}).items() if v is not None}
        if notification_id is None:
            notification_id = await self.records.create_record(
                Scope.USER, user_id, title, body, category, record_payload,
                created_by=created_by, source_key=source_key,
            )
        data = build_data(payload, category=category, notification_id=notification_id, now_ms=to_epoch_ms(self._clock()))
        return await self._deliver(user_id, bundle, title, body, data, notification_id, community_id=None)

    async def send_to_users(
        self,
        user_ids: Iterable[str],
        title: str,
        body: str,
        payload: Optional[dict[str, Any]] = None,
        *,
        category: Optional[Category] = None,
        source_key: Optional[str] = None,
    ) -> list[UserDispatchResult]:
        """Individual sends to a list of users (e.g. community admins), paced like a community send."""
        results = []
        for index, user_id in enumerate(dict.fromkeys(user_ids)):
            if index and self.member_delay_seconds > 0:
                await asyncio.sleep(self.member_delay_seconds)
            try:
                results.append(
                    await self.send_to_user(user_id, title, body, payload, category=category, source_key=source_key)
                )
            except ValidationError:
                raise
            except Exception as e:
                logger.error("Send to user %s failed: %s", user_id, e, exc_info=True)
                results.append(UserDispatchResult(user_id=user_id, success=False, error=str(e)))
        return results

    async def send_to_community(
        self,
        community_id: str,
        title: str,
        body: str,
        payload: Optional[dict[str, Any]] = None,
        exclude_user_id: Optional[str] = None,
        *,
        category: Optional[Category] = None,
        notification_id: Optional[str] = None,
        source_key: Optional[str] = None,
    ) -> CommunityDispatchResult:
        """One shared record, then preference -> tokens -> status -> sends for each member except the actor."""
        _require(community_id, "community_id")
        _require(title, "title")
        _require(body, "body")
        category = category or Category.from_value((payload or {}).get("type"))
        record_payload = {k: str(v) for k, v in (payload or {}).items() if v is not None}

        if notification_id is None:
            notification_id = await self.records.create_record(
                Scope.COMMUNITY, community_id, title, body, category, record_payload,
                created_by=exclude_user_id or "system", source_key=source_key,
            )

        members = await self.directory.list_member_ids(community_id)
        if not members:
            logger.info("No users found in community %s", community_id)
            return CommunityDispatchResult(
                community_id=community_id, success=False, notification_id=notification_id, error=NO_MEMBERS,
            )
        recipients = [m for m in members if m != exclude_user_id]
        result = CommunityDispatchResult(
            community_id=community_id,
            success=True,
            notification_id=notification_id,
            total_users=len(recipients),
        )
        if not recipients:
            return result

        data = build_data(payload, category=category, notification_id=notification_id, now_ms=to_epoch_ms(self._clock()))
        for index, member_id in enumerate(recipients):
            if index and self.member_delay_seconds > 0:
                await asyncio.sleep(self.member_delay_seconds)
            try:
                bundle, reason = await self._eligible_bundle(member_id, category)
                if bundle is None:
                    member_result = UserDispatchResult(user_id=member_id, success=False, error=reason)
                else:
                    member_result = await self._deliver(
                        member_id, bundle, title, body, data, notification_id, community_id=community_id,
                    )
            except Exception as e:
                # One member's failure never aborts the broadcast
                logger.error("Community %s: send to member %s failed: %s", community_id, member_id, e, exc_info=True)
                member_result = UserDispatchResult(user_id=member_id, success=False, error=str(e))
            result.results.append(member_result)

        result.sent_count = sum(1 for r in result.results if r.success)
        result.success = result.sent_count > 0
        if not result.success:
            result.error = "No community member received the notification"
        logger.info(
            "Community %s notification %s: sent to %d/%d user(s)",
            community_id, notification_id, result.sent_count, result.total_users,
        )
        return result
