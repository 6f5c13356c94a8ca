"""Generic change watcher.

One Watcher per WatchSpec. For every change event it extracts occurrences,
drops stale ones, builds one intent per recipient, claims a durable dedup
marker per intent and hands the intent to the dispatcher. Every event is
handled in isolation: an error is logged and recorded, and the subscription
keeps running.
"""
import asyncio
import logging
from typing import Optional, Union

from pulse.domain.common.errors import ValidationError
from pulse.domain.notifications.models import CommunityDispatchResult, UserDispatchResult
from pulse.domain.watchers.models import (
    ChangeEvent,
    NotificationIntent,
    Occurrence,
    Recipient,
    WatchContext,
    WatchSpec,
)

logger = logging.getLogger(__name__)

DispatchResult = Union[UserDispatchResult, CommunityDispatchResult]


def intent_key(occurrence: Occurrence, recipient: Recipient) -> Optional[str]:
    """Dedup key of one (occurrence, recipient) pair; None for membership occurrences."""
    if not occurrence.dedup_key:
        return None
    return f"{occurrence.dedup_key}|{recipient.label}"


class Watcher:
    def __init__(self, spec: WatchSpec, context: WatchContext):
        self.spec = spec
        self.ctx = context

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def collection(self) -> str:
        return self.spec.collection

    @property
    def recency_window(self) -> float:
        if self.spec.recency_window_seconds is not None:
            return self.spec.recency_window_seconds
        return self.ctx.recency_window_for(self.spec.collection)

    def accepts(self, event: ChangeEvent) -> bool:
        return event.collection == self.spec.collection and event.kind in self.spec.kinds

    async def handle(self, event: ChangeEvent) -> None:
        """Process one change event. Never raises."""
        if not self.accepts(event):
            return
        try:
            await self._process(event)
        except Exception as e:
            logger.exception("Watcher %s failed on %s/%s: %s", self.name, event.collection, event.key, e)
            await self.ctx.failures.record_watcher_error(self.name, event.key, e)

    async def _process(self, event: ChangeEvent) -> None:
        occurrences = await self.spec.extract(event, self.ctx)
        if not occurrences:
            return
        window = self.recency_window
        for occurrence in occurrences:
            if self.spec.use_recency and not self.ctx.dedup.is_recent(occurrence.created_at, window):
                logger.debug("Watcher %s: skipping stale occurrence %s", self.name, occurrence.dedup_key)
                continue
            await self._handle_occurrence(occurrence)

    async def _handle_occurrence(self, occurrence: Occurrence) -> None:
        settled = True
        try:
            recipients = await self.spec.recipients(occurrence, self.ctx)
            seen: set[str] = set()
            for recipient in recipients:
                if not recipient.id or recipient.label in seen:
                    continue
                seen.add(recipient.label)
                if not recipient.is_community and not recipient.notify_self and recipient.id == occurrence.actor_id:
                    continue
                try:
                    intent = await self.spec.template(occurrence, recipient, self.ctx)
                    if intent is None:
                        continue
                    intent.validate()
                except ValidationError as e:
                    logger.warning("Watcher %s: dropping intent for %s: %s", self.name, recipient.label, e.message)
                    continue
                if not await self._deliver(occurrence, intent):
                    settled = False
        except Exception:
            await self._settle_member(occurrence, False)
            raise
        await self._settle_member(occurrence, settled)

    async def _settle_member(self, occurrence: Occurrence, settled: bool) -> None:
        """Membership occurrences: processed once delivered, otherwise re-detected on the next change."""
        if not (occurrence.member_of and occurrence.member_id):
            return
        if settled:
            await self.ctx.dedup.mark_member_processed(occurrence.member_of, occurrence.member_id)
        else:
            logger.info("Watcher %s: %s will be retried on the next change of %s",
                        self.name, occurrence.member_id, occurrence.member_of)
            await self.ctx.dedup.forget_member(occurrence.member_of, occurrence.member_id)

    async def _deliver(self, occurrence: Occurrence, intent: NotificationIntent) -> bool:
        """False only when delivery was attempted and ran out of retries."""
        dedup = self.ctx.dedup
        key = intent_key(occurrence, intent.recipient)
        if key is not None:
            if not await dedup.should_notify(key):
                logger.debug("Watcher %s: %s already notified", self.name, key)
                return True
            if not await dedup.claim(key):
                logger.debug("Watcher %s: %s claimed elsewhere", self.name, key)
                return True
        try:
            delivered = await self._dispatch_with_retry(occurrence, intent, key)
        except Exception:
            if key is not None:
                await dedup.release(key)
            raise
        if key is not None:
            if delivered:
                await dedup.mark_notified(key)
            else:
                await dedup.release(key)
        return delivered

    async def _dispatch(self, intent: NotificationIntent, key: Optional[str], notification_id: Optional[str],
                        actor_id: Optional[str]) -> DispatchResult:
        dispatcher = self.ctx.dispatcher
        recipient = intent.recipient
        if recipient.is_community:
            return await dispatcher.send_to_community(
                recipient.id, intent.title, intent.body, intent.payload, recipient.exclude_user_id,
                category=intent.category, notification_id=notification_id, source_key=key,
            )
        return await dispatcher.send_to_user(
            recipient.id, intent.title, intent.body, intent.payload,
            category=intent.category, notification_id=notification_id, source_key=key,
            created_by=actor_id or "system",
        )

    async def _dispatch_with_retry(self, occurrence: Occurrence, intent: NotificationIntent, key: Optional[str]) -> bool:
        """True when the intent is settled (delivered, or not deliverable at all); False once retries run out."""
        attempts = max(1, self.ctx.max_retries)
        notification_id: Optional[str] = None
        result: Optional[DispatchResult] = None
        for attempt in range(1, attempts + 1):
            result = await self._dispatch(intent, key, notification_id, occurrence.actor_id)
            notification_id = result.notification_id or notification_id
            if not result.should_retry:
                if not result.success:
                    logger.info("Watcher %s: %s not delivered (%s)", self.name, intent.recipient.label, result.error)
                return True
            if attempt < attempts:
                logger.warning(
                    "Watcher %s: delivery to %s reached nobody (attempt %d/%d), retrying in %ss",
                    self.name, intent.recipient.label, attempt, attempts, self.ctx.retry_delay_seconds,
                )
                await asyncio.sleep(self.ctx.retry_delay_seconds)
        await self.ctx.failures.record_delivery_failure(
            self.name, occurrence.entity_id, key, intent, (result.error if result else None) or "delivery failed",
        )
        return False
