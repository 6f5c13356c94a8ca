"""Push notification sender via FCM (Firebase Cloud Messaging)."""
import asyncio
import logging
from datetime import timedelta
from typing import Optional

import firebase_admin
from firebase_admin import exceptions, messaging

from pulse.domain.notifications.models import DeliveryOutcome, FailureKind, Platform, PushMessage

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    exceptions.UnavailableError,
    exceptions.DeadlineExceededError,
    exceptions.InternalError,
    exceptions.ResourceExhaustedError,
    messaging.QuotaExceededError,
)


def classify_send_error(exc: BaseException) -> FailureKind:
    """Map an FCM send exception to a failure kind. Only invalid-token/unregistered prune the token."""
    if isinstance(exc, messaging.UnregisteredError):
        return FailureKind.UNREGISTERED
    if isinstance(exc, (messaging.SenderIdMismatchError, exceptions.InvalidArgumentError)):
        return FailureKind.INVALID_TOKEN
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError) + _TRANSIENT_ERRORS):
        return FailureKind.TRANSIENT
    return FailureKind.OTHER


def build_message(push: PushMessage, *, ttl_seconds: int = 60, channel_id: str = "high_importance_channel") -> messaging.Message:
    """One FCM message with urgency hints so the OS does not batch or defer it."""
    return messaging.Message(
        token=push.token,
        notification=messaging.Notification(title=push.title, body=push.body),
        data=push.data,
        android=messaging.AndroidConfig(
            priority="high",
            ttl=timedelta(seconds=ttl_seconds),
            direct_boot_ok=True,
            notification=messaging.AndroidNotification(
                channel_id=channel_id,
                priority="high",
                default_sound=True,
                default_vibrate_timings=True,
                visibility="public",
            ),
        ),
        apns=messaging.APNSConfig(
            headers={"apns-priority": "10", "apns-push-type": "alert"},
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    sound="default",
                    badge=1,
                    content_available=True,
                    mutable_content=True,
                    custom_data={"interruption-level": "time-sensitive"},
                ),
            ),
        ),
    )


class FcmPushGateway:
    """PushGateway backed by firebase_admin.messaging.

    The SDK call is blocking; it runs in a worker thread bounded by
    send_timeout_seconds so a stalled gateway cannot hold up a fan-out.
    """

    def __init__(
        self,
        app: Optional[firebase_admin.App],
        *,
        send_timeout_seconds: float = 10.0,
        ttl_seconds: int = 60,
        channel_id: str = "high_importance_channel",
    ):
        self._app = app
        self._timeout = send_timeout_seconds
        self._ttl = ttl_seconds
        self._channel_id = channel_id

    @property
    def enabled(self) -> bool:
        return self._app is not None

    async def send(self, push: PushMessage) -> DeliveryOutcome:
        if self._app is None:
            logger.debug("Push disabled; not sending to %s...", push.token[:20])
            return DeliveryOutcome.failed(push.token, FailureKind.OTHER, "push disabled")
        message = build_message(push, ttl_seconds=self._ttl, channel_id=self._channel_id)
        try:
            message_id = await asyncio.wait_for(
                asyncio.to_thread(messaging.send, message, False, self._app),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Push send timed out after %ss for token %s...", self._timeout, push.token[:20])
            return DeliveryOutcome.failed(push.token, FailureKind.TRANSIENT, "timeout")
        except (exceptions.FirebaseError, ValueError) as e:
            kind = classify_send_error(e)
            logger.warning("Push send failed for token %s... (%s): %s", push.token[:20], kind.value, e)
            return DeliveryOutcome.failed(push.token, kind, str(e))
        logger.debug("Push sent to token %s... (%s)", push.token[:20], message_id)
        return DeliveryOutcome.ok(push.token, message_id)
