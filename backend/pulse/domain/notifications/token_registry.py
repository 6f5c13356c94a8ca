"""Token registry: device push-token lifecycle per user."""
import logging
from datetime import timedelta
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from pulse.domain.common.errors import NotFoundError, ValidationError
from pulse.domain.common.types import Clock, utcnow
from pulse.domain.notifications.models import (
    Category,
    DeviceToken,
    Platform,
    RecoveryReport,
    TokenBundle,
)
from pulse.domain.notifications.preferences import default_preferences
from pulse.infra.db.repositories.token_repo import TokenRepository
from pulse.infra.db.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


def _parse_platform(platform: str) -> Platform:
    try:
        return Platform((platform or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unsupported platform: {platform!r}") from None


class TokenRegistry:
    """Owns TokenBundles.

    Every operation is read-then-write without locks. Concurrent calls for one
    user can race; that is tolerated because registration filters duplicates by
    value and pruning only removes tokens already confirmed failed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        token_limit: int = 10,
        retention_days: int = 90,
        missing_alert_days: int = 30,
        clock: Clock = utcnow,
    ):
        if token_limit < 1:
            raise ValueError("token_limit must be at least 1")
        self._session_factory = session_factory
        self.token_limit = token_limit
        self.retention_days = retention_days
        self.missing_alert_days = missing_alert_days
        self._clock = clock

    async def get_bundle(self, user_id: str) -> Optional[TokenBundle]:
        async with self._session_factory() as session:
            return await TokenRepository(session).get(user_id)

    def cleanup_stale(self, bundle: TokenBundle) -> list[DeviceToken]:
        """Drop logged-out tokens and tokens idle beyond the retention window. Returns what was removed."""
        cutoff = self._clock() - timedelta(days=self.retention_days)
        kept: list[DeviceToken] = []
        removed: list[DeviceToken] = []
        for t in bundle.tokens:
            if t.logged_out or t.last_active_at < cutoff:
                removed.append(t)
            else:
                kept.append(t)
        bundle.tokens = kept
        return removed

    def _evict_for_new_token(self, bundle: TokenBundle) -> list[DeviceToken]:
        """Make room for one more token: drop the oldest by created_at (first in list order on ties)."""
        evicted: list[DeviceToken] = []
        while len(bundle.tokens) >= self.token_limit:
            oldest = min(bundle.tokens, key=lambda t: t.created_at)
            bundle.tokens.remove(oldest)
            evicted.append(oldest)
        return evicted

    async def register(self, user_id: str, token: str, platform: str) -> TokenBundle:
        """Idempotent upsert of one device token."""
        if not user_id or not token:
            raise ValidationError("Missing required fields: user_id, token, platform")
        device_platform = _parse_platform(platform)
        now = self._clock()
        async with self._session_factory() as session:
            repo = TokenRepository(session)
            bundle = await repo.get(user_id)
            if bundle is None:
                bundle = TokenBundle(
                    user_id=user_id,
                    tokens=[],
                    preferences=default_preferences(),
                    created_at=now,
                    updated_at=now,
                )
                logger.info("Creating token bundle for user %s", user_id)

            existing = bundle.find(token)
            if existing is not None:
                existing.last_active_at = now
                existing.logged_out = False
                existing.platform = device_platform
            removed = self.cleanup_stale(bundle)
            if removed:
                logger.info("Removed %d stale token(s) for user %s", len(removed), user_id)
            if existing is None:
                for evicted in self._evict_for_new_token(bundle):
                    logger.info("Token limit reached for user %s; evicted %s...", user_id, evicted.token[:20])
                bundle.tokens.append(
                    DeviceToken(
                        token=token,
                        platform=device_platform,
                        created_at=now,
                        last_active_at=now,
                    )
                )
            bundle.updated_at = now
            await repo.save(bundle)
            if await repo.delete_missing(user_id):
                logger.info("token_recovery_success: user %s registered a token", user_id)
            await session.commit()
        return bundle

    async def set_preferences(self, user_id: str, prefs: dict[str, bool]) -> TokenBundle:
        """Merge category switches into the user's preferences."""
        unknown = [k for k in prefs if k not in {c.value for c in Category.filterable()}]
        if unknown:
            raise ValidationError(f"Unknown notification categories: {', '.join(sorted(unknown))}")
        async with self._session_factory() as session:
            repo = TokenRepository(session)
            bundle = await repo.get(user_id)
            if bundle is None:
                raise NotFoundError("User token document", user_id)
            bundle.preferences = {**bundle.preferences, **{k: bool(v) for k, v in prefs.items()}}
            bundle.updated_at = self._clock()
            await repo.save(bundle)
            await session.commit()
        return bundle

    async def logout(self, user_id: str) -> TokenBundle:
        """Mark every token logged out; the next registration reactivates it."""
        async with self._session_factory() as session:
            repo = TokenRepository(session)
            bundle = await repo.get(user_id)
            if bundle is None:
                raise NotFoundError("User token document", user_id)
            for t in bundle.tokens:
                t.logged_out = True
            bundle.updated_at = self._clock()
            await repo.save(bundle)
            await session.commit()
        return bundle

    async def remove(self, user_id: str, token: str) -> TokenBundle:
        """Delete one token."""
        async with self._session_factory() as session:
            repo = TokenRepository(session)
            bundle = await repo.get(user_id)
            if bundle is None:
                raise NotFoundError("User token document", user_id)
            existing = bundle.find(token)
            if existing is None:
                raise NotFoundError("Token", f"{token[:20]}...")
            bundle.tokens.remove(existing)
            bundle.updated_at = self._clock()
            await repo.save(bundle)
            await session.commit()
        return bundle

    async def prune_failed(self, user_id: str, failed_tokens: Iterable[str]) -> Optional[TokenBundle]:
        """Remove permanently failed tokens in one update. Returns the updated bundle (None if absent)."""
        failed = set(failed_tokens)
        async with self._session_factory() as session:
            repo = TokenRepository(session)
            bundle = await repo.get(user_id)
            if bundle is None or not failed:
                return bundle
            before = len(bundle.tokens)
            bundle.tokens = [t for t in bundle.tokens if t.token not in failed]
            if len(bundle.tokens) != before:
                bundle.updated_at = self._clock()
                await repo.save(bundle)
                await session.commit()
                logger.info("Pruned %d failed token(s) for user %s", before - len(bundle.tokens), user_id)
        return bundle

    async def record_missing(self, user_id: str) -> None:
        """Remember that a send found no tokens for this user."""
        async with self._session_factory() as session:
            await TokenRepository(session).upsert_missing(user_id, self._clock())
            await session.commit()

    async def recover_missing_tokens(self) -> RecoveryReport:
        """One recovery pass over missing-token markers.

        Users who registered since are cleared, users that no longer exist are
        dropped, the rest get their attempt counter bumped. Users missing tokens
        for longer than the alert window are reported.
        """
        now = self._clock()
        alert_cutoff = now - timedelta(days=self.missing_alert_days)
        report = RecoveryReport()
        async with self._session_factory() as session:
            tokens = TokenRepository(session)
            users = UserRepository(session)
            for row in await tokens.list_missing():
                report.checked += 1
                bundle = await tokens.get(row.user_id)
                if bundle is not None and bundle.active_tokens():
                    await tokens.delete_missing(row.user_id)
                    report.recovered.append(row.user_id)
                    logger.info("token_recovery_success: user %s has %d token(s)", row.user_id, len(bundle.active_tokens()))
                    continue
                if await users.get(row.user_id) is None:
                    await tokens.delete_missing(row.user_id)
                    report.removed.append(row.user_id)
                    logger.info("Dropping missing-token marker for deleted user %s", row.user_id)
                    continue
                row.recovery_attempts = (row.recovery_attempts or 0) + 1
                row.last_checked = now
                report.still_missing.append(row.user_id)
                if row.first_detected < alert_cutoff:
                    report.long_term_missing.append(row.user_id)
            await session.commit()
        if report.long_term_missing:
            logger.warning(
                "%d user(s) missing tokens for more than %d days: %s",
                len(report.long_term_missing),
                self.missing_alert_days,
                ", ".join(report.long_term_missing),
            )
        return report
