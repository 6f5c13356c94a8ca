"""
Public notification facade.

Every operation returns a dict with `success` and, on failure, `error`. Nothing
raises across this boundary: domain errors become their messages plus an
`error_type`, anything else is logged and returned as its string. HTTP routes and
scheduled jobs call this instead of the components directly.
"""
import functools
import logging
from typing import Any, Awaitable, Callable, Optional

from pulse.domain.common.errors import AuthorizationError, DomainError, NotFoundError, ValidationError
from pulse.domain.notifications.dispatcher import Dispatcher
from pulse.domain.notifications.models import Category
from pulse.domain.notifications.record_store import NotificationRecordStore
from pulse.domain.notifications.token_registry import TokenRegistry

logger = logging.getLogger(__name__)

Result = dict[str, Any]


def error_type(error: BaseException) -> str:
    """Short classification carried in failed results so callers can map it (e.g. to an HTTP status)."""
    if isinstance(error, NotFoundError):
        return "not_found"
    if isinstance(error, AuthorizationError):
        return "forbidden"
    if isinstance(error, ValidationError):
        return "validation"
    return "error"


def _result(operation: str) -> Callable[[Callable[..., Awaitable[Result]]], Callable[..., Awaitable[Result]]]:
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> Result:
            try:
                return await fn(*args, **kwargs)
            except DomainError as e:
                logger.info("%s rejected: %s", operation, e)
                return {"success": False, "error": getattr(e, "message", None) or str(e), "error_type": error_type(e)}
            except Exception as e:
                logger.exception("%s failed: %s", operation, e)
                return {"success": False, "error": str(e), "error_type": "error"}
        return wrapper
    return decorator


class NotificationService:
    """Facade over the token registry, record store and dispatcher."""

    def __init__(
        self,
        registry: TokenRegistry,
        records: NotificationRecordStore,
        dispatcher: Dispatcher,
        *,
        retention_days: int = 30,
    ):
        self.registry = registry
        self.records = records
        self.dispatcher = dispatcher
        self.retention_days = retention_days

    # Sending
    @_result("send_to_user")
    async def send_to_user(
        self, user_id: str, title: str, body: str, data: Optional[dict[str, Any]] = None
    ) -> Result:
        category = Category.from_value((data or {}).get("type"))
        result = await self.dispatcher.send_to_user(user_id, title, body, data, category=category)
        return result.to_dict()

    @_result("send_to_community")
    async def send_to_community(
        self,
        community_id: str,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
        exclude_user_id: Optional[str] = None,
    ) -> Result:
        category = Category.from_value((data or {}).get("type"))
        result = await self.dispatcher.send_to_community(
            community_id, title, body, data, exclude_user_id, category=category
        )
        return result.to_dict()

    # Inbox
    @_result("list_for_user")
    async def list_for_user(self, user_id: str, limit: int = 20, offset: int = 0) -> Result:
        views = await self.records.list_for_user(user_id, limit=limit, offset=offset)
        return {"success": True, "notifications": [v.to_dict() for v in views], "count": len(views)}

    @_result("mark_read")
    async def mark_read(self, status_id: str, requested_by: Optional[str] = None, is_admin: bool = False) -> Result:
        """Mark one status read; with requested_by, only its owner (or an admin) may."""
        if requested_by is not None and not is_admin:
            status = await self.records.get_status(status_id)
            if status is None:
                raise NotFoundError("Notification status", status_id)
            if status.user_id != requested_by:
                logger.info("User %s tried to read notification status %s of user %s", requested_by, status_id, status.user_id)
                raise AuthorizationError("Forbidden - You can only access your own notifications")
        view = await self.records.mark_read(status_id)
        return {"success": True, "notification": view.to_dict()}

    @_result("mark_all_read")
    async def mark_all_read(self, user_id: str) -> Result:
        views = await self.records.mark_all_read(user_id)
        return {"success": True, "count": len(views), "notifications": [v.to_dict() for v in views]}

    @_result("cleanup_older_than")
    async def cleanup_older_than(self, days: Optional[int] = None) -> Result:
        days = self.retention_days if days is None else days
        count = await self.records.purge_older_than(days)
        return {"success": True, "count": count, "days": days}

    # Tokens
    @_result("register_token")
    async def register_token(self, user_id: str, token: str, platform: str) -> Result:
        bundle = await self.registry.register(user_id, token, platform)
        return {"success": True, "message": "Token registered successfully", "token_count": len(bundle.tokens)}

    @_result("set_preferences")
    async def set_preferences(self, user_id: str, preferences: dict[str, bool]) -> Result:
        bundle = await self.registry.set_preferences(user_id, preferences)
        return {"success": True, "preferences": dict(bundle.preferences)}

    @_result("logout")
    async def logout(self, user_id: str) -> Result:
        bundle = await self.registry.logout(user_id)
        return {"success": True, "message": "Tokens marked as logged out", "token_count": len(bundle.tokens)}

    @_result("remove_token")
    async def remove_token(self, user_id: str, token: str) -> Result:
        bundle = await self.registry.remove(user_id, token)
        return {"success": True, "message": "Token removed successfully", "token_count": len(bundle.tokens)}

    @_result("recover_missing_tokens")
    async def recover_missing_tokens(self) -> Result:
        report = await self.registry.recover_missing_tokens()
        return {"success": True, **report.to_dict()}
