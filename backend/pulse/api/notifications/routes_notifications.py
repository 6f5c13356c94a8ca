"""Notification API routes."""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from pulse.api.deps import (
    authorize_user,
    get_current_user,
    get_notification_service,
    raise_for_result,
    require_admin,
)
from pulse.domain.users.models import AuthenticatedUser
from pulse.services.notification_service import NotificationService

router = APIRouter()


class SendRequest(BaseModel):
    """Direct notification to one user."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class CommunitySendRequest(BaseModel):
    """Broadcast to a community, optionally skipping one member (usually the actor)."""
    model_config = ConfigDict(populate_by_name=True)

    community_id: str = Field(alias="communityId", min_length=1)
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    exclude_user_id: Optional[str] = Field(default=None, alias="excludeUserId")


class CleanupRequest(BaseModel):
    days: Optional[int] = Field(default=None, ge=0)


@router.get("/user/{user_id}")
async def list_user_notifications(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Unread notifications of a user, newest first."""
    authorize_user(current_user, user_id)
    return raise_for_result(await service.list_for_user(user_id, limit=limit, offset=offset))


@router.post("/read/{status_id}")
async def mark_notification_read(
    status_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return raise_for_result(
        await service.mark_read(status_id, requested_by=current_user.uid, is_admin=current_user.is_admin)
    )


@router.post("/read-all/{user_id}")
async def mark_all_notifications_read(
    user_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    authorize_user(current_user, user_id)
    return raise_for_result(await service.mark_all_read(user_id))


@router.post("/send")
async def send_notification(
    request: SendRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Users may notify themselves; admins may notify anyone."""
    authorize_user(current_user, request.user_id)
    return raise_for_result(await service.send_to_user(request.user_id, request.title, request.body, request.data))


@router.post("/send-community")
async def send_community_notification(
    request: CommunitySendRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    return raise_for_result(
        await service.send_to_community(
            request.community_id, request.title, request.body, request.data, request.exclude_user_id
        )
    )


@router.post("/cleanup")
async def cleanup_notifications(
    request: Optional[CleanupRequest] = None,
    admin: AuthenticatedUser = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    """Purge unread status rows older than the retention window (or `days`)."""
    days = request.days if request is not None else None
    return raise_for_result(await service.cleanup_older_than(days))
