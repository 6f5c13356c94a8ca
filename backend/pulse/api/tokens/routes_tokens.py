"""Device token API routes."""
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from pulse.api.deps import authorize_user, get_current_user, get_notification_service, raise_for_result
from pulse.domain.users.models import AuthenticatedUser
from pulse.services.notification_service import NotificationService

router = APIRouter()


class TokenRegisterRequest(BaseModel):
    """Register (or refresh) a device token."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    token: str = Field(min_length=1)
    platform: str = Field(min_length=1)  # android, ios, web


class PreferencesRequest(BaseModel):
    """Per-category switches, e.g. {"chat": false}."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    preferences: dict[str, bool]


class LogoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)


@router.post("/register", status_code=status.HTTP_200_OK)
async def register_token(
    request: TokenRegisterRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    authorize_user(current_user, request.user_id)
    return raise_for_result(await service.register_token(request.user_id, request.token, request.platform))


@router.post("/preferences")
async def update_preferences(
    request: PreferencesRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    authorize_user(current_user, request.user_id)
    return raise_for_result(await service.set_preferences(request.user_id, request.preferences))


@router.post("/logout")
async def logout(
    request: LogoutRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Mark every device token of the user logged out."""
    authorize_user(current_user, request.user_id)
    return raise_for_result(await service.logout(request.user_id))


@router.delete("/{token}")
async def remove_token(
    token: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Remove one of the caller's device tokens."""
    return raise_for_result(await service.remove_token(current_user.uid, token))
