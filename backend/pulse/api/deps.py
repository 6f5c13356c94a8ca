"""API dependencies."""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pulse.domain.common.errors import AuthorizationError
from pulse.domain.users.directory import IdentityProvider
from pulse.domain.users.models import AuthenticatedUser
from pulse.services.notification_service import NotificationService

bearer_scheme = HTTPBearer(auto_error=False)


def get_notification_service(request: Request) -> NotificationService:
    """The facade built in the app lifespan."""
    return request.app.state.components.service


def get_identity_provider(request: Request) -> Optional[IdentityProvider]:
    return request.app.state.components.identity


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: Optional[IdentityProvider] = Depends(get_identity_provider),
) -> AuthenticatedUser:
    """Caller from a verified Firebase ID token (Authorization: Bearer ...)."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized - No valid token provided",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials or identity is None:
        raise credentials_exception
    try:
        claims = await identity.verify_token(credentials.credentials)
    except AuthorizationError:
        credentials_exception.detail = "Unauthorized - Invalid token"
        raise credentials_exception
    uid = claims.get("uid") or claims.get("user_id") or claims.get("sub")
    if not uid:
        raise credentials_exception
    return AuthenticatedUser(uid=uid, email=claims.get("email"), is_admin=claims.get("admin") is True)


def authorize_user(current_user: AuthenticatedUser, user_id: str) -> None:
    """Users may only touch their own resources; admins may touch anyone's."""
    if current_user.uid != user_id and not current_user.is_admin:
        raise AuthorizationError("Forbidden - You can only access your own resources")


async def require_admin(current_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if not current_user.is_admin:
        raise AuthorizationError("Forbidden - Admin access required")
    return current_user


def raise_for_result(result: dict) -> dict:
    """Failed facade results become HTTP errors (404 for missing resources, 403 forbidden, else 400)."""
    if result.get("success"):
        return result
    code = {
        "not_found": status.HTTP_404_NOT_FOUND,
        "forbidden": status.HTTP_403_FORBIDDEN,
    }.get(result.get("error_type"), status.HTTP_400_BAD_REQUEST)
    raise HTTPException(status_code=code, detail=result.get("error") or "Request failed")
