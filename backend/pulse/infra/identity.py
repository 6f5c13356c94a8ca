"""Identity provider backed by Firebase Auth."""
import asyncio
import logging
from typing import Optional

import firebase_admin
from firebase_admin import auth

from pulse.domain.common.errors import AuthorizationError
from pulse.domain.users.models import IdentityRecord

logger = logging.getLogger(__name__)


class FirebaseIdentityProvider:
    """Account lookups and ID-token verification. The SDK is blocking, so calls run in a thread."""

    def __init__(self, app: Optional[firebase_admin.App]):
        self._app = app

    async def get_user(self, uid: str) -> Optional[IdentityRecord]:
        if self._app is None:
            return None
        try:
            record = await asyncio.to_thread(auth.get_user, uid, self._app)
        except auth.UserNotFoundError:
            return None
        return IdentityRecord(uid=record.uid, email=record.email, display_name=record.display_name)

    async def verify_token(self, id_token: str) -> dict:
        """Decoded claims of a Firebase ID token; AuthorizationError if it does not verify."""
        if self._app is None:
            raise AuthorizationError("Authentication is not configured")
        try:
            return await asyncio.to_thread(auth.verify_id_token, id_token, self._app)
        except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError,
                auth.CertificateFetchError) as e:
            logger.info("Rejected ID token: %s", e)
            raise AuthorizationError("Invalid authentication token") from e
