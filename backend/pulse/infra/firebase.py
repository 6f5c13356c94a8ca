"""Firebase Admin app bootstrap (shared by push, auth and the Realtime Database feed)."""
import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials

from pulse.settings import settings

logger = logging.getLogger(__name__)

_firebase_app: Optional[firebase_admin.App] = None


def get_firebase_app() -> Optional[firebase_admin.App]:
    """Lazy-init the default Firebase app. Returns None if push is disabled or credentials are missing."""
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app
    if not settings.push_enabled:
        return None
    cred_path = settings.google_application_credentials or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "")
    if not cred_path:
        logger.debug("Firebase disabled: no GOOGLE_APPLICATION_CREDENTIALS")
        return None
    options = {"httpTimeout": settings.push_send_timeout_seconds}
    if settings.firebase_database_url:
        options["databaseURL"] = settings.firebase_database_url
    try:
        _firebase_app = firebase_admin.initialize_app(credentials.Certificate(cred_path), options)
    except (ValueError, OSError) as e:
        logger.warning("Firebase init failed (push disabled): %s", e)
        return None
    logger.info("Firebase app initialized (database: %s)", settings.firebase_database_url or "none")
    return _firebase_app
