"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import firebase_admin
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pulse.settings import Settings, get_settings, settings
from pulse.api.notifications import router as notifications_router
from pulse.api.tokens import router as tokens_router
from pulse.domain.common.errors import (
    AuthorizationError as DomainAuthorizationError,
    NotFoundError as DomainNotFoundError,
    ValidationError as DomainValidationError,
)
from pulse.domain.watchers.models import ChangeFeed
from pulse.domain.watchers.supervisor import WatcherSupervisor
from pulse.infra.db.base import AsyncSessionLocal, Base, engine
# Import all models to ensure they're registered with Base
from pulse.infra.db import models  # noqa: F401
from pulse.infra.feeds.firebase_feed import FirebaseChangeFeed
from pulse.infra.feeds.redis_feed import RedisChangeFeed
from pulse.infra.firebase import get_firebase_app
from pulse.infra.identity import FirebaseIdentityProvider
from pulse.infra.jobs.scheduler import build_scheduler
from pulse.infra.messaging.redis_bus import RedisBus
from pulse.infra.push.sender import FcmPushGateway
from pulse.services.container import build_components, build_watchers

# Configure logging
logging.basicConfig(
    level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_change_feed(config: Settings, firebase_app: Optional[firebase_admin.App], bus: RedisBus) -> Optional[ChangeFeed]:
    """Feed selected by change_feed_backend; None when the Firebase backend has no app."""
    if config.change_feed_backend == "firebase":
        if firebase_app is None or not config.firebase_database_url:
            logger.warning("change_feed_backend=firebase but Firebase is not configured; watchers disabled")
            return None
        return FirebaseChangeFeed(firebase_app)
    return RedisChangeFeed(bus, channel_prefix=config.change_feed_channel_prefix)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    config = get_settings()
    # Startup
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        # Don't fail startup - database might not be ready yet
        logger.warning("Could not connect to database during startup: %s", e)

    firebase_app = get_firebase_app()
    if firebase_app is None:
        logger.warning("Firebase not configured: push delivery and token verification are disabled")
    gateway = FcmPushGateway(
        firebase_app,
        send_timeout_seconds=config.push_send_timeout_seconds,
        ttl_seconds=config.push_ttl_seconds,
        channel_id=config.android_channel_id,
    )
    components = build_components(AsyncSessionLocal, config, gateway, FirebaseIdentityProvider(firebase_app))
    app.state.components = components

    bus = RedisBus(config.redis_url)
    supervisor: Optional[WatcherSupervisor] = None
    if config.watchers_enabled:
        feed = build_change_feed(config, firebase_app, bus)
        if feed is not None:
            supervisor = WatcherSupervisor(feed, build_watchers(components, config))
            supervisor.start_all()
    app.state.supervisor = supervisor

    scheduler = build_scheduler(components.service, config)
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("%s %s started", config.app_name, config.app_version)

    yield

    # Shutdown (CancelledError here is normal on Ctrl+C)
    try:
        scheduler.shutdown(wait=False)
        if supervisor is not None:
            await supervisor.stop_all()
        await bus.disconnect()
        await engine.dispose()
    except asyncio.CancelledError:
        logger.info("Lifespan shutdown cancelled (e.g. Ctrl+C); cleanup attempted.")
        raise


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r".*",
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# Domain error handlers: map domain exceptions to correct HTTP status
@app.exception_handler(DomainNotFoundError)
async def domain_not_found_handler(request: Request, exc: DomainNotFoundError):
    """Return 404 when a resource is not found."""
    return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})


@app.exception_handler(DomainAuthorizationError)
async def domain_authorization_handler(request: Request, exc: DomainAuthorizationError):
    """Return 403 when the user is not authorized."""
    logger.info("Forbidden %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=403, content={"success": False, "error": exc.message})


@app.exception_handler(DomainValidationError)
async def domain_validation_handler(request: Request, exc: DomainValidationError):
    """Return 400 for domain validation errors."""
    return JSONResponse(status_code=400, content={"success": False, "error": exc.message})


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    supervisor = getattr(request.app.state, "supervisor", None)
    return {
        "status": "ok",
        "version": settings.app_version,
        "watchers": bool(supervisor and supervisor.started),
    }


app.include_router(tokens_router, prefix=settings.api_prefix)
app.include_router(notifications_router, prefix=settings.api_prefix)
