"""Periodic maintenance jobs: notification cleanup and missing-token recovery."""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from pulse.services.notification_service import NotificationService
from pulse.settings import Settings

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "notification_cleanup"
TOKEN_RECOVERY_JOB_ID = "token_recovery"


async def run_cleanup_job(service: NotificationService) -> dict:
    result = await service.cleanup_older_than()
    if result["success"]:
        logger.info("Notification cleanup removed %d status row(s)", result["count"])
    else:
        logger.error("Notification cleanup failed: %s", result.get("error"))
    return result


async def run_token_recovery_job(service: NotificationService) -> dict:
    result = await service.recover_missing_tokens()
    if result["success"]:
        logger.info(
            "Token recovery: checked %d, recovered %d, removed %d, still missing %d",
            result["checked"], len(result["recovered"]), len(result["removed"]), len(result["still_missing"]),
        )
    else:
        logger.error("Token recovery failed: %s", result.get("error"))
    return result


def build_scheduler(service: NotificationService, config: Settings, run_cleanup_now: bool = True) -> AsyncIOScheduler:
    """Cleanup every cleanup_interval_hours (plus once right away), token recovery daily at token_recovery_hour UTC."""
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    # An explicit next_run_time of None would add the job paused
    first_run = {"next_run_time": datetime.now(timezone.utc)} if run_cleanup_now else {}
    scheduler.add_job(
        run_cleanup_job,
        "interval",
        hours=config.cleanup_interval_hours,
        args=[service],
        id=CLEANUP_JOB_ID,
        coalesce=True,
        max_instances=1,
        **first_run,
    )
    scheduler.add_job(
        run_token_recovery_job,
        "cron",
        hour=config.token_recovery_hour,
        minute=0,
        args=[service],
        id=TOKEN_RECOVERY_JOB_ID,
        coalesce=True,
        max_instances=1,
    )
    return scheduler
