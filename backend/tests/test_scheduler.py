"""Tests for the maintenance job schedule."""
from datetime import timedelta

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from pulse.infra.jobs.scheduler import (
    CLEANUP_JOB_ID,
    TOKEN_RECOVERY_JOB_ID,
    build_scheduler,
    run_cleanup_job,
    run_token_recovery_job,
)


async def test_jobs_follow_settings(components, config) -> None:
    config.cleanup_interval_hours = 12
    config.token_recovery_hour = 3

    scheduler = build_scheduler(components.service, config, run_cleanup_now=False)

    cleanup = scheduler.get_job(CLEANUP_JOB_ID)
    assert isinstance(cleanup.trigger, IntervalTrigger)
    assert cleanup.trigger.interval == timedelta(hours=12)

    recovery = scheduler.get_job(TOKEN_RECOVERY_JOB_ID)
    assert isinstance(recovery.trigger, CronTrigger)
    fields = {f.name: str(f) for f in recovery.trigger.fields}
    assert fields["hour"] == "3"
    assert fields["minute"] == "0"


async def test_default_schedule(components, config) -> None:
    scheduler = build_scheduler(components.service, config)

    assert scheduler.get_job(CLEANUP_JOB_ID).trigger.interval == timedelta(hours=24)
    assert {f.name: str(f) for f in scheduler.get_job(TOKEN_RECOVERY_JOB_ID).trigger.fields}["hour"] == "2"


async def test_cleanup_job_runs_cleanup(components, seed_users, register, clock) -> None:
    await seed_users({"id": "u1", "community_id": "c1"})
    await register("u1", "tok-u1")
    await components.service.send_to_user("u1", "Hello", "World")
    clock.advance(days=45)

    result = await run_cleanup_job(components.service)

    assert result["success"] is True
    assert result["count"] == 1


async def test_token_recovery_job(components, seed_users) -> None:
    await seed_users({"id": "u1", "community_id": "c1"})
    await components.registry.record_missing("u1")
    await components.registry.record_missing("ghost")

    result = await run_token_recovery_job(components.service)

    assert result["success"] is True
    assert result["checked"] == 2
    assert result["removed"] == ["ghost"]
    assert result["still_missing"] == ["u1"]
