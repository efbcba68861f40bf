"""Backup schedule arithmetic and job isolation."""

import asyncio
from datetime import datetime

from prionstudy.config import Settings
from prionstudy.services.scheduler import (
    SUNDAY,
    BackupScheduler,
    ScheduledJob,
    next_daily_run,
    next_weekly_run,
)

MONDAY_2AM = datetime(2024, 1, 1, 2, 0)


class StubClient:
    configured = False


class StubBackups:
    """Stands in for BackupService; records which layers ran."""

    def __init__(self):
        self.client = StubClient()
        self.ran = []

    async def create_local_backup(self):
        self.ran.append("local")
        return {"success": True}

    async def export_csv_to_dropbox(self):
        self.ran.append("csv")
        return {"success": True}

    async def clean_old_backups(self, retention_days=None):
        self.ran.append("cleanup")
        return {"success": True}

    async def backup_database_to_dropbox(self):
        self.ran.append("database")
        return {"success": True}


def test_daily_run_later_today():
    assert next_daily_run(MONDAY_2AM, 3) == datetime(2024, 1, 1, 3, 0)


def test_daily_run_rolls_to_tomorrow_once_the_hour_has_passed():
    assert next_daily_run(datetime(2024, 1, 1, 3, 0), 3) == datetime(2024, 1, 2, 3, 0)
    assert next_daily_run(datetime(2024, 1, 31, 23, 59), 3) == datetime(2024, 2, 1, 3, 0)


def test_weekly_run_lands_on_sunday():
    assert next_weekly_run(MONDAY_2AM, SUNDAY, 4) == datetime(2024, 1, 7, 4, 0)
    assert next_weekly_run(datetime(2024, 1, 7, 3, 0), SUNDAY, 4) == datetime(2024, 1, 7, 4, 0)
    assert next_weekly_run(datetime(2024, 1, 7, 5, 0), SUNDAY, 4) == datetime(2024, 1, 14, 4, 0)


def test_due_job_is_the_earliest():
    scheduler = BackupScheduler(StubBackups(), now=lambda: MONDAY_2AM)
    job, run_at = scheduler.due_job()
    assert job.name == "daily"
    assert run_at == datetime(2024, 1, 1, 3, 0)


def test_daily_job_skips_csv_export_without_dropbox():
    backups = StubBackups()
    scheduler = BackupScheduler(backups, now=lambda: MONDAY_2AM)

    result = asyncio.run(scheduler.run_daily())

    assert backups.ran == ["local", "cleanup"]
    assert result["success"] is True


def test_daily_job_exports_csv_with_dropbox():
    backups = StubBackups()
    backups.client.configured = True
    scheduler = BackupScheduler(backups, now=lambda: MONDAY_2AM)

    asyncio.run(scheduler.run_daily())

    assert backups.ran == ["local", "csv", "cleanup"]


def test_crashing_job_is_contained():
    async def explode():
        raise RuntimeError("disk full")

    scheduler = BackupScheduler(StubBackups(), now=lambda: MONDAY_2AM)
    job = ScheduledJob(name="broken", next_run=lambda now: now, action=explode)

    result = asyncio.run(scheduler.run_job(job))

    assert result["success"] is False
    assert job.last_run_at == MONDAY_2AM
    assert scheduler.status()["running"] is False


def test_weekly_job_uploads_database():
    backups = StubBackups()
    scheduler = BackupScheduler(backups, now=lambda: MONDAY_2AM)
    weekly = next(job for job in scheduler.jobs if job.name == "weekly")

    asyncio.run(scheduler.run_job(weekly))

    assert backups.ran == ["database"]
    status = {j["name"]: j for j in scheduler.status()["jobs"]}
    assert status["weekly"]["lastSuccess"] is True
    assert status["daily"]["lastRunAt"] is None


def test_start_and_stop():
    scheduler = BackupScheduler(StubBackups(), now=lambda: MONDAY_2AM)

    async def run():
        scheduler.start()
        started = scheduler.running
        await scheduler.stop()
        return started

    assert asyncio.run(run()) is True
    assert scheduler.running is False


class SteppingClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_weekly_job_still_runs_when_it_shares_the_daily_hour():
    clock = SteppingClock(datetime(2024, 1, 7, 2, 0))
    backups = StubBackups()
    settings = Settings(backup_daily_hour=3, backup_weekly_hour=3)
    scheduler = BackupScheduler(backups, settings=settings, now=clock)

    async def run():
        job, run_at = scheduler.due_job()
        assert (job.name, run_at) == ("daily", datetime(2024, 1, 7, 3, 0))
        clock.now = datetime(2024, 1, 7, 3, 0, 5)
        await scheduler.run_and_reschedule(job)

        job, run_at = scheduler.due_job()
        assert (job.name, run_at) == ("weekly", datetime(2024, 1, 7, 3, 0))
        await scheduler.run_and_reschedule(job)

        return scheduler.due_job()

    job, run_at = asyncio.run(run())

    assert backups.ran == ["local", "cleanup", "database"]
    assert (job.name, run_at) == ("daily", datetime(2024, 1, 8, 3, 0))
    weekly = next(j for j in scheduler.jobs if j.name == "weekly")
    assert weekly.scheduled_at == datetime(2024, 1, 14, 3, 0)


def test_rescheduling_after_a_run_moves_only_that_job():
    clock = SteppingClock(MONDAY_2AM)
    scheduler = BackupScheduler(StubBackups(), now=clock)
    daily, _ = scheduler.due_job()
    weekly = next(j for j in scheduler.jobs if j.name == "weekly")
    before = weekly.scheduled_at
    clock.now = datetime(2024, 1, 1, 3, 0, 1)

    asyncio.run(scheduler.run_and_reschedule(daily))

    assert daily.scheduled_at == datetime(2024, 1, 2, 3, 0)
    assert weekly.scheduled_at == before
