"""Daily and weekly backup jobs, run as an asyncio task inside the consent service."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional
from prionstudy.config import Settings, get_settings
from prionstudy.services.backup_service import BackupService, backup_service

logger = logging.getLogger(__name__)

SUNDAY = 6


def next_daily_run(now: datetime, hour: int) -> datetime:
    run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if run <= now:
        run += timedelta(days=1)
    return run


def next_weekly_run(now: datetime, weekday: int, hour: int) -> datetime:
    run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    run += timedelta(days=(weekday - now.weekday()) % 7)
    if run <= now:
        run += timedelta(days=7)
    return run


@dataclass
class ScheduledJob:
    name: str
    next_run: Callable[[datetime], datetime]
    action: Callable[[], Awaitable[dict]]
    scheduled_at: Optional[datetime] = None
    last_result: Optional[dict] = None
    last_run_at: Optional[datetime] = None


class BackupScheduler:
    def __init__(
        self,
        backups: BackupService,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.backups = backups
        self.settings = settings or get_settings()
        self._now = now
        self._task: Optional[asyncio.Task] = None
        self.jobs = [
            ScheduledJob(
                name="daily",
                next_run=lambda t: next_daily_run(t, self.settings.backup_daily_hour),
                action=self.run_daily,
            ),
            ScheduledJob(
                name="weekly",
                next_run=lambda t: next_weekly_run(t, SUNDAY, self.settings.backup_weekly_hour),
                action=self.backups.backup_database_to_dropbox,
            ),
        ]

    async def run_daily(self) -> dict:
        results = {"local": await self.backups.create_local_backup()}
        if self.backups.client.configured:
            results["csvDropbox"] = await self.backups.export_csv_to_dropbox()
        results["cleanup"] = await self.backups.clean_old_backups()
        results["success"] = all(r.get("success") for r in results.values())
        return results

    def due_job(self) -> tuple[ScheduledJob, datetime]:
        """Earliest pending slot; on a tie the job listed first wins."""
        now = self._now()
        for job in self.jobs:
            if job.scheduled_at is None:
                job.scheduled_at = job.next_run(now)
        job = min(self.jobs, key=lambda j: j.scheduled_at)
        return job, job.scheduled_at

    async def run_job(self, job: ScheduledJob) -> Optional[dict]:
        """A failing job is logged; it never stops the loop."""
        logger.info("Running scheduled %s backup", job.name)
        job.last_run_at = self._now()
        try:
            job.last_result = await job.action()
        except Exception:
            logger.exception("Scheduled %s backup crashed", job.name)
            job.last_result = {"success": False, "error": "job crashed"}
        if not job.last_result.get("success"):
            logger.warning("Scheduled %s backup finished with errors: %s", job.name, job.last_result)
        return job.last_result

    async def run_and_reschedule(self, job: ScheduledJob) -> Optional[dict]:
        """Run one job and move only its own slot forward; other pending slots stay due."""
        slot = job.scheduled_at or self._now()
        result = await self.run_job(job)
        job.scheduled_at = job.next_run(max(slot, self._now()))
        return result

    async def _loop(self) -> None:
        while True:
            job, run_at = self.due_job()
            delay = max((run_at - self._now()).total_seconds(), 0)
            logger.info("Next %s backup at %s", job.name, run_at.isoformat())
            await asyncio.sleep(delay)
            await self.run_and_reschedule(job)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info("Backup scheduler started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Backup scheduler stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> dict:
        now = self._now()
        return {
            "running": self.running,
            "jobs": [
                {
                    "name": job.name,
                    "nextRun": (job.scheduled_at or job.next_run(now)).isoformat(),
                    "lastRunAt": job.last_run_at.isoformat() if job.last_run_at else None,
                    "lastSuccess": job.last_result.get("success") if job.last_result else None,
                }
                for job in self.jobs
            ],
        }


backup_scheduler = BackupScheduler(backup_service)
