"""
Scheduler infrastructure for periodic scrape runs.
"""

import logging
from typing import Any, Callable, Dict, Optional, Union

from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from croniter import croniter


logger = logging.getLogger(__name__)


class Scheduler:
    """Async cron scheduler wrapper around APScheduler with optional persistence."""

    def __init__(
        self,
        db_url: str = "sqlite:///scheduler_jobs.db",
        timezone: str = "UTC",
        enable_persistence: bool = False,
    ):
        if enable_persistence:
            jobstores = {"default": SQLAlchemyJobStore(url=db_url)}
        else:
            jobstores = {}

        job_defaults = {
            # one scrape-all at a time; a late run still fires once
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 300,  # seconds
        }

        self.timezone = timezone
        self.persistent = enable_persistence
        self._scheduler = AsyncIOScheduler(
            jobstores=jobstores,
            job_defaults=job_defaults,
            timezone=timezone,
        )
        self._started = False

    async def start(self) -> None:
        if not self._started:
            self._scheduler.start()
            self._started = True
            logger.info(f"Scheduler started (persistence {'on' if self.persistent else 'off'})")

    async def stop(self) -> None:
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Scheduler stopped")

    @staticmethod
    def validate_cron_expression(cron_expression: str) -> bool:
        """Validate a five-field cron expression using croniter."""
        if len(cron_expression.split()) != 5:
            logger.error(f"Cron expression must have 5 parts: {cron_expression!r}")
            return False
        try:
            croniter(cron_expression)
            return True
        except Exception as e:
            logger.error(f"Invalid cron expression '{cron_expression}': {e}")
            return False

    def add_cron_job(
        self,
        func: Union[Callable, str],
        cron_expression: str,
        job_id: str,
        **kwargs,
    ) -> None:
        """Add a job that runs on a cron schedule.

        *func* may be a textual ``module:function`` reference (required for
        persistent job stores); it is then called with ``job_id`` as its
        only argument.
        """
        if not self.validate_cron_expression(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression}")

        trigger = CronTrigger.from_crontab(cron_expression, timezone=self.timezone)
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            args=[job_id] if isinstance(func, str) else [],
            replace_existing=True,
            **kwargs,
        )
        logger.info(f"Added cron job: {job_id} ({cron_expression})")

    def remove_job(self, job_id: str) -> None:
        self._scheduler.remove_job(job_id)
        logger.info(f"Removed job: {job_id}")

    def list_jobs(self) -> Dict[str, Dict[str, Any]]:
        jobs = {}
        for job in self._scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
        return jobs

    def next_run(self, job_id: str) -> Optional[Any]:
        job = self._scheduler.get_job(job_id)
        return getattr(job, "next_run_time", None) if job else None
