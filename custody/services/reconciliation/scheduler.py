"""
Reconciliation scheduler.

Runs named reconciliation jobs on an interval (APScheduler) or on demand
(HTTP trigger, Dramatiq actor). Two passes of the same job never overlap:
each run holds a guard named after the job, and a trigger that finds the
guard taken is reported as skipped instead of waiting.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from custody.config.constants import (
    JOB_LOCK_KEY_PREFIX,
    JOB_LOCK_TIMEOUT,
    JOB_PASS_TIMEOUT,
)
from custody.utils.datetime_utils import utc_now
from custody.utils.distributed_lock import DistributedLock
from custody.utils.exceptions import ConfigurationError

from .results import PassReport

PassFunction = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledJob:
    """Registered job."""

    name: str
    run_pass: PassFunction
    interval_seconds: int | None = None


class ReconciliationScheduler:
    """
    Job runner with per-job mutual exclusion.

    A pass function returns a summary object with to_dict(); any
    exception it raises becomes a failed PassReport.
    """

    def __init__(
        self,
        lock: DistributedLock | None = None,
        pass_timeout: float = JOB_PASS_TIMEOUT,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            lock: Guard implementation (in-process only if omitted)
            pass_timeout: Seconds after which a pass is cancelled; must
                stay below the guard expiry
        """
        self.lock = lock or DistributedLock()
        self.pass_timeout = pass_timeout
        self._jobs: dict[str, ScheduledJob] = {}
        self._last_reports: dict[str, PassReport] = {}
        self._scheduler: AsyncIOScheduler | None = None

    def register(
        self,
        name: str,
        run_pass: PassFunction,
        interval_seconds: int | None = None,
    ) -> None:
        """
        Register a job.

        Args:
            name: Job name, also the guard key
            run_pass: Coroutine function running one pass
            interval_seconds: Period for automatic runs (None = trigger only)
        """
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")
        self._jobs[name] = ScheduledJob(name, run_pass, interval_seconds)
        logger.info(
            f"Registered reconciliation job '{name}'"
            + (f" every {interval_seconds}s" if interval_seconds else "")
        )

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def last_report(self, name: str) -> PassReport | None:
        return self._last_reports.get(name)

    def is_running(self, name: str) -> bool:
        """Whether a pass of this job is in progress in this process."""
        return self.lock.is_locked(self._guard_key(name))

    @staticmethod
    def _guard_key(name: str) -> str:
        return f"{JOB_LOCK_KEY_PREFIX}:{name}"

    async def run(self, name: str) -> PassReport:
        """
        Run one pass of a job under its guard.

        Args:
            name: Registered job name

        Returns:
            PassReport (never raises for pass failures)

        Raises:
            KeyError: Unknown job name
        """
        job = self._jobs[name]
        started_at = utc_now()

        async with self.lock.lock(
            self._guard_key(name),
            timeout=JOB_LOCK_TIMEOUT,
            blocking=False,
        ) as acquired:
            if not acquired:
                logger.warning(f"Job '{name}' already running, trigger skipped")
                return PassReport(job=name, ok=False, skipped=True, started_at=started_at)

            logger.info(f"Starting job '{name}'...")
            try:
                summary = await asyncio.wait_for(job.run_pass(), timeout=self.pass_timeout)
                report = PassReport(
                    job=name,
                    ok=True,
                    summary=summary.to_dict(),
                    started_at=started_at,
                    finished_at=utc_now(),
                )
                logger.info(f"Job '{name}' complete: {report.summary}")
            except TimeoutError:
                logger.error(
                    f"Job '{name}' cancelled after {self.pass_timeout}s, "
                    f"unfinished records are picked up next pass"
                )
                report = PassReport(
                    job=name,
                    ok=False,
                    error=f"timed out after {self.pass_timeout}s",
                    started_at=started_at,
                    finished_at=utc_now(),
                )
            except ConfigurationError as e:
                logger.critical(f"Job '{name}' aborted by configuration error: {e}")
                report = PassReport(
                    job=name,
                    ok=False,
                    error=f"configuration: {e}",
                    started_at=started_at,
                    finished_at=utc_now(),
                )
            except Exception as e:
                logger.exception(f"Job '{name}' failed: {e}")
                report = PassReport(
                    job=name,
                    ok=False,
                    error=str(e),
                    started_at=started_at,
                    finished_at=utc_now(),
                )

        self._last_reports[name] = report
        return report

    def start(self) -> AsyncIOScheduler:
        """
        Start interval runs for jobs that have an interval.

        Must be called from inside a running event loop.
        """
        if self._scheduler is not None:
            return self._scheduler

        scheduler = AsyncIOScheduler(timezone="UTC")
        for job in self._jobs.values():
            if not job.interval_seconds:
                continue
            scheduler.add_job(
                self.run,
                "interval",
                seconds=job.interval_seconds,
                args=[job.name],
                id=job.name,
                name=job.name,
                max_instances=1,
                coalesce=True,
                next_run_time=utc_now(),
            )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"Scheduler started with {len(scheduler.get_jobs())} interval job(s)")
        return scheduler

    def shutdown(self) -> None:
        """Stop interval runs; a pass in progress finishes on its own."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Scheduler stopped")

    def next_run_times(self) -> dict[str, str | None]:
        """Next scheduled run per interval job (for health output)."""
        if self._scheduler is None:
            return {}
        return {
            job.id: job.next_run_time.isoformat() if job.next_run_time else None
            for job in self._scheduler.get_jobs()
        }
