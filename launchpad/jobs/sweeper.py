"""Retention sweeper: periodic eviction of finished jobs."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from launchpad.config import settings
from launchpad.jobs.errors import JobNotFoundError
from launchpad.jobs.models import utcnow
from launchpad.jobs.store import JobStore

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes completed/failed jobs older than the retention window.

    Pending and running jobs are never touched, whatever their age.
    """

    def __init__(
        self,
        store: JobStore,
        retention: Optional[timedelta] = None,
        interval: Optional[timedelta] = None,
    ):
        self._store = store
        if retention is None:
            retention = timedelta(hours=settings.job_retention_hours)
        if interval is None:
            interval = timedelta(minutes=settings.job_sweep_interval_minutes)
        self.retention = retention
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Remove expired terminal jobs. Returns count of removed jobs."""
        cutoff = (now or utcnow()) - self.retention
        removed = 0
        for job in self._store.list_jobs():
            if not job.is_terminal:
                continue
            finished = job.completed_at or job.created_at
            if finished >= cutoff:
                continue
            try:
                self._store.delete(job.id)
            except JobNotFoundError:
                continue
            removed += 1
        if removed:
            logger.info(f"Retention sweep removed {removed} job(s)")
        return removed

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Retention sweeper started (retention={self.retention}, interval={self.interval})"
        )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            try:
                self.sweep()
            except Exception:
                logger.exception("Retention sweep failed")
