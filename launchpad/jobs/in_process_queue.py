"""In-process job queue using asyncio.

Runs jobs sequentially (one at a time, oldest first) in a single
long-lived background task. No external dependencies (Redis, Celery)
needed; a distributed dispatcher can replace it behind JobDispatcher.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from launchpad.jobs.dispatcher import JobDispatcher
from launchpad.jobs.errors import InvalidStateTransitionError
from launchpad.jobs.models import JobRecord, JobStatus
from launchpad.jobs.processors import JobContext, ProcessorRegistry, default_registry
from launchpad.jobs.store import InMemoryJobStore, JobStore

logger = logging.getLogger(__name__)


def safe_error_message(e: Exception) -> str:
    """Exception text, falling back to the class name when str(e) is empty."""
    msg = str(e).strip()
    return msg or type(e).__name__


class InProcessQueue(JobDispatcher):
    """Local async job queue. Processes jobs one at a time via asyncio.

    A single worker task owns execution, so at most one job is ever
    RUNNING. submit() only records the job and wakes the worker.
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        registry: Optional[ProcessorRegistry] = None,
    ):
        self._store = store if store is not None else InMemoryJobStore()
        self._registry = registry if registry is not None else default_registry()
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._current_job_id: Optional[str] = None

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def registry(self) -> ProcessorRegistry:
        return self._registry

    @property
    def current_job_id(self) -> Optional[str]:
        return self._current_job_id

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def submit(self, job_type: str, payload: Dict[str, Any]) -> str:
        job_id = self._store.create(job_type, payload)
        logger.info(f"Queued job {job_id} ({job_type})")
        self._ensure_worker()
        self._wakeup.set()
        return job_id

    async def get_status(self, job_id: str) -> JobRecord:
        return self._store.get(job_id)

    async def list_jobs(self, status: Optional[JobStatus] = None) -> List[JobRecord]:
        return self._store.list_jobs(status)

    async def retry(self, job_id: str) -> str:
        job = self._store.get(job_id)
        if job.status != JobStatus.FAILED:
            raise InvalidStateTransitionError(job.status.value, JobStatus.PENDING.value)
        new_id = await self.submit(job.type, job.payload)
        logger.info(f"Retrying job {job_id} as {new_id}")
        return new_id

    async def start(self) -> None:
        self._ensure_worker()
        # Pick up anything submitted before start
        self._wakeup.set()

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def _ensure_worker(self) -> None:
        """Start the worker task unless one is already alive."""
        if self.is_running:
            return
        self._running = True
        self._task = asyncio.create_task(self._worker_loop())
        logger.info("Job worker started")

    async def _worker_loop(self) -> None:
        """Sleep until woken, then drain pending jobs in FIFO order."""
        try:
            while self._running:
                await self._wakeup.wait()
                self._wakeup.clear()
                while self._running:
                    job = self._store.next_pending()
                    if job is None:
                        break
                    await self._run_job(job.id)
        finally:
            logger.info("Job worker stopped")

    async def _run_job(self, job_id: str) -> None:
        def begin(job: JobRecord) -> None:
            job.mark_running()
            job.append_log(f"Starting job: {job.type}")

        job = self._store.update(job_id, begin)
        self._current_job_id = job_id
        ctx = JobContext(self._store, job_id)

        try:
            processor = self._registry.get(job.type)
            result = await processor.execute(job, ctx)
            # A bad result fails the job here instead of escaping the loop
            self._complete(job_id, result)
        except asyncio.CancelledError:
            self._fail(job_id, "Worker stopped before job finished")
            raise
        except Exception as e:
            logger.warning(f"Job {job_id} ({job.type}) failed", exc_info=True)
            self._fail(job_id, safe_error_message(e))
        else:
            logger.info(f"Job {job_id} ({job.type}) completed")
        finally:
            self._current_job_id = None

    def _complete(self, job_id: str, result: Optional[Dict[str, Any]]) -> None:
        def finish(job: JobRecord) -> None:
            job.mark_completed(result)
            job.append_log("Job completed successfully")

        self._store.update(job_id, finish)

    def _fail(self, job_id: str, message: str) -> None:
        def finish(job: JobRecord) -> None:
            job.mark_failed(message)
            job.append_log(f"Job failed: {job.error}")

        self._store.update(job_id, finish)
