"""Shared pytest fixtures for the job service tests."""

import asyncio
from typing import Awaitable, Callable

import pytest

from launchpad.config import settings
from launchpad.jobs.in_process_queue import InProcessQueue
from launchpad.jobs.models import JobRecord
from launchpad.jobs.processors import ProcessorRegistry, default_registry
from launchpad.jobs.store import InMemoryJobStore


@pytest.fixture(autouse=True)
def instant_steps(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make simulated processor stages complete without sleeping."""
    monkeypatch.setattr(settings, "job_step_delay_scale", 0.0)


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def registry() -> ProcessorRegistry:
    return default_registry(delay_scale=0)


@pytest.fixture
async def queue(store: InMemoryJobStore, registry: ProcessorRegistry):
    q = InProcessQueue(store=store, registry=registry)
    yield q
    await q.stop()


@pytest.fixture
def wait_terminal() -> Callable[..., Awaitable[JobRecord]]:
    """Poll a queue until the job is completed or failed."""

    async def _wait(q: InProcessQueue, job_id: str, timeout: float = 5.0) -> JobRecord:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            job = await q.get_status(job_id)
            if job.is_terminal:
                return job
            if loop.time() > deadline:
                raise AssertionError(f"Job {job_id} still {job.status.value} after {timeout}s")
            await asyncio.sleep(0.005)

    return _wait
