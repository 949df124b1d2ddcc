"""Tests for the in-process queue engine."""

import asyncio
import logging
import threading
from typing import Any, Dict, List

import pytest

from launchpad.jobs.errors import InvalidStateTransitionError, JobNotFoundError
from launchpad.jobs.in_process_queue import InProcessQueue
from launchpad.jobs.models import JobRecord, JobStatus
from launchpad.jobs.processors import (
    JobContext,
    JobProcessor,
    ProcessorRegistry,
    Step,
    TemplateValidationProcessor,
    default_registry,
)
from launchpad.jobs.store import InMemoryJobStore


class RecordingProcessor(JobProcessor):
    """Tracks execution order and how many jobs run at once."""

    job_type = "recording"

    def __init__(self, store: InMemoryJobStore):
        self.store = store
        self.order: List[str] = []
        self.active = 0
        self.max_active = 0
        self.max_running_in_store = 0

    async def execute(self, job: JobRecord, ctx: JobContext) -> Dict[str, Any]:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.max_running_in_store = max(
            self.max_running_in_store, len(self.store.list_jobs(JobStatus.RUNNING))
        )
        self.order.append(job.id)
        try:
            ctx.set_progress(50)
            await asyncio.sleep(0.001)
            ctx.set_progress(100)
        finally:
            self.active -= 1
        return {"n": job.payload.get("n")}


class BlockingProcessor(JobProcessor):
    job_type = "blocking"

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, job: JobRecord, ctx: JobContext) -> Dict[str, Any]:
        self.started.set()
        await self.release.wait()
        return {}


@pytest.fixture
def recorder(store: InMemoryJobStore, registry: ProcessorRegistry) -> RecordingProcessor:
    return registry.register(RecordingProcessor(store))


class TestScenarios:
    async def test_template_validation_completes(self, queue: InProcessQueue, wait_terminal) -> None:
        job_id = await queue.submit("template-validation", {})
        job = await wait_terminal(queue, job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.result == {"valid": True}
        assert job.progress == 100
        assert job.error is None
        assert job.logs[0] == "Starting job: template-validation"
        assert job.logs[-1] == "Job completed successfully"
        assert job.created_at <= job.started_at <= job.completed_at

    async def test_unknown_type_fails_without_running_stages(self, queue: InProcessQueue, wait_terminal) -> None:
        job_id = await queue.submit("bogus-type", {})
        job = await wait_terminal(queue, job_id)

        assert job.status == JobStatus.FAILED
        assert job.error == "Unknown job type: bogus-type"
        assert job.result is None
        assert job.progress is None
        assert job.logs == [
            "Starting job: bogus-type",
            "Job failed: Unknown job type: bogus-type",
        ]

    async def test_back_to_back_generation_runs_in_order(self, queue: InProcessQueue, wait_terminal) -> None:
        first = await queue.submit("project-generation", {"project_name": "One"})
        second = await queue.submit("project-generation", {"project_name": "Two"})

        job_1 = await wait_terminal(queue, first)
        job_2 = await wait_terminal(queue, second)

        assert job_1.status == job_2.status == JobStatus.COMPLETED
        assert job_1.started_at <= job_1.completed_at <= job_2.started_at
        assert job_1.progress == job_2.progress == 100

    async def test_deployment_result(self, queue: InProcessQueue, wait_terminal) -> None:
        job_id = await queue.submit("deployment", {"project_id": "abc", "platform": "vercel"})
        job = await wait_terminal(queue, job_id)

        assert job.result == {"deployment_url": "https://abc.vercel.com", "status": "deployed"}


class TestScheduling:
    async def test_at_most_one_job_running(
        self, queue: InProcessQueue, recorder: RecordingProcessor, wait_terminal
    ) -> None:
        ids = await asyncio.gather(*[queue.submit("recording", {"n": n}) for n in range(8)])
        for job_id in ids:
            await wait_terminal(queue, job_id)

        assert recorder.max_active == 1
        assert recorder.max_running_in_store == 1

    async def test_jobs_start_in_submission_order(
        self, queue: InProcessQueue, recorder: RecordingProcessor, wait_terminal
    ) -> None:
        ids = [await queue.submit("recording", {"n": n}) for n in range(5)]
        jobs = [await wait_terminal(queue, job_id) for job_id in ids]

        assert recorder.order == ids
        started = [job.started_at for job in jobs]
        assert started == sorted(started)

    async def test_failure_does_not_block_later_jobs(self, store, wait_terminal) -> None:
        def explode(job, ctx):
            raise RuntimeError("disk full")

        registry = default_registry(delay_scale=0)
        registry.register(TemplateValidationProcessor(steps=[
            Step("Validating template structure", 50),
            Step("Checking required files", 100, action=explode),
        ]))
        queue = InProcessQueue(store=store, registry=registry)
        try:
            bad = await queue.submit("template-validation", {})
            good = await queue.submit("deployment", {"project_id": "p", "platform": "github"})

            failed = await wait_terminal(queue, bad)
            done = await wait_terminal(queue, good)
        finally:
            await queue.stop()

        assert failed.status == JobStatus.FAILED
        assert failed.error == "disk full"
        assert failed.progress == 50
        assert failed.logs[-2:] == ["Checking required files...", "Job failed: disk full"]
        assert done.status == JobStatus.COMPLETED

    async def test_exception_without_message_uses_class_name(
        self, queue: InProcessQueue, registry: ProcessorRegistry, wait_terminal
    ) -> None:
        class Silent(JobProcessor):
            job_type = "silent"

            async def execute(self, job, ctx):
                raise KeyError()

        registry.register(Silent())
        job = await wait_terminal(queue, await queue.submit("silent", {}))

        assert job.error == "KeyError"

    async def test_non_mapping_result_fails_job_and_keeps_worker_alive(
        self, queue: InProcessQueue, registry: ProcessorRegistry, wait_terminal
    ) -> None:
        class ListResult(JobProcessor):
            job_type = "list-result"

            async def execute(self, job, ctx):
                return ["not", "a", "mapping"]

        registry.register(ListResult())
        bad = await queue.submit("list-result", {})
        follow = await queue.submit("template-validation", {})

        failed = await wait_terminal(queue, bad)
        done = await wait_terminal(queue, follow)

        assert failed.status == JobStatus.FAILED
        assert failed.error == "Processor returned list, expected a mapping"
        assert failed.result is None
        assert failed.completed_at is not None
        assert failed.logs[-1] == "Job failed: Processor returned list, expected a mapping"
        assert done.status == JobStatus.COMPLETED
        assert queue.is_running

    async def test_none_result_completes_with_empty_mapping(
        self, queue: InProcessQueue, registry: ProcessorRegistry, wait_terminal
    ) -> None:
        class NoResult(JobProcessor):
            job_type = "no-result"

            async def execute(self, job, ctx):
                return None

        registry.register(NoResult())
        job = await wait_terminal(queue, await queue.submit("no-result", {}))

        assert job.status == JobStatus.COMPLETED
        assert job.result == {}

    async def test_worker_is_single_and_lazy(self, queue: InProcessQueue, wait_terminal) -> None:
        assert not queue.is_running
        await queue.submit("template-validation", {})
        task = queue._task
        job_id = await queue.submit("template-validation", {})
        await wait_terminal(queue, job_id)

        assert queue._task is task
        assert queue.is_running

    async def test_start_picks_up_existing_pending_jobs(self, store: InMemoryJobStore, wait_terminal) -> None:
        job_id = store.create("template-validation", {})
        queue = InProcessQueue(store=store, registry=default_registry(delay_scale=0))
        try:
            await queue.start()
            job = await wait_terminal(queue, job_id)
        finally:
            await queue.stop()

        assert job.status == JobStatus.COMPLETED

    async def test_progress_visible_while_running(
        self, queue: InProcessQueue, registry: ProcessorRegistry
    ) -> None:
        gate = asyncio.Event()

        async def wait_for_gate(job, ctx):
            await gate.wait()

        registry.register(TemplateValidationProcessor(steps=[
            Step("Validating template structure", 50),
            Step("Checking required files", 100, action=wait_for_gate),
        ]))
        job_id = await queue.submit("template-validation", {})
        for _ in range(100):
            job = await queue.get_status(job_id)
            if job.current_step == "Checking required files":
                break
            await asyncio.sleep(0.001)

        assert job.status == JobStatus.RUNNING
        assert job.progress == 50
        assert job.logs[-1] == "Checking required files..."
        gate.set()


class TestStatusAndRetry:
    async def test_get_status_unknown(self, queue: InProcessQueue) -> None:
        with pytest.raises(JobNotFoundError):
            await queue.get_status("nope")

    async def test_retry_failed_job(self, queue: InProcessQueue, wait_terminal) -> None:
        failed_id = await queue.submit("bogus-type", {"a": 1})
        await wait_terminal(queue, failed_id)

        new_id = await queue.retry(failed_id)
        retried = await wait_terminal(queue, new_id)
        original = await queue.get_status(failed_id)

        assert new_id != failed_id
        assert retried.type == "bogus-type"
        assert retried.payload == {"a": 1}
        assert original.status == JobStatus.FAILED

    async def test_retry_completed_job_rejected(self, queue: InProcessQueue, wait_terminal) -> None:
        job_id = await queue.submit("template-validation", {})
        await wait_terminal(queue, job_id)

        with pytest.raises(InvalidStateTransitionError):
            await queue.retry(job_id)

    async def test_list_jobs(self, queue: InProcessQueue, wait_terminal) -> None:
        ok = await queue.submit("template-validation", {})
        bad = await queue.submit("bogus-type", {})
        await wait_terminal(queue, bad)

        assert [job.id for job in await queue.list_jobs()] == [ok, bad]
        assert [job.id for job in await queue.list_jobs(JobStatus.FAILED)] == [bad]


class TestShutdown:
    async def test_stop_fails_interrupted_job(self, store: InMemoryJobStore) -> None:
        registry = ProcessorRegistry()
        blocker = registry.register(BlockingProcessor())
        queue = InProcessQueue(store=store, registry=registry)

        job_id = await queue.submit("blocking", {})
        await asyncio.wait_for(blocker.started.wait(), timeout=2)
        await queue.stop()

        job = store.get(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error == "Worker stopped before job finished"
        assert not queue.is_running

    async def test_submit_after_stop_restarts_worker(self, queue: InProcessQueue, wait_terminal) -> None:
        await queue.start()
        await queue.stop()

        job = await wait_terminal(queue, await queue.submit("template-validation", {}))
        assert job.status == JobStatus.COMPLETED

    async def test_late_writes_from_executor_thread_are_dropped(
        self, store: InMemoryJobStore, wait_terminal
    ) -> None:
        entered = threading.Event()
        release = threading.Event()
        finished = threading.Event()

        def slow(job, ctx):
            entered.set()
            release.wait(5)
            ctx.append_log("late write")
            ctx.set_progress(100)
            ctx.set_step("Late", 9)
            finished.set()

        registry = ProcessorRegistry()
        registry.register(TemplateValidationProcessor(steps=[Step("Slow", 100, action=slow)]))
        queue = InProcessQueue(store=store, registry=registry)
        loop = asyncio.get_running_loop()

        job_id = await queue.submit("template-validation", {})
        assert await loop.run_in_executor(None, entered.wait, 5)
        await queue.stop()
        release.set()
        assert await loop.run_in_executor(None, finished.wait, 5)

        job = store.get(job_id)
        assert job.status == JobStatus.FAILED
        assert job.progress is None
        assert job.current_step == "Slow"
        assert job.total_steps == 1
        assert job.logs == [
            "Starting job: template-validation",
            "Slow...",
            "Job failed: Worker stopped before job finished",
        ]

    async def test_stop_while_idle_logs_worker_stopped(
        self, queue: InProcessQueue, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO, logger="launchpad.jobs.in_process_queue")
        await queue.start()
        await asyncio.sleep(0)
        await queue.stop()

        assert "Job worker stopped" in caplog.messages
