"""Job processors: per-type execution logic and the registry that maps
job types to them.

To add a job type:
1. Subclass JobProcessor (or StagedProcessor for step-list work)
2. Set job_type and implement execute() / build_result()
3. Register an instance with ProcessorRegistry.register()
"""

import asyncio
import inspect
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from launchpad.config import settings
from launchpad.jobs.errors import ProcessorError, UnknownJobTypeError
from launchpad.jobs.models import JobRecord
from launchpad.jobs.store import JobStore


class JobContext:
    """Write-through handle a processor uses to report on its job.

    Each call lands in the store immediately, so pollers see progress while
    the processor is still running. Safe to call from executor threads.
    Writes after the job is completed or failed are dropped, e.g. from an
    executor thread still running when the queue was stopped.
    """

    def __init__(self, store: JobStore, job_id: str):
        self._store = store
        self.job_id = job_id

    def _write(self, mutate: Callable[[JobRecord], None]) -> None:
        def apply(job: JobRecord) -> None:
            if not job.is_terminal:
                mutate(job)

        self._store.update(self.job_id, apply)

    def append_log(self, message: str) -> None:
        self._write(lambda job: job.append_log(message))

    def set_progress(self, percent: int) -> None:
        self._write(lambda job: job.set_progress(percent))

    def set_step(self, name: str, total: int) -> None:
        def apply(job: JobRecord) -> None:
            job.current_step = name
            job.total_steps = total

        self._write(apply)


class JobProcessor(ABC):
    """Execution logic for one job type.

    execute() returns the result mapping or raises. It must not touch the
    job's status; the queue owns lifecycle transitions.
    """

    job_type: str = ""

    @abstractmethod
    async def execute(self, job: JobRecord, ctx: JobContext) -> Dict[str, Any]:
        ...


# Step action signature: fn(job, ctx). May be sync or async.
StepAction = Callable[[JobRecord, JobContext], Any]


@dataclass
class Step:
    """One stage of a staged processor."""
    name: str
    progress: int
    delay: float = 0.0
    action: Optional[StepAction] = None

    @property
    def message(self) -> str:
        return f"{self.name}..."


class StagedProcessor(JobProcessor):
    """Runs a fixed list of steps, then builds the result.

    Steps with no action just wait out their delay (simulated work). Pass
    `steps` to substitute real work without changing the queue.
    """

    default_steps: Sequence[Step] = ()

    def __init__(self, steps: Optional[Sequence[Step]] = None, delay_scale: Optional[float] = None):
        self.steps: List[Step] = list(steps if steps is not None else self.default_steps)
        self._delay_scale = delay_scale

    @property
    def delay_scale(self) -> float:
        if self._delay_scale is not None:
            return self._delay_scale
        return settings.job_step_delay_scale

    async def execute(self, job: JobRecord, ctx: JobContext) -> Dict[str, Any]:
        total = len(self.steps)
        for step in self.steps:
            ctx.append_log(self.describe(step, job))
            ctx.set_step(step.name, total)
            await self._perform(step, job, ctx)
            ctx.set_progress(step.progress)
        return self.build_result(job)

    def describe(self, step: Step, job: JobRecord) -> str:
        return step.message

    async def _perform(self, step: Step, job: JobRecord, ctx: JobContext) -> None:
        if step.action is not None:
            if inspect.iscoroutinefunction(step.action):
                await step.action(job, ctx)
            else:
                # Blocking work goes to a thread so the event loop keeps serving polls
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, step.action, job, ctx)
        # Always yield, even for zero delays
        await asyncio.sleep(step.delay * self.delay_scale)

    @abstractmethod
    def build_result(self, job: JobRecord) -> Dict[str, Any]:
        ...


def slugify(name: str) -> str:
    """Lower-case a project name and replace whitespace runs with hyphens."""
    return re.sub(r"\s+", "-", name.lower())


class ProjectGenerationProcessor(StagedProcessor):
    job_type = "project-generation"
    default_steps = (
        Step("Loading template", 10, delay=1.0),
        Step("Validating variables", 20, delay=0.5),
        Step("Creating project structure", 40, delay=2.0),
        Step("Generating files from template", 60, delay=3.0),
        Step("Installing dependencies", 80, delay=2.0),
        Step("Building project", 90, delay=1.0),
        Step("Preparing download", 100, delay=0.5),
    )

    def __init__(
        self,
        steps: Optional[Sequence[Step]] = None,
        delay_scale: Optional[float] = None,
        direct_deploy_platform: Optional[str] = None,
        download_base_url: Optional[str] = None,
    ):
        super().__init__(steps=steps, delay_scale=delay_scale)
        self.direct_deploy_platform = direct_deploy_platform or settings.direct_deploy_platform
        self.download_base_url = (download_base_url or settings.download_base_url).rstrip("/")

    def build_result(self, job: JobRecord) -> Dict[str, Any]:
        platform = job.payload.get("deployment_platform")
        deployment_url = None
        if platform == self.direct_deploy_platform:
            project_name = job.payload.get("project_name")
            if not project_name:
                raise ProcessorError("project_name is required for direct deployment")
            deployment_url = f"https://{slugify(project_name)}.{platform}.app"

        return {
            "project_id": str(uuid.uuid4()),
            "download_url": f"{self.download_base_url}/{uuid.uuid4()}.zip",
            "deployment_url": deployment_url,
        }


class TemplateValidationProcessor(StagedProcessor):
    job_type = "template-validation"
    default_steps = (
        Step("Validating template structure", 50, delay=1.0),
        Step("Checking required files", 100, delay=1.0),
    )

    def build_result(self, job: JobRecord) -> Dict[str, Any]:
        return {"valid": True}


class DeploymentProcessor(StagedProcessor):
    job_type = "deployment"
    default_steps = (
        Step("Preparing deployment", 30, delay=2.0),
        Step("Building application", 60, delay=3.0),
        Step("Deploying to platform", 90, delay=4.0),
        Step("Deployment completed", 100, delay=0.5),
    )

    def describe(self, step: Step, job: JobRecord) -> str:
        if step.name == "Preparing deployment":
            return f"Preparing deployment to {self._platform(job)}..."
        if step.name == "Deployment completed":
            return "Deployment completed!"
        return step.message

    def build_result(self, job: JobRecord) -> Dict[str, Any]:
        project_id = job.payload.get("project_id") or job.id
        return {
            "deployment_url": f"https://{project_id}.{self._platform(job)}.com",
            "status": "deployed",
        }

    @staticmethod
    def _platform(job: JobRecord) -> str:
        platform = job.payload.get("platform")
        if not platform:
            raise ProcessorError("Deployment platform is required")
        return platform


class ProcessorRegistry:
    """Maps job type strings to processor instances."""

    def __init__(self):
        self._processors: Dict[str, JobProcessor] = {}

    def register(self, processor: JobProcessor) -> JobProcessor:
        if not processor.job_type:
            raise ValueError(f"{type(processor).__name__} has no job_type")
        self._processors[processor.job_type] = processor
        return processor

    def get(self, job_type: str) -> JobProcessor:
        processor = self._processors.get(job_type)
        if processor is None:
            raise UnknownJobTypeError(job_type)
        return processor

    def types(self) -> List[str]:
        return sorted(self._processors)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._processors


def default_registry(delay_scale: Optional[float] = None) -> ProcessorRegistry:
    """Registry holding the built-in project, template and deployment processors."""
    registry = ProcessorRegistry()
    registry.register(ProjectGenerationProcessor(delay_scale=delay_scale))
    registry.register(TemplateValidationProcessor(delay_scale=delay_scale))
    registry.register(DeploymentProcessor(delay_scale=delay_scale))
    return registry
