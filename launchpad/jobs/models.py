"""Job record data model and lifecycle transitions."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional
from pydantic import BaseModel, Field
import uuid

from launchpad.jobs.errors import InvalidStateTransitionError, ProcessorError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
})


class JobRecord(BaseModel):
    """Tracks the lifecycle of one background job.

    Lifecycle: PENDING -> RUNNING -> COMPLETED | FAILED. Terminal states are
    final; the mark_* helpers refuse any other move.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), frozen=True)
    type: str = Field(frozen=True)
    payload: Dict[str, Any] = Field(default_factory=dict, frozen=True)
    status: JobStatus = JobStatus.PENDING
    progress: Optional[int] = None
    current_step: Optional[str] = None
    total_steps: Optional[int] = None
    logs: List[str] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _require(self, current: JobStatus, target: JobStatus) -> None:
        if self.status != current:
            raise InvalidStateTransitionError(self.status.value, target.value)

    def mark_running(self) -> None:
        self._require(JobStatus.PENDING, JobStatus.RUNNING)
        self.status = JobStatus.RUNNING
        self.started_at = utcnow()

    def mark_completed(self, result: Optional[Mapping[str, Any]]) -> None:
        self._require(JobStatus.RUNNING, JobStatus.COMPLETED)
        if result is None:
            result = {}
        if not isinstance(result, Mapping):
            raise ProcessorError(
                f"Processor returned {type(result).__name__}, expected a mapping"
            )
        # Status goes last so a rejected result leaves the job RUNNING
        self.result = dict(result)
        self.error = None
        self.completed_at = utcnow()
        self.status = JobStatus.COMPLETED

    def mark_failed(self, error: str) -> None:
        self._require(JobStatus.RUNNING, JobStatus.FAILED)
        self.status = JobStatus.FAILED
        self.result = None
        self.error = error or "Unknown error"
        self.completed_at = utcnow()

    def set_progress(self, percent: int) -> None:
        self.progress = max(0, min(100, int(percent)))

    def append_log(self, message: str) -> None:
        self.logs.append(message)


class JobProgress(BaseModel):
    """Polling view of a job, shaped for progress bars."""
    job_id: str
    status: JobStatus
    progress: int = 0
    current_step: Optional[str] = None
    total_steps: Optional[int] = None
    logs: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    estimated_completion: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def from_record(cls, job: JobRecord, now: Optional[datetime] = None) -> "JobProgress":
        now = now or utcnow()
        progress = job.progress or 0
        eta = None
        # Linear extrapolation from time spent so far
        if job.status == JobStatus.RUNNING and job.started_at and 0 < progress < 100:
            elapsed = (now - job.started_at).total_seconds()
            eta = now + timedelta(seconds=elapsed * (100 - progress) / progress)

        return cls(
            job_id=job.id,
            status=job.status,
            progress=progress,
            current_step=job.current_step,
            total_steps=job.total_steps,
            logs=list(job.logs),
            started_at=job.started_at,
            estimated_completion=eta,
            completed_at=job.completed_at,
            error=job.error,
        )
