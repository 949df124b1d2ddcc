"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from launchpad.jobs.models import JobRecord, JobStatus


class JobDispatcher(ABC):
    """Abstract interface for job dispatching (in-process or distributed)."""

    @abstractmethod
    async def submit(self, job_type: str, payload: Dict[str, Any]) -> str:
        """Queue a job for processing. Returns job_id."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> JobRecord:
        """Snapshot of a job. Raises JobNotFoundError."""
        ...

    @abstractmethod
    async def list_jobs(self, status: Optional[JobStatus] = None) -> List[JobRecord]:
        ...

    @abstractmethod
    async def retry(self, job_id: str) -> str:
        """Resubmit a failed job as a new pending job. Returns the new job_id."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
