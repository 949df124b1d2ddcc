"""Job store interface and thread-safe in-memory implementation."""

import copy
import itertools
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from launchpad.jobs.errors import JobNotFoundError
from launchpad.jobs.models import JobRecord, JobStatus


class JobStore(ABC):
    """Addressable collection of job records keyed by job id.

    Every read returns a snapshot; callers never hold a live record.
    """

    @abstractmethod
    def create(self, job_type: str, payload: Dict[str, Any]) -> str:
        """Insert a new pending job. Returns its id."""
        ...

    @abstractmethod
    def get(self, job_id: str) -> JobRecord:
        """Snapshot of a job. Raises JobNotFoundError."""
        ...

    @abstractmethod
    def update(self, job_id: str, mutator: Callable[[JobRecord], None]) -> JobRecord:
        """Apply mutator to the stored record in place. Returns a snapshot."""
        ...

    @abstractmethod
    def delete(self, job_id: str) -> None:
        ...

    @abstractmethod
    def list_pending(self) -> List[JobRecord]:
        """Pending jobs, oldest first."""
        ...

    @abstractmethod
    def list_jobs(self, status: Optional[JobStatus] = None) -> List[JobRecord]:
        ...

    def next_pending(self) -> Optional[JobRecord]:
        pending = self.list_pending()
        return pending[0] if pending else None

    def counts(self) -> Dict[str, int]:
        totals = {status.value: 0 for status in JobStatus}
        for job in self.list_jobs():
            totals[job.status.value] += 1
        return totals


class InMemoryJobStore(JobStore):
    """Process-local store. A single lock serialises every access.

    Critical sections only copy or mutate a record, so readers never wait
    on job execution.
    """

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._sequence: Dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def create(self, job_type: str, payload: Dict[str, Any]) -> str:
        job = JobRecord(type=job_type, payload=copy.deepcopy(payload or {}))
        with self._lock:
            # uuid4 collisions are not expected, but never overwrite a record
            while job.id in self._jobs:
                job = JobRecord(type=job_type, payload=job.payload)
            self._jobs[job.id] = job
            self._sequence[job.id] = next(self._counter)
        return job.id

    def get(self, job_id: str) -> JobRecord:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.model_copy(deep=True)

    def update(self, job_id: str, mutator: Callable[[JobRecord], None]) -> JobRecord:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            mutator(job)
            return job.model_copy(deep=True)

    def delete(self, job_id: str) -> None:
        with self._lock:
            if self._jobs.pop(job_id, None) is None:
                raise JobNotFoundError(job_id)
            self._sequence.pop(job_id, None)

    def list_pending(self) -> List[JobRecord]:
        with self._lock:
            pending = [j for j in self._jobs.values() if j.status == JobStatus.PENDING]
            pending.sort(key=lambda j: (j.created_at, self._sequence[j.id]))
            return [j.model_copy(deep=True) for j in pending]

    def list_jobs(self, status: Optional[JobStatus] = None) -> List[JobRecord]:
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda j: self._sequence[j.id])
            if status is not None:
                jobs = [j for j in jobs if j.status == status]
            return [j.model_copy(deep=True) for j in jobs]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
