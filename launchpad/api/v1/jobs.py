"""Job management API: submit jobs, poll status and progress, retry failures."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from launchpad.api.v1.schemas import JobSubmitRequest, JobSubmitResponse, validate_payload
from launchpad.jobs.dispatcher import JobDispatcher
from launchpad.jobs.errors import InvalidStateTransitionError, JobNotFoundError
from launchpad.jobs.models import JobProgress, JobRecord, JobStatus

router = APIRouter()

# Set by main.py during lifespan
_dispatcher: Optional[JobDispatcher] = None


def set_dispatcher(dispatcher: Optional[JobDispatcher]):
    global _dispatcher
    _dispatcher = dispatcher


def _require_dispatcher() -> JobDispatcher:
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")
    return _dispatcher


async def _get_job(job_id: str) -> JobRecord:
    dispatcher = _require_dispatcher()
    try:
        return await dispatcher.get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")


@router.post("/jobs", response_model=JobSubmitResponse, status_code=201)
async def submit_job(request: JobSubmitRequest):
    """Submit a new background job."""
    dispatcher = _require_dispatcher()

    try:
        payload = validate_payload(request.type, request.data)
    except ValidationError as e:
        # Point locations at the request body field, as FastAPI does
        errors = [{**err, "loc": ("body", "data", *err["loc"])} for err in e.errors()]
        raise RequestValidationError(errors)

    job_id = await dispatcher.submit(request.type, payload)
    return JobSubmitResponse(
        job_id=job_id,
        status=JobStatus.PENDING.value,
        message="Job submitted successfully. Poll GET /api/v1/jobs/{id} for status.",
    )


@router.get("/jobs", response_model=List[JobRecord])
async def list_jobs(status: Optional[JobStatus] = None):
    """List jobs in submission order, optionally filtered by status."""
    dispatcher = _require_dispatcher()
    return await dispatcher.list_jobs(status)


@router.get("/jobs/{job_id}", response_model=JobRecord)
async def get_job_status(job_id: str):
    """Get the current status, logs and result of a job."""
    return await _get_job(job_id)


@router.get("/jobs/{job_id}/progress", response_model=JobProgress)
async def get_job_progress(job_id: str):
    """Progress view with current step and estimated completion."""
    job = await _get_job(job_id)
    return JobProgress.from_record(job)


@router.post("/jobs/{job_id}/retry", response_model=JobSubmitResponse, status_code=201)
async def retry_job(job_id: str):
    """Resubmit a failed job. The failed record is left as is."""
    dispatcher = _require_dispatcher()
    try:
        new_id = await dispatcher.retry(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except InvalidStateTransitionError as e:
        raise HTTPException(
            status_code=409,
            detail=f"Only failed jobs can be retried (job is {e.current_state})",
        )

    return JobSubmitResponse(
        job_id=new_id,
        status=JobStatus.PENDING.value,
        message=f"Retry of job {job_id} submitted.",
    )
