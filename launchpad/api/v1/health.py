"""Health check endpoint."""

from fastapi import APIRouter
from typing import Optional
import platform
import sys

from launchpad.jobs.in_process_queue import InProcessQueue

router = APIRouter()

# Set by main.py during lifespan
_queue: Optional[InProcessQueue] = None


def set_queue(queue: Optional[InProcessQueue]):
    global _queue
    _queue = queue


@router.get("/health")
async def health_check():
    """Service health, job queue state, and system info."""
    queue_info = None
    if _queue is not None:
        queue_info = {
            "worker_running": _queue.is_running,
            "current_job_id": _queue.current_job_id,
            "jobs": _queue.store.counts(),
            "job_types": _queue.registry.types(),
        }

    return {
        "status": "healthy" if _queue is not None else "starting",
        "queue": queue_info,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
