"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

from render_server.config import settings
from render_server.jobs.models import JobStatus

router = APIRouter()

# Set by main.py during lifespan
_store = None


def set_store(store):
    global _store
    _store = store


@router.get("/health")
async def health_check():
    """Service health, job counts, and system info."""
    jobs = None
    if _store is not None:
        jobs = {
            status.value: _store.count(status)
            for status in (JobStatus.PROCESSING, JobStatus.COMPLETE, JobStatus.FAILED)
        }

    return {
        "status": "healthy",
        "jobs": jobs,
        "composition_id": settings.composition_id,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
