"""Render API: submit a composition for rendering and poll its status."""

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from render_server.jobs.errors import JobError, MissingInput
from render_server.jobs.models import JobStatus, JobStatusView

logger = logging.getLogger(__name__)

router = APIRouter()

# These will be set by main.py during lifespan
_dispatcher = None
_status_service = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def set_status_service(service):
    global _status_service
    _status_service = service


class RenderVideoResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    status: JobStatus
    message: str


class RenderErrorResponse(BaseModel):
    error: str
    message: str


async def _read_composition(request: Request) -> Any:
    body = await request.body()
    if not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError as exc:
        raise MissingInput(f"Request body is not valid JSON: {exc}") from exc


@router.post(
    "/render-video",
    response_model=RenderVideoResponse,
    responses={500: {"model": RenderErrorResponse}},
)
async def render_video(request: Request):
    """Start rendering a composition. Returns immediately with the job id.

    Poll GET /render-status/{jobId} until the status is complete or failed.
    """
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")

    try:
        composition_input = await _read_composition(request)
        job_id = await _dispatcher.submit(composition_input)
    except JobError as exc:
        logger.error("Render submission rejected: %s", exc)
        return JSONResponse(
            status_code=500,
            content=RenderErrorResponse(
                error="Failed to start video rendering",
                message=str(exc),
            ).model_dump(),
        )

    return RenderVideoResponse(
        job_id=job_id,
        status=JobStatus.PROCESSING,
        message="Video rendering started",
    )


@router.get(
    "/render-status/{job_id}",
    response_model=JobStatusView,
    response_model_exclude_none=True,
)
async def render_status(job_id: str):
    """Current status of a render job. Unknown ids report ``not_found``."""
    if _status_service is None:
        raise HTTPException(status_code=503, detail="Status service not initialized")

    return _status_service.query(job_id)
