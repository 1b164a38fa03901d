"""Render job lifecycle: submission, background execution and state transitions.

Each submitted job gets its own asyncio task; submission returns as soon as
the job is registered, whatever the render takes. Jobs run concurrently with
no limit and no queue. A job moves from ``processing`` to exactly one of
``complete`` or ``failed`` and never leaves those states.
"""

import asyncio
import logging
import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, Optional

from render_server.jobs.dispatcher import JobDispatcher
from render_server.jobs.errors import (
    CompositionNotFound,
    DuplicateJobId,
    InvalidShape,
    JobNotFound,
    MissingInput,
)
from render_server.jobs.models import (
    JobRecord,
    JobStatus,
    RenderProps,
    duration_in_frames,
    new_job_id,
)
from render_server.jobs.store import JobStore
from render_server.rendering.base import (
    Bundler,
    CompositionInfo,
    ProjectHandle,
    Renderer,
)
from render_server.storage.videos import VideoStore

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def build_render_props(composition_input: Any) -> RenderProps:
    """Check the composition data and derive the props passed to the renderer.

    Raises InvalidShape when the data can't be rendered.
    """
    if not isinstance(composition_input, Mapping):
        raise InvalidShape("Composition data must be an object")

    tracks = composition_input.get("tracks")
    if not isinstance(tracks, list):
        raise InvalidShape("Tracks must be an array")

    track_items_map = composition_input.get("trackItemsMap")
    if not isinstance(track_items_map, Mapping):
        raise InvalidShape("TrackItemsMap must be an object")

    track_item_ids = composition_input.get("trackItemIds")
    if track_item_ids is not None and not isinstance(track_item_ids, list):
        raise InvalidShape("TrackItemIds must be an array")

    fps = composition_input.get("fps")
    if not _is_number(fps) or fps <= 0:
        raise InvalidShape("fps must be a positive number")

    duration = composition_input.get("duration")
    if not _is_number(duration) or duration < 0:
        raise InvalidShape("duration must be a non-negative number")

    try:
        frames = duration_in_frames(duration, fps)
    except (OverflowError, ValueError, ZeroDivisionError):
        raise InvalidShape("duration and fps do not give a usable frame count")

    return RenderProps(
        track_item_ids=track_item_ids,
        track_items_map=dict(track_items_map),
        tracks=tracks,
        fps=fps,
        size=composition_input.get("size"),
        duration=duration,
        duration_in_frames=frames,
    )


class RenderJobManager(JobDispatcher):
    """Owns the job lifecycle. All job state changes go through here."""

    def __init__(
        self,
        store: JobStore,
        bundler: Bundler,
        renderer: Renderer,
        videos: VideoStore,
        entry_point: str,
        composition_id: str = "MyVideo",
        retention_hours: Optional[float] = None,
    ):
        self._store = store
        self._bundler = bundler
        self._renderer = renderer
        self._videos = videos
        self._entry_point = entry_point
        self._composition_id = composition_id
        self._retention_hours = retention_hours
        # In-flight execute() tasks by job id
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def start(self) -> None:
        self._videos.ensure_dir()

    async def stop(self) -> None:
        """Cancel renders still in flight. Only used at process shutdown."""
        tasks = list(self._tasks.values())
        if tasks:
            logger.warning("Cancelling %d in-flight render(s)", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def submit(self, composition_input: Any) -> str:
        if not composition_input:
            raise MissingInput()

        job_id = new_job_id()
        try:
            self._store.create(job_id, composition_input)
        except DuplicateJobId:
            logger.exception("Refusing submission, job id %s already exists", job_id)
            raise

        task = asyncio.create_task(self.execute(job_id), name=f"render-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))

        logger.info("Job %s submitted", job_id)
        return job_id

    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        return self._store.get(job_id)

    async def execute(self, job_id: str) -> None:
        """Run one job to a terminal state. Never raises (except on cancellation)."""
        try:
            output_path = await self._render(job_id)
            url = self._videos.public_url(output_path)
            self._store.update(
                job_id,
                status=JobStatus.COMPLETE,
                progress=100,
                url=url,
                completed_at=datetime.utcnow(),
            )
            logger.info("Job %s complete: %s", job_id, url)
        except asyncio.CancelledError:
            logger.warning("Job %s cancelled while processing", job_id)
            raise
        except Exception as exc:
            logger.exception("Rendering error for job %s", job_id)
            self._fail(job_id, exc)
        finally:
            self._store.drop_input(job_id)
            if self._retention_hours is not None:
                purged = self._store.purge_terminal(self._retention_hours * 3600)
                if purged:
                    logger.info("Purged %d expired job(s)", purged)

    async def _render(self, job_id: str) -> str:
        composition_input = self._store.get_input(job_id)
        if composition_input is None:
            raise MissingInput("No composition data found for job")

        logger.debug(
            "Job %s: duration=%s fps=%s",
            job_id,
            _get(composition_input, "duration"),
            _get(composition_input, "fps"),
        )
        props = build_render_props(composition_input)
        project = await self._bundler.resolve_project(self._entry_point)
        try:
            return await self._render_composition(job_id, project, props)
        finally:
            self._bundler.release_project(project)

    async def _render_composition(
        self, job_id: str, project: ProjectHandle, props: RenderProps
    ) -> str:
        composition = await self._find_composition(project)

        output_path = self._videos.output_path(job_id)
        logger.info(
            "Job %s render configuration: composition=%s output=%s tracks=%d "
            "track_items=%d fps=%s duration=%s durationInFrames=%d",
            job_id,
            composition.id,
            output_path,
            len(props.tracks),
            len(props.track_items_map),
            props.fps,
            props.duration,
            props.duration_in_frames,
        )

        return await self._renderer.render(
            composition,
            props,
            output_path,
            on_progress=lambda fraction: self._on_progress(job_id, fraction),
        )

    async def _find_composition(self, project: ProjectHandle) -> CompositionInfo:
        compositions = await self._bundler.list_compositions(project)
        for composition in compositions:
            if composition.id == self._composition_id:
                return composition
        raise CompositionNotFound(self._composition_id)

    def _on_progress(self, job_id: str, fraction: float) -> None:
        fraction = min(1.0, max(0.0, fraction))
        self._store.update(job_id, progress=round(fraction * 100))

    def _fail(self, job_id: str, exc: Exception) -> None:
        try:
            self._store.update(
                job_id,
                status=JobStatus.FAILED,
                error=str(exc) or "Unknown error",
                completed_at=datetime.utcnow(),
            )
        except JobNotFound:
            logger.error("Job %s vanished before it could be marked failed", job_id)


def _get(data: Any, key: str) -> Any:
    return data.get(key) if isinstance(data, Mapping) else None
