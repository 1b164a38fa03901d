"""Shared fixtures and fakes for the render server test suite."""
from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

# Keep rendered output of the app-level tests out of the working tree.
# Must happen before render_server.config is imported.
os.environ.setdefault("VIDEOS_DIR", tempfile.mkdtemp(prefix="render-server-tests-"))

from render_server.jobs.manager import RenderJobManager  # noqa: E402
from render_server.jobs.models import JobRecord, JobStatus  # noqa: E402
from render_server.jobs.store import JobStore  # noqa: E402
from render_server.rendering.base import (  # noqa: E402
    Bundler,
    CompositionInfo,
    ProjectHandle,
    Renderer,
)
from render_server.storage.videos import VideoStore  # noqa: E402


# ── Fakes ────────────────────────────────────────────────────────────


class FakeBundler(Bundler):
    def __init__(self, composition_ids: Sequence[str] = ("MyVideo",), error: Optional[Exception] = None):
        self.composition_ids = list(composition_ids)
        self.error = error
        self.resolved: List[str] = []
        self.released: List[ProjectHandle] = []

    async def resolve_project(self, entry_point: str) -> ProjectHandle:
        self.resolved.append(entry_point)
        if self.error is not None:
            raise self.error
        return ProjectHandle(entry_point=entry_point, serve_url="/tmp/bundle")

    async def list_compositions(self, project: ProjectHandle) -> List[CompositionInfo]:
        return [CompositionInfo(id=cid, serve_url=project.serve_url) for cid in self.composition_ids]

    def release_project(self, project: ProjectHandle) -> None:
        self.released.append(project)


class FakeRenderer(Renderer):
    """Reports ``steps`` as progress, then writes a dummy file or raises ``error``.

    If ``gate`` is set, rendering waits for it before doing anything.
    """

    def __init__(
        self,
        steps: Sequence[float] = (0.25, 0.5, 0.75, 1.0),
        delay: float = 0.0,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.steps = list(steps)
        self.delay = delay
        self.error = error
        self.gate = gate
        self.calls = []

    async def render(self, composition, props, output_path, on_progress):
        self.calls.append((composition, props, output_path))
        if self.gate is not None:
            await self.gate.wait()
        for fraction in self.steps:
            on_progress(fraction)
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        Path(output_path).write_bytes(b"not really an mp4")
        return output_path


# ── Helpers ──────────────────────────────────────────────────────────


async def wait_for_terminal(store: JobStore, job_id: str, timeout: float = 2.0) -> JobRecord:
    """Poll the store until the job finishes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        job = store.get(job_id)
        if job is not None and job.status.is_terminal:
            return job
        await asyncio.sleep(0.01)
    raise AssertionError(f"job {job_id} still {store.get(job_id)} after {timeout}s")


def composition_payload(**overrides):
    payload = {
        "tracks": [{"id": "track-1", "items": ["item-1"]}],
        "trackItemsMap": {"item-1": {"type": "text", "details": {"text": "hi"}}},
        "trackItemIds": ["item-1"],
        "fps": 30,
        "duration": 5000,
        "size": {"width": 1080, "height": 1920},
    }
    payload.update(overrides)
    return payload


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def store():
    return JobStore()


@pytest.fixture
def videos(tmp_path):
    vs = VideoStore(str(tmp_path / "videos"))
    vs.ensure_dir()
    return vs


@pytest.fixture
def bundler():
    return FakeBundler()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
async def manager(store, bundler, renderer, videos):
    m = RenderJobManager(
        store=store,
        bundler=bundler,
        renderer=renderer,
        videos=videos,
        entry_point="src/remotion/index.ts",
    )
    await m.start()
    yield m
    await m.stop()


@pytest.fixture
def payload():
    return composition_payload()


@pytest.fixture
async def app(store, bundler, renderer):
    """The FastAPI app wired to an in-memory store and fake engine."""
    from render_server import main as main_mod
    from render_server.api.v1 import health as health_api
    from render_server.api.v1 import render as render_api
    from render_server.jobs.status import StatusQueryService

    m = RenderJobManager(
        store=store,
        bundler=bundler,
        renderer=renderer,
        videos=main_mod.video_store,
        entry_point="src/remotion/index.ts",
    )
    await m.start()
    render_api.set_dispatcher(m)
    render_api.set_status_service(StatusQueryService(store))
    health_api.set_store(store)

    yield main_mod.app

    await m.stop()
    render_api.set_dispatcher(None)
    render_api.set_status_service(None)
    health_api.set_store(None)


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac
