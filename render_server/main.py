"""Video render service - FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from render_server.config import settings
from render_server.api.v1.router import v1_router
from render_server.api.v1 import health as health_api
from render_server.api.v1 import render as render_api
from render_server.jobs.manager import RenderJobManager
from render_server.jobs.status import StatusQueryService
from render_server.jobs.store import JobStore
from render_server.rendering.remotion import RemotionBundler, RemotionRenderer
from render_server.storage.videos import VideoStore

logger = logging.getLogger(__name__)

video_store = VideoStore(settings.videos_dir, url_prefix=settings.videos_url_prefix)

# Global manager reference
_manager = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _manager

    logger.info("Starting render server on port %s", settings.port)
    logger.info("Videos dir: %s", video_store.base_dir)
    logger.info(
        "Remotion entry point: %s (composition %s)",
        settings.remotion_entry_point,
        settings.composition_id,
    )

    store = JobStore()
    bundler = RemotionBundler(
        command=settings.remotion_command,
        bundle_dir=settings.bundle_dir,
        cache=settings.cache_bundle,
    )
    renderer = RemotionRenderer(
        command=settings.remotion_command,
        codec=settings.render_codec,
    )
    _manager = RenderJobManager(
        store=store,
        bundler=bundler,
        renderer=renderer,
        videos=video_store,
        entry_point=settings.remotion_entry_point,
        composition_id=settings.composition_id,
        retention_hours=settings.job_retention_hours,
    )
    await _manager.start()

    # Wire runtime collaborators into API endpoints
    render_api.set_dispatcher(_manager)
    render_api.set_status_service(StatusQueryService(store))
    health_api.set_store(store)

    yield

    # Shutdown
    logger.info("Shutting down render server")
    await _manager.stop()
    bundler.close()


app = FastAPI(
    title="Video Render Service",
    description="Asynchronous video rendering jobs with progress polling",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router)

# Finished videos; the directory is created during startup
app.mount(
    video_store.url_prefix,
    StaticFiles(directory=video_store.base_dir, check_dir=False),
    name="videos",
)


def main() -> None:
    """Console entry point: run the service with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
