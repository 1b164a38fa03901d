"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from render_server.api.v1.health import router as health_router
from render_server.api.v1.render import router as render_router

# Served at the root: POST /render-video, GET /render-status/{id}, GET /health
v1_router = APIRouter()
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(render_router, tags=["render"])
