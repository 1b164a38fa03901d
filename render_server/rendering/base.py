"""Renderer and bundler interfaces wrapping the external video engine."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List

from render_server.jobs.models import RenderProps


@dataclass
class ProjectHandle:
    """A bundled project the engine can render from."""
    entry_point: str
    serve_url: str


@dataclass
class CompositionInfo:
    """One composition listed by a bundled project."""
    id: str
    serve_url: str


# Progress callback: fn(fraction) with fraction in [0.0, 1.0]
ProgressCallback = Callable[[float], None]


class Bundler(ABC):
    """Resolves a project entry point into renderable compositions."""

    @abstractmethod
    async def resolve_project(self, entry_point: str) -> ProjectHandle:
        ...

    @abstractmethod
    async def list_compositions(self, project: ProjectHandle) -> List[CompositionInfo]:
        ...

    def release_project(self, project: ProjectHandle) -> None:
        """Called when a job is done with ``project``. Nothing to do by default."""


class Renderer(ABC):
    """Renders one composition to a media file.

    Implementations make a single attempt, report monotonically increasing
    progress fractions and raise RenderFailure when the engine fails.
    """

    @abstractmethod
    async def render(
        self,
        composition: CompositionInfo,
        props: RenderProps,
        output_path: str,
        on_progress: ProgressCallback,
    ) -> str:
        """Render and return the path of the produced file."""
        ...
