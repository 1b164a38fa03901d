"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from render_server.jobs.models import JobRecord


class JobDispatcher(ABC):
    """Accepts compositions as render jobs and hands back their snapshots."""

    @abstractmethod
    async def submit(self, composition_input: Any) -> str:
        """Register a render job and kick it off without waiting for the render.

        Returns the new job id. Raises MissingInput for empty input.
        """
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        """Latest snapshot of ``job_id``, or None if it was never issued."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Prepare output storage before the first job is accepted."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Cancel renders still running. Called once at process shutdown."""
        ...
