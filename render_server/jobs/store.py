"""In-memory registry of render jobs and their pending composition inputs."""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from render_server.jobs.errors import DuplicateJobId, JobNotFound
from render_server.jobs.models import JobRecord, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    """Thread-safe job map.

    Records are immutable and replaced wholesale under a single lock, so
    ``get`` always returns a consistent snapshot. Composition inputs live in
    a separate map and are dropped once the job finishes.
    """

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._inputs: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def create(self, job_id: str, composition_input: Any) -> JobRecord:
        with self._lock:
            if job_id in self._jobs:
                raise DuplicateJobId(job_id)
            job = JobRecord(id=job_id)
            self._jobs[job_id] = job
            self._inputs[job_id] = composition_input
            return job

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id: str, **changes) -> JobRecord:
        """Apply ``changes`` to a job and return the resulting record.

        Finished jobs are left untouched, and progress only moves forward
        while a job is processing.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if job.status.is_terminal:
                logger.warning(
                    "Ignoring update for finished job %s (%s): %s",
                    job_id, job.status.value, changes,
                )
                return job
            if "progress" in changes:
                changes["progress"] = max(job.progress, min(100, int(changes["progress"])))
            updated = JobRecord.model_validate({**job.model_dump(), **changes})
            self._jobs[job_id] = updated
            return updated

    def get_input(self, job_id: str) -> Optional[Any]:
        with self._lock:
            return self._inputs.get(job_id)

    def has_input(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._inputs

    def drop_input(self, job_id: str) -> None:
        with self._lock:
            self._inputs.pop(job_id, None)

    def count(self, status: Optional[JobStatus] = None) -> int:
        with self._lock:
            if status is None:
                return len(self._jobs)
            return sum(1 for job in self._jobs.values() if job.status == status)

    def purge_terminal(self, older_than_seconds: float) -> int:
        """Remove finished jobs completed more than ``older_than_seconds`` ago."""
        cutoff = datetime.utcnow() - timedelta(seconds=older_than_seconds)
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.status.is_terminal
                and job.completed_at is not None
                and job.completed_at <= cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
                self._inputs.pop(job_id, None)
        return len(expired)
