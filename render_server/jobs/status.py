"""Read-only job status lookups for polling clients."""

from render_server.jobs.models import NOT_FOUND, JobStatusView
from render_server.jobs.store import JobStore


class StatusQueryService:
    """Answers "how is job X doing?" straight from the store snapshot."""

    def __init__(self, store: JobStore):
        self._store = store

    def query(self, job_id: str) -> JobStatusView:
        job = self._store.get(job_id)
        if job is None:
            return NOT_FOUND
        return JobStatusView.from_record(job)
