"""
Render job error types.

Everything raised by the job layer derives from JobError. Errors raised
inside a running job end up as the job's failure message, so their text
is written for the polling client.
"""


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class MissingInput(JobError):
    """Raised synchronously when a submission carries no composition data."""

    def __init__(self, message: str = "No composition data provided"):
        super().__init__(message)


class InvalidShape(JobError):
    """Raised when the composition data has the wrong structure."""
    pass


class CompositionNotFound(JobError):
    """Raised when the bundled project has no composition with the wanted id."""

    def __init__(self, composition_id: str):
        self.composition_id = composition_id
        super().__init__(f"Composition not found: {composition_id}")


class RenderFailure(JobError):
    """Raised when the rendering engine (or bundling) fails."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class DuplicateJobId(JobError):
    """Raised when a job id is registered twice. Never expected in practice."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job id already registered: {job_id}")


class JobNotFound(JobError):
    """Raised when updating a job the store does not know."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")
