"""Job record and render input data models."""

import math
import secrets
import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"
    NOT_FOUND = "not_found"  # synthetic, never stored

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


def new_job_id() -> str:
    """Millisecond timestamp plus random suffix, safe to use as a file name."""
    return f"job-{time.time_ns() // 1_000_000}-{secrets.token_hex(4)}"


class JobRecord(BaseModel):
    """Immutable snapshot of one render job.

    The store swaps whole records on every change, so a reader holding a
    record never sees a half-applied update.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus = JobStatus.PROCESSING
    progress: int = Field(default=0, ge=0, le=100)
    url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None


class JobStatusView(BaseModel):
    """What a polling client sees for a job id."""
    status: JobStatus
    progress: Optional[int] = None
    url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_record(cls, job: JobRecord) -> "JobStatusView":
        return cls(
            status=job.status,
            progress=job.progress,
            url=job.url if job.status == JobStatus.COMPLETE else None,
            error=job.error if job.status == JobStatus.FAILED else None,
        )


NOT_FOUND = JobStatusView(status=JobStatus.NOT_FOUND)


def duration_in_frames(duration_ms: float, fps: float) -> int:
    """Number of frames covering ``duration_ms`` at ``fps``."""
    return math.ceil(duration_ms / (1000 / fps))


class RenderProps(BaseModel):
    """Input props handed to the composition, in the composition's camelCase."""
    model_config = ConfigDict(populate_by_name=True)

    track_item_ids: Optional[List[Any]] = Field(default=None, alias="trackItemIds")
    track_items_map: Dict[str, Any] = Field(alias="trackItemsMap")
    tracks: List[Any]
    fps: Union[int, float]
    size: Optional[Any] = None
    duration: Union[int, float]
    duration_in_frames: int = Field(alias="durationInFrames")

    def to_input_props(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
