from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class JobState(StrEnum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


TERMINAL_STATES = frozenset({JobState.completed, JobState.failed})


class JobStatus(BaseModel):
    """Status snapshot of one variant generation job as reported by the backend.

    Notes:
    - `result` is opaque here; it is only interpreted by the result merger once
      the job is `completed`.
    - `progress` is normalized to an integer in 0..100; backends occasionally
      report fractional or out-of-range values while a job is warming up.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    job_id: str
    status: JobState = JobState.pending
    progress: int = Field(default=0, ge=0, le=100)
    result: Optional[Any] = None
    error: Optional[str] = None

    @field_validator("progress", mode="before")
    @classmethod
    def _normalize_progress(cls, value: Any) -> int:
        if value is None:
            return 0
        try:
            numeric = round(float(value))
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, numeric))

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @classmethod
    def failed(cls, job_id: str, error: str, progress: int = 0) -> "JobStatus":
        """Synthesize a failed snapshot (transport errors, timeouts)."""
        return cls(job_id=job_id, status=JobState.failed, progress=progress, error=error)
