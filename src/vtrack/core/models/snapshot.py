from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, computed_field
from pydantic.alias_generators import to_camel

from vtrack.core.models.job import JobState
from vtrack.core.models.variant import Variant

_VIEW_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


class AggregateView(BaseModel):
    model_config = _VIEW_CONFIG

    total_jobs: int = 0
    completed_count: int = 0
    failed_count: int = 0
    merged_count: int = 0

    @computed_field
    @property
    def is_all_complete(self) -> bool:
        return self.total_jobs > 0 and self.completed_count + self.failed_count == self.total_jobs


class JobDisplay(BaseModel):
    """Display record for one job: the merged variant or a progress placeholder."""

    model_config = _VIEW_CONFIG

    job_id: str
    index: int
    status: JobState = JobState.pending
    progress: int = 0
    error: Optional[str] = None
    variant: Optional[Variant] = None
    screenshot_url: Optional[str] = None
    is_placeholder: bool = True
    label: str
    description: str
    rationale: str

    @computed_field
    @property
    def is_completed(self) -> bool:
        return self.status == JobState.completed

    @computed_field
    @property
    def is_failed(self) -> bool:
        return self.status == JobState.failed


class BatchSnapshot(BaseModel):
    """Read-only projection of a batch handed to consumers.

    Built fresh by the publisher after every accepted update; holds tuples only
    so a consumer cannot append to or reorder the merged variants.
    """

    model_config = _VIEW_CONFIG

    batch_id: str
    project_id: str
    version: int = 0
    jobs: Tuple[JobDisplay, ...] = ()
    variants: Tuple[Variant, ...] = ()
    aggregate: AggregateView = AggregateView()
