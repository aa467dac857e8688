from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_PROJECT_ID = "default-project"


class BatchRequest(BaseModel):
    """Submission of job ids produced by one generation request."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    job_ids: List[str] = Field(min_length=1)
    project_id: str = DEFAULT_PROJECT_ID

    @field_validator("job_ids")
    @classmethod
    def _unique_non_empty_ids(cls, value: List[str]) -> List[str]:
        if any(not job_id or not job_id.strip() for job_id in value):
            raise ValueError("job ids must be non-empty strings")
        seen = set()
        duplicates = sorted({job_id for job_id in value if job_id in seen or seen.add(job_id)})
        if duplicates:
            raise ValueError(f"duplicate job ids in batch: {', '.join(duplicates)}")
        return value

    @field_validator("project_id")
    @classmethod
    def _non_empty_project(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("project id must not be empty")
        return value
