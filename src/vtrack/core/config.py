"""Configuration models for core tracker components.

Pydantic-based configuration consolidating the settings the tracker, its
pollers and the snapshot publisher need, so composition roots and tests can
inject them explicitly.
"""

from typing import Optional
from pydantic import BaseModel, Field


class TrackerConfig(BaseModel):
    """Configuration for BatchTracker and JobPoller behavior.

    Attributes:
        poll_interval: Seconds between status requests for one job (float for test flexibility)
        poll_timeout: Maximum seconds a job may be polled before it is failed (None = no ceiling)
        max_polls: Maximum number of status requests per job (None = unbounded)
        status_retry_attempts: Attempts per status check before a transport error fails the job
        batch_ttl: Seconds a settled batch is kept before the tracker evicts it (None = until discarded)
        backend_url: Base URL used to resolve relative screenshot paths
    """

    poll_interval: float = Field(
        default=10.0,
        gt=0,
        description="Interval in seconds between job status requests"
    )

    poll_timeout: Optional[float] = Field(
        default=1800.0,
        gt=0,
        description="Maximum time in seconds a job is polled before it is marked failed (None for no ceiling)"
    )

    max_polls: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum number of status requests per job (None for unbounded)"
    )

    status_retry_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Attempts per status check for transient transport errors; 1 disables retrying"
    )

    status_retry_base_wait: float = Field(
        default=0.5,
        gt=0,
        description="Base wait time in seconds for exponential backoff between retries"
    )

    status_retry_max_wait: float = Field(
        default=5.0,
        gt=0,
        description="Maximum wait time in seconds between retry attempts"
    )

    batch_ttl: Optional[float] = Field(
        default=3600.0,
        gt=0,
        description="Seconds a settled batch stays queryable before it is evicted (None keeps it until discarded)"
    )

    backend_url: str = Field(
        default="http://localhost:3001",
        description="Backend base URL serving job status and screenshots"
    )

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @classmethod
    def from_app_settings(cls, settings) -> "TrackerConfig":
        """Factory method to construct config from a TrackerSettings instance.

        Zero values for timeout, max polls and batch TTL mean "no limit".
        """
        return cls(
            poll_interval=settings.VTRACK_POLL_INTERVAL,
            poll_timeout=settings.VTRACK_POLL_TIMEOUT or None,
            max_polls=settings.VTRACK_MAX_POLLS or None,
            status_retry_attempts=settings.VTRACK_STATUS_RETRY_ATTEMPTS,
            status_retry_base_wait=settings.VTRACK_STATUS_RETRY_BASE_WAIT,
            status_retry_max_wait=settings.VTRACK_STATUS_RETRY_MAX_WAIT,
            batch_ttl=settings.VTRACK_BATCH_TTL or None,
            backend_url=settings.VTRACK_BACKEND_URL,
        )
