from abc import ABC, abstractmethod

from vtrack.core.models.job import JobStatus


class JobStatusPort(ABC):
    """Fetches the status of a single variant generation job.

    One call performs exactly one status request. Retrying is the poller's
    business, never the client's.
    """

    @abstractmethod
    async def fetch_status(self, job_id: str, project_id: str) -> JobStatus:
        """Return the current status of `job_id` or raise StatusFetchError."""
        raise NotImplementedError
