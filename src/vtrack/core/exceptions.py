from typing import Optional


class TrackerError(Exception):
    """Base exception for variant job tracking failures.

    Attributes:
        message: Human-readable error description
        diagnostic: Technical diagnostic information for debugging
        job_id: Optional job identifier
    """
    def __init__(
        self,
        message: str,
        diagnostic: Optional[str] = None,
        job_id: Optional[str] = None
    ):
        self.message = message
        self.diagnostic = diagnostic
        self.job_id = job_id
        super().__init__(message)


class StatusFetchError(TrackerError):
    """Raised when a job status request fails at the transport level.

    Covers timeouts, connection errors, HTTP error statuses and bodies that are
    not a valid job status. The poller turns it into a failed job.

    Attributes:
        upstream_status: HTTP status code from the backend (if applicable)
        transient: Whether retrying the request may succeed
    """
    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        upstream_status: Optional[int] = None,
        transient: bool = True,
        diagnostic: Optional[str] = None,
    ):
        self.upstream_status = upstream_status
        self.transient = transient
        super().__init__(message=message, diagnostic=diagnostic, job_id=job_id)


class ResultParseError(TrackerError):
    """Raised when a completed job's result payload does not hold a variant."""
    def __init__(self, job_id: str, reason: str, diagnostic: Optional[str] = None):
        self.reason = reason
        message = f"Result of job {job_id} could not be parsed: {reason}"
        super().__init__(message=message, diagnostic=diagnostic, job_id=job_id)


class UnknownJobError(TrackerError):
    """Raised when a status report names a job id the batch does not contain."""
    def __init__(self, job_id: str, batch_id: str):
        self.batch_id = batch_id
        message = f"Job {job_id} is not part of batch {batch_id}"
        super().__init__(message=message, job_id=job_id)


class BatchNotFoundError(TrackerError):
    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(message=f"Batch {batch_id} not found")


class InvalidBatchError(TrackerError):
    """Raised when a batch submission is rejected (empty or duplicate job ids)."""


class InvalidToolResultError(TrackerError):
    """Raised when a generation tool result names neither job ids nor variants."""
