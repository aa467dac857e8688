"""Observer protocols for batch state transitions.

Observers decouple side effects (status history, notifications, metrics) from
the aggregator. They are awaited by the aggregator actor after it has applied a
report, so they always see state that is already consistent.
"""

from typing import Optional, Protocol

from vtrack.core.models.job import JobStatus
from vtrack.core.models.snapshot import BatchSnapshot
from vtrack.core.models.variant import Variant


class BatchObserver(Protocol):
    """Observer protocol for batch lifecycle events.

    - on_status_changed: after a job's latest status was replaced
    - on_variant_merged: after a completed job's variant was appended
    - on_batch_completed: once, when every job of the batch is terminal

    Exceptions raised by observers are logged by the aggregator and never
    propagate into polling or merging.
    """

    async def on_status_changed(
        self,
        batch_id: str,
        old_status: Optional[JobStatus],
        new_status: JobStatus,
    ) -> None:
        """Called after a job's status changed.

        Args:
            batch_id: Batch owning the job
            old_status: Previous status (None if first report)
            new_status: New status
        """
        ...

    async def on_variant_merged(
        self,
        batch_id: str,
        job_id: str,
        variant: Variant,
    ) -> None:
        """Called after a job's variant entered the merged results."""
        ...

    async def on_batch_completed(
        self,
        batch_id: str,
        snapshot: BatchSnapshot,
    ) -> None:
        """Called exactly once when the batch reached aggregate completion.

        Args:
            batch_id: The completed batch
            snapshot: Snapshot taken at the moment of completion
        """
        ...
