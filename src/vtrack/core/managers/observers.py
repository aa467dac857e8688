"""Concrete observer implementations for batch state transitions.

- Status history recording (per job, in report order)
- Completion callbacks for consumers that prefer push over subscribe
"""

import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from vtrack.core.models.job import JobStatus
from vtrack.core.models.snapshot import BatchSnapshot
from vtrack.core.models.variant import Variant


logger = logging.getLogger(__name__)


class StatusHistoryObserver:
    """Records every status change per (batch, job) in the order it was applied.

    Gives an audit trail of a job's state machine without the aggregator
    having to keep history itself.
    """

    def __init__(self) -> None:
        self._history: Dict[Tuple[str, str], List[JobStatus]] = defaultdict(list)
        self._merged: Dict[str, List[str]] = defaultdict(list)

    async def on_status_changed(
        self,
        batch_id: str,
        old_status: Optional[JobStatus],
        new_status: JobStatus,
    ) -> None:
        self._history[(batch_id, new_status.job_id)].append(new_status)
        logger.debug(
            f"[observer:history] batch_id={batch_id} job_id={new_status.job_id} "
            f"old={old_status.status if old_status else None} new={new_status.status} "
            f"progress={new_status.progress}"
        )

    async def on_variant_merged(self, batch_id: str, job_id: str, variant: Variant) -> None:
        self._merged[batch_id].append(job_id)

    async def on_batch_completed(self, batch_id: str, snapshot: BatchSnapshot) -> None:
        """Completion is already visible in the recorded terminal statuses."""
        pass

    def history(self, batch_id: str, job_id: str) -> List[JobStatus]:
        return list(self._history.get((batch_id, job_id), []))

    def merge_order(self, batch_id: str) -> List[str]:
        return list(self._merged.get(batch_id, []))


class CompletionCallbackObserver:
    """Invokes an async callback once per batch when it reaches completion."""

    def __init__(self, callback: Callable[[str, BatchSnapshot], Awaitable[None]]):
        self._callback = callback

    async def on_status_changed(
        self,
        batch_id: str,
        old_status: Optional[JobStatus],
        new_status: JobStatus,
    ) -> None:
        pass

    async def on_variant_merged(self, batch_id: str, job_id: str, variant: Variant) -> None:
        pass

    async def on_batch_completed(self, batch_id: str, snapshot: BatchSnapshot) -> None:
        logger.debug(f"[observer:completion] batch_id={batch_id} version={snapshot.version}")
        await self._callback(batch_id, snapshot)
