"""StatusAggregator: single-writer actor owning the state of one batch.

Pollers never touch batch state; they enqueue status reports. The actor task
drains the queue one report at a time and applies it in a synchronous step
(`_apply`), so the latest-status map, the processed set and the merged results
only change between awaits of a single task.
"""

from __future__ import annotations

import asyncio
from typing import Dict, NamedTuple, Optional, Sequence

from vtrack.core.exceptions import UnknownJobError
from vtrack.core.interfaces.observers import BatchObserver
from vtrack.core.managers.result_merger import MergeOutcome, ResultMerger
from vtrack.core.managers.snapshot_publisher import SnapshotPublisher
from vtrack.core.models.job import JobState, JobStatus
from vtrack.core.models.snapshot import BatchSnapshot
from vtrack.core.models.variant import Variant
from vtrack.core.settings import logger


class StatusReport(NamedTuple):
    job_id: str
    status: JobStatus


class _Applied(NamedTuple):
    previous: Optional[JobStatus]
    status: JobStatus
    outcome: Optional[MergeOutcome]
    snapshot: BatchSnapshot
    became_complete: bool


class StatusAggregator:
    """Maintains the latest status per job and aggregate completion of a batch.

    Attributes:
        batch_id: Identifier of the batch this actor owns
        rejected_reports: Number of reports dropped for unknown job ids
    """

    def __init__(
        self,
        batch_id: str,
        project_id: str,
        job_ids: Sequence[str],
        backend_url: str,
        observers: Optional[list[BatchObserver]] = None,
    ) -> None:
        self.batch_id = batch_id
        self.project_id = project_id
        self._job_ids = tuple(job_ids)
        self._known = frozenset(self._job_ids)
        self._statuses: Dict[str, JobStatus] = {}
        self._merger = ResultMerger()
        self._publisher = SnapshotPublisher(batch_id, project_id, self._job_ids, backend_url)
        self._queue: asyncio.Queue[StatusReport] = asyncio.Queue()
        self._complete = asyncio.Event()
        self._completion_signalled = False
        self._observers = observers or []
        self._task: Optional[asyncio.Task] = None
        self.rejected_reports = 0

    # ---------------- Lifecycle -----------------
    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name=f"aggregator:{self.batch_id}")

    async def stop(self) -> None:
        """Stop the actor and end all subscriptions (batch discarded)."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._publisher.close()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        # Once every job is terminal no report can change the batch any more
        while not self._completion_signalled:
            report = await self._queue.get()
            try:
                await self._handle(report)
            except Exception:
                # One bad report must not take the batch down with it
                logger.exception(
                    "[aggregator] failed to apply report batch_id=%s job_id=%s",
                    self.batch_id,
                    report.job_id,
                )
            finally:
                self._queue.task_done()
        self._discard_pending()
        logger.debug("[aggregator] actor finished batch_id=%s", self.batch_id)

    def _discard_pending(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    # ---------------- Intake -----------------
    async def submit(self, job_id: str, status: JobStatus) -> None:
        """Enqueue a status report. Reports of one job are applied in submit order.

        Reports arriving after the batch completed are dropped.
        """
        if self._completion_signalled:
            logger.debug("[aggregator] late report dropped batch_id=%s job_id=%s", self.batch_id, job_id)
            return
        await self._queue.put(StatusReport(job_id, status))

    async def join(self) -> None:
        """Wait until every report submitted so far has been applied."""
        await self._queue.join()

    def seed_variants(self, variants: Sequence[Variant]) -> BatchSnapshot:
        """Settle a job-less batch whose variants were delivered directly."""
        self._merger.extend_direct(variants)
        snapshot = self._publisher.publish(self._statuses, self._merger)
        self._complete.set()
        self._publisher.close()
        return snapshot

    # ---------------- Applying reports -----------------
    async def _handle(self, report: StatusReport) -> None:
        applied = self._apply(report)
        if applied is None:
            return

        await self._notify_status_changed(applied.previous, applied.status)
        if applied.outcome == MergeOutcome.merged:
            variant = self._merger.variant_for(report.job_id)
            await self._notify_variant_merged(report.job_id, variant)

        if applied.became_complete:
            aggregate = applied.snapshot.aggregate
            logger.info(
                "[aggregator] batch complete batch_id=%s completed=%s failed=%s merged=%s",
                self.batch_id,
                aggregate.completed_count,
                aggregate.failed_count,
                aggregate.merged_count,
            )
            self._complete.set()
            await self._notify_batch_completed(applied.snapshot)
            self._publisher.close()

    def _apply(self, report: StatusReport) -> Optional[_Applied]:
        """Apply one report atomically; returns None when nothing changed."""
        job_id, status = report
        if job_id not in self._known:
            self.rejected_reports += 1
            logger.warning("[aggregator] report rejected: %s", UnknownJobError(job_id, self.batch_id).message)
            return None

        previous = self._statuses.get(job_id)
        if previous is not None and previous.is_terminal():
            if previous.status == JobState.completed and status.status == JobState.completed:
                # Redelivered completion: the dedup guard turns it into a no-op
                self._merger.accept(job_id, status.result)
            else:
                logger.debug(
                    "[aggregator] ignoring report for terminal job job_id=%s terminal=%s reported=%s",
                    job_id,
                    previous.status,
                    status.status,
                )
            return None

        if previous == status:
            return None

        self._statuses[job_id] = status
        outcome = None
        if status.status == JobState.completed:
            outcome = self._merger.accept(job_id, status.result)

        snapshot = self._publisher.publish(self._statuses, self._merger)
        became_complete = snapshot.aggregate.is_all_complete and not self._completion_signalled
        if became_complete:
            self._completion_signalled = True
        return _Applied(previous, status, outcome, snapshot, became_complete)

    # ---------------- Queries -----------------
    def snapshot(self) -> BatchSnapshot:
        return self._publisher.latest

    def subscribe(self):
        return self._publisher.subscribe()

    def status_of(self, job_id: str) -> Optional[JobStatus]:
        return self._statuses.get(job_id)

    @property
    def is_complete(self) -> bool:
        return self._complete.is_set()

    async def wait_until_complete(self) -> BatchSnapshot:
        await self._complete.wait()
        return self._publisher.latest

    # ---------------- Observers -----------------
    async def _notify_status_changed(
        self, old_status: Optional[JobStatus], new_status: JobStatus
    ) -> None:
        for observer in self._observers:
            try:
                await observer.on_status_changed(self.batch_id, old_status, new_status)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_status_changed failed observer={type(observer).__name__} "
                    f"job_id={new_status.job_id} error={exc}"
                )

    async def _notify_variant_merged(self, job_id: str, variant: Variant) -> None:
        for observer in self._observers:
            try:
                await observer.on_variant_merged(self.batch_id, job_id, variant)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_variant_merged failed observer={type(observer).__name__} "
                    f"job_id={job_id} error={exc}"
                )

    async def _notify_batch_completed(self, snapshot: BatchSnapshot) -> None:
        for observer in self._observers:
            try:
                await observer.on_batch_completed(self.batch_id, snapshot)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_batch_completed failed observer={type(observer).__name__} "
                    f"batch_id={self.batch_id} error={exc}"
                )
