"""Builds read-only batch snapshots and fans them out to subscribers."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Mapping, Optional, Sequence, Set

from vtrack.core.managers.result_merger import ResultMerger
from vtrack.core.models.job import JobState, JobStatus
from vtrack.core.models.snapshot import AggregateView, BatchSnapshot, JobDisplay
from vtrack.core.models.variant import resolve_screenshot_url

_CLOSED = object()


class SnapshotPublisher:
    """Projects aggregator state into immutable BatchSnapshots.

    Every subscriber gets its own unbounded queue so a slow consumer never
    holds up the aggregator; `close` ends all subscriptions after the final
    snapshot has been delivered.
    """

    def __init__(
        self,
        batch_id: str,
        project_id: str,
        job_ids: Sequence[str],
        backend_url: str,
    ) -> None:
        self.batch_id = batch_id
        self.project_id = project_id
        self._job_ids = tuple(job_ids)
        self._backend_url = backend_url
        self._version = 0
        self._subscribers: Set[asyncio.Queue] = set()
        self._closed = False
        self._latest = self.build({}, ResultMerger())

    @property
    def latest(self) -> BatchSnapshot:
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, statuses: Mapping[str, JobStatus], merger: ResultMerger) -> BatchSnapshot:
        self._version += 1
        snapshot = self.build(statuses, merger)
        self._latest = snapshot
        for queue in self._subscribers:
            queue.put_nowait(snapshot)
        return snapshot

    def build(self, statuses: Mapping[str, JobStatus], merger: ResultMerger) -> BatchSnapshot:
        jobs = tuple(
            self._display(index, job_id, statuses.get(job_id), merger)
            for index, job_id in enumerate(self._job_ids)
        )
        completed = sum(1 for s in statuses.values() if s.status == JobState.completed)
        failed = sum(1 for s in statuses.values() if s.status == JobState.failed)
        merged = merger.merged
        return BatchSnapshot(
            batch_id=self.batch_id,
            project_id=self.project_id,
            version=self._version,
            jobs=jobs,
            variants=tuple(m.variant for m in merged),
            aggregate=AggregateView(
                total_jobs=len(self._job_ids),
                completed_count=completed,
                failed_count=failed,
                merged_count=len(merged),
            ),
        )

    def _display(
        self,
        index: int,
        job_id: str,
        status: Optional[JobStatus],
        merger: ResultMerger,
    ) -> JobDisplay:
        state = status.status if status else JobState.pending
        progress = status.progress if status else 0
        error = (status.error if status else None) or merger.parse_failure(job_id)
        variant = merger.variant_for(job_id)

        if variant is not None:
            return JobDisplay(
                job_id=job_id,
                index=index,
                status=state,
                progress=100,
                variant=variant,
                screenshot_url=resolve_screenshot_url(variant.screenshot, self._backend_url),
                is_placeholder=False,
                label=variant.variant_label or f"Variant {index + 1}",
                description=variant.description,
                rationale=variant.rationale,
            )

        if state == JobState.completed:
            description, rationale = "Loading...", "Processing complete"
        elif state == JobState.failed:
            description, rationale = "Failed to generate", "Generation failed"
        else:
            description, rationale = f"Creating... {progress}%", "Creating your variant"
        return JobDisplay(
            job_id=job_id,
            index=index,
            status=state,
            progress=progress,
            error=error,
            label=f"Variant {index + 1}",
            description=description,
            rationale=rationale,
        )

    async def subscribe(self) -> AsyncIterator[BatchSnapshot]:
        """Yield the current snapshot, then every published one until closed."""
        queue: asyncio.Queue = asyncio.Queue()
        queue.put_nowait(self._latest)
        if self._closed:
            queue.put_nowait(_CLOSED)
        self._subscribers.add(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            self._subscribers.discard(queue)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for queue in self._subscribers:
            queue.put_nowait(_CLOSED)
