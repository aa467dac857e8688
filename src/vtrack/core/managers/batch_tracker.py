"""BatchTracker: orchestrates variant generation batches.

Responsibilities:
1. Validate a batch submission (or a generation tool result).
2. Start the batch's aggregator actor.
3. Spawn exactly one poller task per job id, once, at submission time.
4. Serve snapshots and subscriptions to consumers.
5. Cancel pollers and close subscriptions when a batch is discarded.
6. Evict settled batches once their retention time (`batch_ttl`) has passed.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Set

from pydantic import ValidationError

from vtrack.core.config import TrackerConfig
from vtrack.core.exceptions import (
    BatchNotFoundError,
    InvalidBatchError,
    InvalidToolResultError,
    ResultParseError,
    TrackerError,
)
from vtrack.core.interfaces.job_status import JobStatusPort
from vtrack.core.interfaces.observers import BatchObserver
from vtrack.core.interfaces.retry import RetryPort
from vtrack.core.logging_config import batch_id_var
from vtrack.core.managers.aggregator import StatusAggregator
from vtrack.core.managers.poller import JobPoller
from vtrack.core.managers.result_merger import parse_variants
from vtrack.core.models.batch import DEFAULT_PROJECT_ID, BatchRequest
from vtrack.core.models.snapshot import BatchSnapshot
from vtrack.core.settings import logger


@dataclass
class _Batch:
    batch_id: str
    project_id: str
    aggregator: StatusAggregator
    pollers: Dict[str, JobPoller] = field(default_factory=dict)
    tasks: Set[asyncio.Task] = field(default_factory=set)
    reaper: Optional[asyncio.Task] = None


class BatchTracker:
    """Entry point for consumers: submit, observe and discard batches.

    Attributes:
        config: Immutable configuration (poll interval, polling budget, retries)
    """

    def __init__(
        self,
        status_client: JobStatusPort,
        config: TrackerConfig,
        retry_port: Optional[RetryPort] = None,
        observers: Optional[list[BatchObserver]] = None,
    ) -> None:
        self._client = status_client
        self.config = config
        self._retry = retry_port
        self._observers = observers or []
        self._batches: Dict[str, _Batch] = {}
        self._shutdown = False

    # ---------------- Submission -----------------
    async def submit_batch(
        self, job_ids: Iterable[str], project_id: str = DEFAULT_PROJECT_ID
    ) -> BatchSnapshot:
        """Start tracking a batch of job ids; returns the initial snapshot."""
        self._ensure_running()
        try:
            request = BatchRequest(job_ids=list(job_ids), project_id=project_id)
        except ValidationError as exc:
            raise InvalidBatchError("Invalid batch submission", diagnostic=str(exc)) from exc

        batch_id = uuid.uuid4().hex
        # Tasks copy the current context: everything spawned below logs with this batch id
        token = batch_id_var.set(batch_id)
        try:
            aggregator = StatusAggregator(
                batch_id,
                request.project_id,
                request.job_ids,
                backend_url=self.config.backend_url,
                observers=self._observers,
            )
            aggregator.start()
            batch = _Batch(batch_id, request.project_id, aggregator)
            self._batches[batch_id] = batch
            for job_id in request.job_ids:
                self._spawn_poller(batch, job_id)
            self._schedule_eviction(batch)
            logger.info(
                f"[batch] submitted batch_id={batch_id} project_id={request.project_id} jobs={len(request.job_ids)}"
            )
        finally:
            batch_id_var.reset(token)
        return aggregator.snapshot()

    async def submit_tool_result(self, result: Any) -> BatchSnapshot:
        """Start tracking whatever a variant generation tool call returned.

        With `jobIds` the jobs are polled (project `projectId`, falling back to
        the default project). With `variantsSchema` the variants are already
        final and the batch is settled immediately.
        """
        data = result
        if isinstance(data, (str, bytes, bytearray)):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as exc:
                raise InvalidToolResultError("Tool result is not valid JSON", diagnostic=str(exc)) from exc
        if not isinstance(data, dict):
            raise InvalidToolResultError("Tool result is not an object")

        job_ids = data.get("jobIds")
        if isinstance(job_ids, list):
            return await self.submit_batch(job_ids, data.get("projectId") or DEFAULT_PROJECT_ID)

        if data.get("variantsSchema") is not None:
            return self._settle_direct(data["variantsSchema"], data.get("projectId") or DEFAULT_PROJECT_ID)

        raise InvalidToolResultError("Tool result holds neither jobIds nor variantsSchema")

    def _settle_direct(self, variants_schema: Any, project_id: str) -> BatchSnapshot:
        self._ensure_running()
        batch_id = uuid.uuid4().hex
        try:
            variants = parse_variants("tool-result", variants_schema)
        except ResultParseError as exc:
            raise InvalidToolResultError(exc.message, diagnostic=exc.diagnostic) from exc
        aggregator = StatusAggregator(
            batch_id, project_id, (), backend_url=self.config.backend_url, observers=self._observers
        )
        snapshot = aggregator.seed_variants(variants)
        batch = _Batch(batch_id, project_id, aggregator)
        self._batches[batch_id] = batch
        self._schedule_eviction(batch)
        logger.info(f"[batch] settled direct batch_id={batch_id} variants={len(variants)}")
        return snapshot

    def _spawn_poller(self, batch: _Batch, job_id: str) -> None:
        poller = JobPoller(
            job_id,
            batch.project_id,
            self._client,
            report=batch.aggregator.submit,
            config=self.config,
            retry_port=self._retry,
        )
        batch.pollers[job_id] = poller
        task = asyncio.create_task(poller.run(), name=f"poll:{batch.batch_id}:{job_id}")
        batch.tasks.add(task)
        task.add_done_callback(batch.tasks.discard)

    def _schedule_eviction(self, batch: _Batch) -> None:
        if self.config.batch_ttl is None:
            return
        batch.reaper = asyncio.create_task(
            self._evict_when_settled(batch), name=f"evict:{batch.batch_id}"
        )

    async def _evict_when_settled(self, batch: _Batch) -> None:
        """Forget a batch `batch_ttl` seconds after it settled."""
        await batch.aggregator.wait_until_complete()
        await asyncio.sleep(self.config.batch_ttl)
        if self._batches.get(batch.batch_id) is not batch:
            return
        del self._batches[batch.batch_id]
        await self._teardown(batch)
        logger.info(f"[batch] evicted settled batch_id={batch.batch_id} ttl={self.config.batch_ttl:g}s")

    def _ensure_running(self) -> None:
        if self._shutdown:
            raise TrackerError("Tracker is shut down")

    # ---------------- Queries -----------------
    def _get(self, batch_id: str) -> _Batch:
        batch = self._batches.get(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def snapshot(self, batch_id: str) -> BatchSnapshot:
        return self._get(batch_id).aggregator.snapshot()

    def subscribe(self, batch_id: str) -> AsyncIterator[BatchSnapshot]:
        """Async iterator of snapshots: the current one, then each update until the batch ends."""
        return self._get(batch_id).aggregator.subscribe()

    async def wait_until_complete(self, batch_id: str, timeout: Optional[float] = None) -> BatchSnapshot:
        aggregator = self._get(batch_id).aggregator
        return await asyncio.wait_for(aggregator.wait_until_complete(), timeout)

    def poller(self, batch_id: str, job_id: str) -> JobPoller:
        try:
            return self._get(batch_id).pollers[job_id]
        except KeyError:
            raise BatchNotFoundError(f"{batch_id}/{job_id}") from None

    def active_pollers(self, batch_id: str) -> int:
        return sum(1 for t in self._get(batch_id).tasks if not t.done())

    @property
    def batch_ids(self) -> list[str]:
        return list(self._batches)

    # ---------------- Teardown -----------------
    async def cancel(self, batch_id: str) -> None:
        """Discard a batch: stop its pollers and end its subscriptions."""
        batch = self._batches.pop(batch_id, None)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        await self._teardown(batch)
        logger.info(f"[batch] discarded batch_id={batch_id}")

    async def _teardown(self, batch: _Batch) -> None:
        if batch.reaper is not None and batch.reaper is not asyncio.current_task():
            batch.reaper.cancel()
            await asyncio.gather(batch.reaper, return_exceptions=True)
        for task in list(batch.tasks):
            task.cancel()
        if batch.tasks:
            await asyncio.gather(*batch.tasks, return_exceptions=True)
        await batch.aggregator.stop()

    async def shutdown(self) -> None:
        self._shutdown = True
        batches = list(self._batches.values())
        self._batches.clear()
        for batch in batches:
            await self._teardown(batch)
