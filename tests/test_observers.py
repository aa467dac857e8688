"""Unit tests for batch observers.

Tests the Observer pattern implementation for reacting to batch events.
Each observer is tested independently for all lifecycle methods.
"""

import pytest
from unittest.mock import AsyncMock

from vtrack.core.managers.observers import (
    CompletionCallbackObserver,
    StatusHistoryObserver,
)
from vtrack.core.models.job import JobState, JobStatus
from vtrack.core.models.snapshot import AggregateView, BatchSnapshot
from vtrack.core.models.variant import Variant


# --- Test Fixtures ---

@pytest.fixture
def running_status():
    return JobStatus(job_id="job-1", status=JobState.running, progress=40)


@pytest.fixture
def completed_status():
    return JobStatus(job_id="job-1", status=JobState.completed, progress=100, result={"variants": [{}]})


@pytest.fixture
def final_snapshot():
    return BatchSnapshot(
        batch_id="batch-1",
        project_id="p",
        version=3,
        aggregate=AggregateView(total_jobs=1, completed_count=1, merged_count=1),
    )


# --- StatusHistoryObserver Tests ---

class TestStatusHistoryObserver:
    @pytest.mark.asyncio
    async def test_records_transitions_in_order(self, running_status, completed_status):
        observer = StatusHistoryObserver()

        await observer.on_status_changed("batch-1", None, running_status)
        await observer.on_status_changed("batch-1", running_status, completed_status)

        history = observer.history("batch-1", "job-1")
        assert [s.status for s in history] == [JobState.running, JobState.completed]

    @pytest.mark.asyncio
    async def test_history_is_scoped_per_batch(self, running_status):
        observer = StatusHistoryObserver()

        await observer.on_status_changed("batch-1", None, running_status)

        assert observer.history("batch-2", "job-1") == []
        assert observer.history("batch-1", "unknown") == []

    @pytest.mark.asyncio
    async def test_records_merge_order(self):
        observer = StatusHistoryObserver()

        await observer.on_variant_merged("batch-1", "C", Variant(variant_label="c"))
        await observer.on_variant_merged("batch-1", "A", Variant(variant_label="a"))

        assert observer.merge_order("batch-1") == ["C", "A"]

    @pytest.mark.asyncio
    async def test_returned_history_is_a_copy(self, running_status):
        observer = StatusHistoryObserver()
        await observer.on_status_changed("batch-1", None, running_status)

        observer.history("batch-1", "job-1").clear()

        assert len(observer.history("batch-1", "job-1")) == 1

    @pytest.mark.asyncio
    async def test_completion_is_a_noop(self, final_snapshot):
        observer = StatusHistoryObserver()

        await observer.on_batch_completed("batch-1", final_snapshot)

        assert observer.merge_order("batch-1") == []


# --- CompletionCallbackObserver Tests ---

class TestCompletionCallbackObserver:
    @pytest.mark.asyncio
    async def test_invokes_callback_on_completion(self, final_snapshot):
        callback = AsyncMock()
        observer = CompletionCallbackObserver(callback)

        await observer.on_batch_completed("batch-1", final_snapshot)

        callback.assert_awaited_once_with("batch-1", final_snapshot)

    @pytest.mark.asyncio
    async def test_ignores_status_and_merge_events(self, running_status):
        callback = AsyncMock()
        observer = CompletionCallbackObserver(callback)

        await observer.on_status_changed("batch-1", None, running_status)
        await observer.on_variant_merged("batch-1", "job-1", Variant())

        callback.assert_not_awaited()
