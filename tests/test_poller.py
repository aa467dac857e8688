"""Unit tests for JobPoller: lifecycle, error containment and polling budget."""

import asyncio
from typing import Dict, List, Union

import pytest

from vtrack.adapters.retry_tenacity import TenacityRetryAdapter
from vtrack.core.config import TrackerConfig
from vtrack.core.exceptions import StatusFetchError
from vtrack.core.interfaces.job_status import JobStatusPort
from vtrack.core.managers.poller import JobPoller
from vtrack.core.models.job import JobState, JobStatus

Step = Union[JobStatus, Exception]


class ScriptedStatusClient(JobStatusPort):
    """Replays a per-job script of statuses/errors; the last step repeats forever."""

    def __init__(self, scripts: Dict[str, List[Step]]):
        self._scripts = {job_id: list(steps) for job_id, steps in scripts.items()}
        self.calls: List[str] = []

    async def fetch_status(self, job_id: str, project_id: str) -> JobStatus:
        self.calls.append(job_id)
        script = self._scripts[job_id]
        step = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(step, Exception):
            raise step
        return step


def _status(job_id, state, progress=0, **kwargs):
    return JobStatus(job_id=job_id, status=state, progress=progress, **kwargs)


@pytest.fixture
def config():
    return TrackerConfig(poll_interval=0.01, poll_timeout=5.0)


@pytest.fixture
def reports():
    return []


@pytest.fixture
def report(reports):
    async def _report(job_id, status):
        reports.append(status)
    return _report


class TestPollingLifecycle:
    @pytest.mark.asyncio
    async def test_polls_until_terminal_then_stops(self, config, report, reports):
        client = ScriptedStatusClient({
            "job-1": [
                _status("job-1", JobState.pending),
                _status("job-1", JobState.running, 50),
                _status("job-1", JobState.completed, 100, result={"variants": [{}]}),
            ]
        })
        poller = JobPoller("job-1", "p1", client, report, config)

        final = await asyncio.wait_for(poller.run(), 1)
        await asyncio.sleep(0.05)

        assert final.status == JobState.completed
        assert [r.status for r in reports] == [JobState.pending, JobState.running, JobState.completed]
        assert client.calls.count("job-1") == 3
        assert poller.requests == 3

    @pytest.mark.asyncio
    async def test_first_check_is_immediate(self, report):
        slow = TrackerConfig(poll_interval=60.0)
        client = ScriptedStatusClient({"job-1": [_status("job-1", JobState.failed, error="no quota")]})

        final = await asyncio.wait_for(JobPoller("job-1", "p1", client, report, slow).run(), 1)

        assert final.error == "no quota"

    @pytest.mark.asyncio
    async def test_cancellation_stops_without_final_report(self, config, report, reports):
        client = ScriptedStatusClient({"job-1": [_status("job-1", JobState.running, 10)]})
        task = asyncio.create_task(JobPoller("job-1", "p1", client, report, config).run())
        await asyncio.sleep(0.035)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        calls = len(client.calls)
        await asyncio.sleep(0.03)

        assert all(r.status == JobState.running for r in reports)
        assert len(client.calls) == calls


class TestErrorContainment:
    @pytest.mark.asyncio
    async def test_transport_error_fails_job_without_further_requests(self, config, report, reports):
        client = ScriptedStatusClient({"job-e": [StatusFetchError("Connection error with backend", upstream_status=502)]})
        poller = JobPoller("job-e", "p1", client, report, config)

        final = await asyncio.wait_for(poller.run(), 1)
        await asyncio.sleep(0.05)

        assert final.status == JobState.failed
        assert final.error == "Connection error with backend"
        assert [r.status for r in reports] == [JobState.failed]
        assert client.calls == ["job-e"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, config, report):
        client = ScriptedStatusClient({"job-1": [RuntimeError("client bug")]})

        final = await asyncio.wait_for(JobPoller("job-1", "p1", client, report, config).run(), 1)

        assert final.status == JobState.failed
        assert "client bug" in final.error

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried_when_configured(self, report):
        config = TrackerConfig(
            poll_interval=0.01,
            status_retry_attempts=3,
            status_retry_base_wait=0.001,
            status_retry_max_wait=0.002,
        )
        client = ScriptedStatusClient({
            "job-1": [
                StatusFetchError("timeout", upstream_status=504),
                StatusFetchError("bad gateway", upstream_status=502),
                _status("job-1", JobState.completed, 100),
            ]
        })
        poller = JobPoller("job-1", "p1", client, report, config, retry_port=TenacityRetryAdapter())

        final = await asyncio.wait_for(poller.run(), 1)

        assert final.status == JobState.completed
        assert poller.requests == 3
        assert poller.checks == 1

    @pytest.mark.asyncio
    async def test_permanent_errors_are_not_retried(self, report):
        config = TrackerConfig(poll_interval=0.01, status_retry_attempts=3, status_retry_base_wait=0.001)
        client = ScriptedStatusClient({
            "job-1": [
                StatusFetchError("not found", upstream_status=404, transient=False),
                _status("job-1", JobState.completed, 100),
            ]
        })
        poller = JobPoller("job-1", "p1", client, report, config, retry_port=TenacityRetryAdapter())

        final = await asyncio.wait_for(poller.run(), 1)

        assert final.status == JobState.failed
        assert poller.requests == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted_fail_the_job(self, report):
        config = TrackerConfig(
            poll_interval=0.01,
            status_retry_attempts=2,
            status_retry_base_wait=0.001,
            status_retry_max_wait=0.002,
        )
        client = ScriptedStatusClient({"job-1": [StatusFetchError("still down", upstream_status=503)]})
        poller = JobPoller("job-1", "p1", client, report, config, retry_port=TenacityRetryAdapter())

        final = await asyncio.wait_for(poller.run(), 1)

        assert final.error == "still down"
        assert poller.requests == 2


class TestPollingBudget:
    @pytest.mark.asyncio
    async def test_timeout_marks_job_failed(self, report, reports):
        config = TrackerConfig(poll_interval=0.01, poll_timeout=0.05)
        client = ScriptedStatusClient({"job-1": [_status("job-1", JobState.running, 70)]})

        final = await asyncio.wait_for(JobPoller("job-1", "p1", client, report, config).run(), 1)

        assert final.status == JobState.failed
        assert final.error.startswith("Timed out after 0.05s")
        assert final.progress == 70
        assert reports[-1] == final
        assert len(client.calls) >= 2

    @pytest.mark.asyncio
    async def test_max_polls_bounds_requests(self, report):
        config = TrackerConfig(poll_interval=0.01, max_polls=3)
        client = ScriptedStatusClient({"job-1": [_status("job-1", JobState.running, 5)]})

        final = await asyncio.wait_for(JobPoller("job-1", "p1", client, report, config).run(), 1)

        assert final.status == JobState.failed
        assert "3 status checks" in final.error
        assert len(client.calls) == 3

    @pytest.mark.asyncio
    async def test_exhausted_poll_budget_fails_without_waiting_an_interval(self, report, reports):
        config = TrackerConfig(poll_interval=60.0, max_polls=1)
        client = ScriptedStatusClient({"job-1": [_status("job-1", JobState.running, 25)]})
        poller = JobPoller("job-1", "p1", client, report, config)

        final = await asyncio.wait_for(poller.run(), 1)

        assert final.status == JobState.failed
        assert final.progress == 25
        assert poller.checks == 1
        assert [r.status for r in reports] == [JobState.running, JobState.failed]
