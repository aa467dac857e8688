"""Tests for HttpJobStatusClient: URL layout and status body validation."""

from typing import Any, Dict, List, Tuple

import pytest

from vtrack.adapters.job_status_http_adapter import HttpJobStatusClient
from vtrack.core.exceptions import StatusFetchError
from vtrack.core.interfaces.http_client import HttpClientPort
from vtrack.core.models.job import JobState


class FakeHttpClient(HttpClientPort):
    def __init__(self, response: Any = None, error: Exception | None = None):
        self._response = response
        self._error = error
        self.requests: List[Tuple[str, float | None, Dict[str, str] | None]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def get(self, url: str, timeout: float | None = None, headers: Dict[str, str] | None = None):
        self.requests.append((url, timeout, headers))
        if self._error is not None:
            raise self._error
        return self._response

    async def close(self) -> None:
        pass


@pytest.mark.asyncio
async def test_requests_project_scoped_job_url():
    http = FakeHttpClient({"jobId": "job-1", "status": "running", "progress": 12})
    client = HttpJobStatusClient(http, backend_url="http://backend.test/", timeout=3)

    status = await client.fetch_status("job-1", "shop 42")

    assert http.requests == [
        ("http://backend.test/api/project/shop%2042/jobs/job-1", 3, {"Accept": "application/json"})
    ]
    assert status.status == JobState.running
    assert status.progress == 12


@pytest.mark.asyncio
async def test_progress_is_normalized():
    http = FakeHttpClient({"jobId": "job-1", "status": "running", "progress": 142.7})
    status = await HttpJobStatusClient(http, "http://backend.test").fetch_status("job-1", "p")

    assert status.progress == 100


@pytest.mark.asyncio
async def test_missing_job_id_uses_requested_one():
    http = FakeHttpClient({"status": "completed", "progress": 100, "result": {"variants": []}})
    status = await HttpJobStatusClient(http, "http://backend.test").fetch_status("job-7", "p")

    assert status.job_id == "job-7"
    assert status.result == {"variants": []}


@pytest.mark.asyncio
async def test_mismatching_job_id_is_overridden():
    http = FakeHttpClient({"jobId": "other", "status": "pending"})
    status = await HttpJobStatusClient(http, "http://backend.test").fetch_status("job-1", "p")

    assert status.job_id == "job-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [["not", "an", "object"], {"status": "exploded"}])
async def test_invalid_bodies_are_final_errors(body):
    client = HttpJobStatusClient(FakeHttpClient(body), "http://backend.test")

    with pytest.raises(StatusFetchError) as excinfo:
        await client.fetch_status("job-1", "p")

    assert excinfo.value.transient is False
    assert excinfo.value.job_id == "job-1"


@pytest.mark.asyncio
async def test_transport_errors_carry_job_id():
    error = StatusFetchError("Request to backend timed out", upstream_status=504)
    client = HttpJobStatusClient(FakeHttpClient(error=error), "http://backend.test")

    with pytest.raises(StatusFetchError) as excinfo:
        await client.fetch_status("job-1", "p")

    assert excinfo.value.job_id == "job-1"
    assert excinfo.value.upstream_status == 504


@pytest.mark.asyncio
async def test_configured_headers_are_sent_with_every_request():
    http = FakeHttpClient({"jobId": "job-1", "status": "running"})
    client = HttpJobStatusClient(http, "http://backend.test", headers={"Authorization": "Bearer s3cret"})

    await client.fetch_status("job-1", "p")
    await client.fetch_status("job-1", "p")

    assert [headers for _, _, headers in http.requests] == [
        {"Accept": "application/json", "Authorization": "Bearer s3cret"},
    ] * 2
