"""HTTP implementation of JobStatusPort against the generation backend."""

from typing import Dict
from urllib.parse import quote

from pydantic import ValidationError

from vtrack.core.exceptions import StatusFetchError
from vtrack.core.interfaces.http_client import HttpClientPort
from vtrack.core.interfaces.job_status import JobStatusPort
from vtrack.core.models.job import JobStatus
from vtrack.core.settings import logger


DEFAULT_HEADERS = {"Accept": "application/json"}


class HttpJobStatusClient(JobStatusPort):
    """Issues one GET /api/project/{projectId}/jobs/{jobId} per call.

    `headers` are sent with every status request (e.g. an Authorization header
    for a protected backend); `Accept: application/json` is always included.
    """

    def __init__(
        self,
        http_client: HttpClientPort,
        backend_url: str,
        timeout: float | None = None,
        headers: Dict[str, str] | None = None,
    ):
        self._http = http_client
        self._backend_url = backend_url.rstrip("/")
        self._timeout = timeout
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}

    def status_url(self, job_id: str, project_id: str) -> str:
        return (
            f"{self._backend_url}/api/project/{quote(project_id, safe='')}"
            f"/jobs/{quote(job_id, safe='')}"
        )

    async def fetch_status(self, job_id: str, project_id: str) -> JobStatus:
        url = self.status_url(job_id, project_id)
        try:
            body = await self._http.get(url, timeout=self._timeout, headers=self._headers)
        except StatusFetchError as exc:
            exc.job_id = job_id
            raise

        if not isinstance(body, dict):
            raise StatusFetchError(
                "Job status response is not a JSON object",
                job_id=job_id,
                transient=False,
                diagnostic=str(body)[:100],
            )

        # The backend's own id wins only when it matches; otherwise we keep ours
        payload = {**body, "jobId": job_id}
        try:
            status = JobStatus.model_validate(payload)
        except ValidationError as exc:
            logger.error("[status] invalid job status body job_id=%s error=%s", job_id, exc)
            raise StatusFetchError(
                "Job status response did not match the expected schema",
                job_id=job_id,
                transient=False,
                diagnostic=str(exc),
            ) from exc

        if body.get("jobId") not in (None, job_id):
            logger.warning(
                "[status] backend reported mismatching jobId requested=%s reported=%s",
                job_id,
                body.get("jobId"),
            )
        return status
