"""JobPoller: drives the status checks of a single job until it is terminal."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from vtrack.core.config import TrackerConfig
from vtrack.core.exceptions import StatusFetchError
from vtrack.core.interfaces.job_status import JobStatusPort
from vtrack.core.interfaces.retry import RetryPort
from vtrack.core.models.job import JobStatus
from vtrack.core.settings import logger

ReportCallback = Callable[[str, JobStatus], Awaitable[None]]


class JobPoller:
    """Polls one job on a fixed interval and reports every observed status.

    The first check is issued immediately. Polling ends when the job reports a
    terminal status, when a status check fails at the transport level (the job
    is reported failed), or when the configured timeout / poll budget runs out
    (the job is reported failed with the reason). Cancellation ends the loop
    without a final report.

    Attributes:
        requests: Number of status requests issued so far (retries included)
        checks: Number of status checks made so far (one per poll, however many retries)
    """

    def __init__(
        self,
        job_id: str,
        project_id: str,
        status_client: JobStatusPort,
        report: ReportCallback,
        config: TrackerConfig,
        retry_port: Optional[RetryPort] = None,
    ) -> None:
        self.job_id = job_id
        self.project_id = project_id
        self._client = status_client
        self._report = report
        self.config = config
        self._retry = retry_port
        self.requests = 0
        self.checks = 0

    async def run(self) -> JobStatus:
        loop = asyncio.get_running_loop()
        started = loop.time()

        while True:
            status = await self._check_once()
            await self._report(self.job_id, status)
            if status.is_terminal():
                logger.debug(f"[poll] terminal state reached job_id={self.job_id} status={status.status}")
                return status

            # Budget is checked before sleeping so an exhausted job fails right away
            should_stop, reason = self._should_stop_polling(loop.time() - started)
            if should_stop:
                logger.warning(f"[poll] giving up job_id={self.job_id}: {reason}")
                final = JobStatus.failed(self.job_id, reason, progress=status.progress)
                await self._report(self.job_id, final)
                return final

            await asyncio.sleep(self.config.poll_interval)

    def _should_stop_polling(self, elapsed: float) -> tuple[bool, str]:
        """Check the explicit polling budget.

        Returns (should_stop, reason) tuple.
        """
        timeout = self.config.poll_timeout
        if timeout is not None and elapsed >= timeout:
            return True, f"Timed out after {timeout:g}s waiting for the job to finish"

        max_polls = self.config.max_polls
        if max_polls is not None and self.checks >= max_polls:
            return True, f"Gave up after {self.checks} status checks without a terminal status"

        return False, ""

    async def _check_once(self) -> JobStatus:
        """One status check (with the configured retry policy).

        Failures are contained here: whatever goes wrong turns into a failed
        status for this job only.
        """
        self.checks += 1
        try:
            if self._retry is not None:
                return await self._retry.execute(
                    self._fetch,
                    attempts=self.config.status_retry_attempts,
                    wait_initial=self.config.status_retry_base_wait,
                    wait_max=self.config.status_retry_max_wait,
                )
            return await self._fetch()
        except StatusFetchError as exc:
            logger.warning(
                f"[poll] status check failed job_id={self.job_id} "
                f"upstream_status={exc.upstream_status} error={exc.message}"
            )
            return JobStatus.failed(self.job_id, exc.message)
        except Exception as exc:
            logger.exception(f"[poll] unexpected error job_id={self.job_id}")
            return JobStatus.failed(self.job_id, f"Unexpected error while checking status: {exc}")

    async def _fetch(self) -> JobStatus:
        self.requests += 1
        return await self._client.fetch_status(self.job_id, self.project_id)
