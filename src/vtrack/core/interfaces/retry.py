from typing import Protocol, Any, Awaitable, Callable

class RetryPort(Protocol):
    """Retry policy applied to a single job status check.

    The poller wraps each status request in `execute`. Implementations retry
    only failures that may go away on their own (a `StatusFetchError` with
    `transient=True`: timeouts, connection errors, 429 and 5xx answers) and
    re-raise anything else at once. When the attempts are used up the last
    `StatusFetchError` propagates and the poller reports the job failed.
    """
    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:  # pragma: no cover - protocol
        """Run one status check with retries for transient failures.

        Args:
            func: Async callable issuing the status request.
            *args/**kwargs: Passed to the callable.
            Supported kw overrides (optional): attempts, wait_initial, wait_max.
        Returns:
            The status returned by the first successful attempt.
        Raises:
            StatusFetchError: non-transient failure, or the last transient one
            once the attempts are exhausted.
        """
        ...
