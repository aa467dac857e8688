from typing import Any, Awaitable, Callable

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from vtrack.core.exceptions import StatusFetchError


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, StatusFetchError) and exc.transient


class TenacityRetryAdapter:
    """Tenacity-based retry adapter implementing RetryPort.

    Retries only transient StatusFetchErrors (timeouts, connection errors,
    5xx/429) with exponential backoff. Call-time kwargs can override the
    default policy (attempts, wait_initial, wait_max).
    """

    def __init__(
        self,
        attempts: int = 1,
        wait_initial: float = 0.5,
        wait_max: float = 5.0,
    ) -> None:
        self.attempts = attempts
        self.wait_initial = wait_initial
        self.wait_max = wait_max

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        attempts = kwargs.pop("attempts", self.attempts)
        wait_initial = kwargs.pop("wait_initial", self.wait_initial)
        wait_max = kwargs.pop("wait_max", self.wait_max)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=wait_initial, max=wait_max),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async for attempt in retrying:  # pragma: no cover - control flow instrumentation
            with attempt:
                return await func(*args, **kwargs)
