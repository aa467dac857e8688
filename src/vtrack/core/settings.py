from pydantic import field_validator
from pydantic_settings import BaseSettings
from rich import print

from vtrack.adapters.logging_adapter import LoggingAdapter
from vtrack.core.interfaces.logging import LoggingPort


# using pydantic_settings to manage environment variables
# and do automatic type casting in a central place
class TrackerSettings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }
    VTRACK_LOG_LEVEL: str = "INFO"
    # Backend serving /api/project/{projectId}/jobs/{jobId}
    VTRACK_BACKEND_URL: str = "http://localhost:3001"
    # Sent as "Authorization: Bearer ..." with status requests when set
    VTRACK_BACKEND_TOKEN: str = ""
    VTRACK_API_HOST: str = "0.0.0.0"
    VTRACK_API_PORT: int = 8000
    VTRACK_POLL_INTERVAL: float = 10.0  # seconds
    VTRACK_POLL_TIMEOUT: float = 1800.0  # seconds, 0 disables the ceiling
    VTRACK_MAX_POLLS: int = 0  # 0 = unbounded
    # One attempt keeps "transport error fails the job"; raise to retry with backoff
    VTRACK_STATUS_RETRY_ATTEMPTS: int = 1
    VTRACK_STATUS_RETRY_BASE_WAIT: float = 0.5
    VTRACK_STATUS_RETRY_MAX_WAIT: float = 5.0
    VTRACK_REQUEST_TIMEOUT: float = 10.0
    # Seconds a settled batch stays queryable before it is evicted, 0 keeps it until discarded
    VTRACK_BATCH_TTL: float = 3600.0

    @field_validator("VTRACK_BACKEND_URL", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Status URLs are built as f"{base}/api/..."; keep the base slash-free."""
        return str(value).rstrip("/")

    def print_settings(self, logger: LoggingPort):
        """Prints the settings for debugging purposes"""
        logger.info("vtrack settings:")
        print(self)


class _DelegatingLogger(LoggingPort):
    """Module-level logger whose target can be swapped after import.

    Core modules import `logger` once; `set_logger` replaces the target so the
    composition root decides where messages go.
    """

    def __init__(self, target: LoggingPort):
        self._target = target

    def set_target(self, target: LoggingPort) -> None:
        self._target = target

    def info(self, msg: str, *args):
        self._target.info(msg, *args)

    def warning(self, msg: str, *args):
        self._target.warning(msg, *args)

    def error(self, msg: str, *args):
        self._target.error(msg, *args)

    def debug(self, msg: str, *args):
        self._target.debug(msg, *args)

    def exception(self, msg: str, *args):
        self._target.exception(msg, *args)


app_settings = TrackerSettings()

logger = _DelegatingLogger(LoggingAdapter("vtrack", app_settings.VTRACK_LOG_LEVEL))


def set_logger(new_logger: LoggingPort) -> None:
    logger.set_target(new_logger)
