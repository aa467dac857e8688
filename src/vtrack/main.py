# main.py
import uvicorn

from vtrack.adapters.aiohttp_client_adapter import AioHttpClientAdapter
from vtrack.adapters.job_status_http_adapter import HttpJobStatusClient
from vtrack.adapters.logging_adapter import LoggingAdapter
from vtrack.adapters.retry_tenacity import TenacityRetryAdapter
from vtrack.adapters.web.fastapi import create_app
from vtrack.core.config import TrackerConfig
from vtrack.core.logging_config import configure_logging
from vtrack.core.managers.batch_tracker import BatchTracker
from vtrack.core.managers.observers import StatusHistoryObserver
from vtrack.core.settings import app_settings, logger, set_logger


# main lives at the outermost layer (not in core)
# Instantiates all the concrete adapters
# Wires dependencies together
# Starts the application

def main():
    # Central logging configuration BEFORE injecting adapter so uvicorn adopts level/format
    configure_logging(app_settings.VTRACK_LOG_LEVEL, disable_uvicorn_access=True)
    set_logger(LoggingAdapter("vtrack", app_settings.VTRACK_LOG_LEVEL))
    app_settings.print_settings(logger)

    http_client = AioHttpClientAdapter(default_timeout=app_settings.VTRACK_REQUEST_TIMEOUT)
    config = TrackerConfig.from_app_settings(app_settings)
    history = StatusHistoryObserver()

    backend_headers = {}
    if app_settings.VTRACK_BACKEND_TOKEN:
        backend_headers["Authorization"] = f"Bearer {app_settings.VTRACK_BACKEND_TOKEN}"

    def tracker_factory(client):
        status_client = HttpJobStatusClient(
            client,
            backend_url=config.backend_url,
            timeout=app_settings.VTRACK_REQUEST_TIMEOUT,
            headers=backend_headers,
        )
        retry_adapter = TenacityRetryAdapter(
            attempts=config.status_retry_attempts,
            wait_initial=config.status_retry_base_wait,
            wait_max=config.status_retry_max_wait,
        )
        return BatchTracker(
            status_client,
            config=config,
            retry_port=retry_adapter,
            observers=[history],
        )

    app = create_app(tracker_factory=tracker_factory, http_client=http_client)

    # Let uvicorn inherit existing logging (separate sinks & context ids)
    uvicorn.run(
        app,
        host=app_settings.VTRACK_API_HOST,
        port=app_settings.VTRACK_API_PORT,
        log_config=None,
        log_level=str(app_settings.VTRACK_LOG_LEVEL).lower(),
    )


if __name__ == "__main__":
    main()
