# vtrack/adapters/aiohttp_client_adapter.py
import asyncio
import aiohttp
from typing import Any, Dict, Optional

from vtrack.core.interfaces.http_client import HttpClientPort
from vtrack.core.exceptions import StatusFetchError
from vtrack.core.settings import logger

# Upstream statuses worth another attempt; everything else in 4xx is final
_TRANSIENT_STATUSES = {408, 425, 429, 500, 502, 503, 504}


class AioHttpClientAdapter(HttpClientPort):
    def __init__(self, default_timeout: float = 10.0, headers: Dict[str, str] | None = None):
        self._session: Optional[aiohttp.ClientSession] = None
        self._headers = headers or {}
        # Per-field timeouts are fixed at init time so callers only ever pass a total.
        self._default_total: float = default_timeout
        self._default_sock_read: float = default_timeout
        self._default_sock_connect: float = min(5.0, default_timeout)
        self._default_client_timeout = aiohttp.ClientTimeout(
            total=self._default_total,
            sock_read=self._default_sock_read,
            sock_connect=self._default_sock_connect,
        )

    async def __aenter__(self):
        """Async context manager entry"""
        self._session = aiohttp.ClientSession(headers=self._headers)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()
        return False

    async def get(
        self,
        url: str,
        timeout: float | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Dict[str, Any]:
        if self._session is None:
            raise RuntimeError("HTTP client not initialized. Use 'async with' context manager.")
        if timeout is None:
            client_timeout = self._default_client_timeout
        else:
            # Keep adapter-level sock_read/sock_connect values but apply provided total
            client_timeout = aiohttp.ClientTimeout(
                total=timeout,
                sock_read=self._default_sock_read,
                sock_connect=self._default_sock_connect,
            )

        return await self._fetch_json(url, timeout=client_timeout, headers=headers)

    async def _fetch_json(self, url: str, **kwargs) -> Dict[str, Any]:
        """Fetch JSON from URL, translating HTTP/network errors into StatusFetchError."""
        if self._session is None:
            raise RuntimeError("HTTP client not initialized. Use 'async with' context manager.")

        try:
            async with self._session.get(url, **kwargs) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.error(
                        "HTTP error when requesting backend. URL: %s, Status: %s, Body: %s",
                        url,
                        response.status,
                        body[:500],
                    )
                    raise StatusFetchError(
                        f"Backend returned HTTP {response.status}",
                        upstream_status=response.status,
                        transient=response.status in _TRANSIENT_STATUSES,
                        diagnostic=body[:500],
                    )
                try:
                    return await response.json()
                except (aiohttp.ContentTypeError, ValueError):
                    response_text = await response.text()
                    logger.error(
                        "Invalid JSON response from backend. URL: %s, Content: %s",
                        url,
                        response_text[:500],
                    )
                    raise StatusFetchError(
                        "Backend response was not valid JSON",
                        upstream_status=response.status,
                        transient=False,
                        diagnostic=response_text[:100],
                    )

        except asyncio.TimeoutError:
            logger.error("Timeout when requesting backend. URL: %s", url)
            raise StatusFetchError("Request to backend timed out", upstream_status=504)

        except aiohttp.ClientError as client_error:
            logger.error(
                "Connection error when requesting backend. URL: %s, Error: %s",
                url,
                str(client_error),
            )
            raise StatusFetchError(
                "Connection error with backend",
                upstream_status=502,
                diagnostic=str(client_error),
            )

    async def close(self) -> None:
        """Close the session"""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
