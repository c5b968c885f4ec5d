"""
Async HTTP client wrapper for Riot API requests.
Includes the shared retry/backoff policy, timeout management, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from shared.config import Settings, get_settings
from shared.exceptions import (
    ConnectivityError,
    UpstreamError,
    UpstreamNotFoundError,
    UpstreamTransientError,
)
from shared.utils.logging import get_logger
from shared.utils.metrics import UPSTREAM_LATENCY, UPSTREAM_REQUESTS, UPSTREAM_RETRIES

logger = get_logger(__name__)

# Service-unavailable class: retried with backoff. Everything else fails fast.
TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})

SleepFn = Callable[[float], Awaitable[None]]


def _retry_after(resp: httpx.Response) -> Optional[float]:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class RiotHTTPClient:
    """
    Async HTTP client for one Riot API host.

    Every request carries the API key. Transient failures (429/502/503/504 and
    timeouts) are retried up to ``max_retries`` times with exponential backoff
    starting at ``base_delay_s``; a 404 raises ``UpstreamNotFoundError`` and any
    other error status raises ``UpstreamError`` without retrying. Connection
    failures raise ``ConnectivityError``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        settings: Settings | None = None,
        max_retries: int | None = None,
        base_delay_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        settings = settings or get_settings()
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = settings.request_timeout_s
        self._max_retries = settings.retry_max_attempts if max_retries is None else max_retries
        self._base_delay = settings.retry_base_delay_s if base_delay_s is None else base_delay_s
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"X-Riot-Token": self._api_key, "Accept": "application/json"},
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def backoff_delay(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0-based): base, 2*base, 4*base..."""
        return self._base_delay * (2 ** retry_index)

    async def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        endpoint: str = "unknown",
        max_retries: int | None = None,
    ) -> Any:
        """
        Perform a GET request and return the decoded JSON body.

        Args:
            path: API path relative to the base URL.
            params: Query parameters.
            endpoint: Low-cardinality label for metrics and logs.
            max_retries: Per-call override of the client's retry budget.

        Raises:
            UpstreamNotFoundError: 404 from the API.
            UpstreamTransientError: Transient failures outlived the retry budget.
            UpstreamError: Any other error status or an undecodable body.
            ConnectivityError: The host could not be reached.
        """
        if not self._client:
            raise RuntimeError("RiotHTTPClient not started. Call start() first.")

        retries = self._max_retries if max_retries is None else max_retries
        last_status: Optional[int] = None
        attempts = retries + 1

        for attempt in range(attempts):
            start_time = time.perf_counter()
            retry_after: Optional[float] = None
            try:
                resp = await self._client.get(path, params=params)
            except httpx.TimeoutException:
                last_status = None
                UPSTREAM_REQUESTS.labels(endpoint=endpoint, status="timeout").inc()
                logger.warning("upstream_timeout", endpoint=endpoint, path=path, attempt=attempt + 1)
            except httpx.TransportError as exc:
                UPSTREAM_REQUESTS.labels(endpoint=endpoint, status="unreachable").inc()
                raise ConnectivityError(f"{self._base_url} unreachable: {exc}") from exc
            else:
                UPSTREAM_LATENCY.labels(endpoint=endpoint).observe(time.perf_counter() - start_time)
                UPSTREAM_REQUESTS.labels(endpoint=endpoint, status=str(resp.status_code)).inc()

                if resp.status_code in TRANSIENT_STATUSES:
                    last_status = resp.status_code
                    retry_after = _retry_after(resp)
                    logger.warning(
                        "upstream_unavailable",
                        endpoint=endpoint,
                        path=path,
                        status=resp.status_code,
                        attempt=attempt + 1,
                    )
                elif resp.status_code == 404:
                    raise UpstreamNotFoundError(
                        f"Not found: {path}", status_code=404, path=path
                    )
                elif resp.is_error:
                    logger.error(
                        "upstream_http_error",
                        endpoint=endpoint,
                        path=path,
                        status=resp.status_code,
                    )
                    raise UpstreamError(
                        f"Riot API returned {resp.status_code} for {path}",
                        status_code=resp.status_code,
                        path=path,
                    )
                else:
                    try:
                        return resp.json()
                    except ValueError as exc:
                        raise UpstreamError(
                            f"Invalid JSON from {path}", status_code=resp.status_code, path=path
                        ) from exc

            if attempt == retries:
                break

            delay = self.backoff_delay(attempt)
            if retry_after is not None:
                delay = max(delay, retry_after)
            UPSTREAM_RETRIES.labels(endpoint=endpoint).inc()
            logger.info("upstream_retry_scheduled", endpoint=endpoint, retry=attempt + 1, delay_s=delay)
            await self._sleep(delay)

        raise UpstreamTransientError(
            f"Riot API unavailable for {path} after {attempts} attempts",
            status_code=last_status,
            path=path,
            attempts=attempts,
        )
