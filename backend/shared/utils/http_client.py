"""
Async HTTP client wrapper for upstream contest and video-search APIs.
Includes retry logic, timeout management, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import ADAPTER_LATENCY, ADAPTER_REQUESTS

logger = get_logger(__name__)


class UpstreamHTTPClient:
    """
    Async HTTP client tailored for third-party contest feeds.
    Handles timeouts, retries with linear backoff, and records metrics per request.
    """

    def __init__(
        self,
        upstream: str,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        max_retries: int | None = None,
        backoff_s: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._upstream = upstream
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.adapter_timeout_s
        self._max_retries = max(1, max_retries or settings.adapter_max_retries)
        self._backoff_s = backoff_s
        self._default_headers = {"User-Agent": "contest-tracker/1.0", **(headers or {})}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def upstream(self) -> str:
        return self._upstream

    @property
    def timeout_s(self) -> float:
        return self._timeout

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        return await self.request("GET", path, params=params)

    async def post(
        self,
        path: str,
        json: Any = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self.request("POST", path, json=json, data=data, headers=headers)

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform a request with retry, metrics, and structured logging.

        Raises:
            httpx.HTTPStatusError: On non-retryable HTTP errors.
            httpx.TimeoutException: If all retries are exhausted.
        """
        if not self._client:
            raise RuntimeError("UpstreamHTTPClient not started. Call start() first.")

        last_exc: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            start_time = time.perf_counter()
            status = "unknown"
            try:
                resp = await self._client.request(
                    method, path, params=params, json=json, data=data, headers=headers
                )
                status = str(resp.status_code)

                if resp.status_code == 429 and attempt < self._max_retries:
                    logger.warning(
                        "upstream_rate_limited",
                        upstream=self._upstream,
                        path=path,
                        attempt=attempt,
                    )
                    retry_after = float(resp.headers.get("Retry-After", "2"))
                    await asyncio.sleep(min(retry_after, 10.0))
                    continue

                if resp.status_code >= 500 and attempt < self._max_retries:
                    logger.warning(
                        "upstream_server_error",
                        upstream=self._upstream,
                        path=path,
                        status=resp.status_code,
                        attempt=attempt,
                    )
                    await asyncio.sleep(self._backoff_s * attempt)
                    continue

                resp.raise_for_status()
                logger.debug(
                    "upstream_request_success",
                    upstream=self._upstream,
                    path=path,
                    status=resp.status_code,
                    latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                return resp

            except httpx.TimeoutException as exc:
                status = "timeout"
                last_exc = exc
                logger.warning("upstream_timeout", upstream=self._upstream, path=path, attempt=attempt)
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff_s * attempt)
                    continue

            except httpx.HTTPStatusError as exc:
                status = str(exc.response.status_code)
                last_exc = exc
                logger.error(
                    "upstream_http_error",
                    upstream=self._upstream,
                    path=path,
                    status=exc.response.status_code,
                    attempt=attempt,
                )
                raise

            except httpx.HTTPError as exc:
                status = "error"
                last_exc = exc
                logger.warning(
                    "upstream_request_error",
                    upstream=self._upstream,
                    path=path,
                    error=str(exc),
                    attempt=attempt,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff_s * attempt)
                    continue

            finally:
                ADAPTER_REQUESTS.labels(upstream=self._upstream, status=status).inc()
                ADAPTER_LATENCY.labels(upstream=self._upstream).observe(time.perf_counter() - start_time)

        if last_exc:
            raise last_exc
        raise RuntimeError(f"Upstream request failed after {self._max_retries} attempts")
