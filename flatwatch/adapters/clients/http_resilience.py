# flatwatch/adapters/clients/http_resilience.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ...config import Settings

log = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class CircuitOpenError(httpx.HTTPError):
    pass


@dataclass
class _CircuitState:
    fails: int = 0
    opened_at: float | None = None


class ResilientHttp:
    """
    One instance per upstream. Holds its own circuit breaker and request pacing,
    so two clients never throttle each other.

    `transport` is injectable for tests (httpx.MockTransport).
    """

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout = httpx.Timeout(float(settings.HTTP_TIMEOUT_S))
        self.min_gap_s = max(0.0, float(settings.HTTP_REQUEST_DELAY_S))
        self.max_retries = max(0, int(settings.HTTP_MAX_RETRIES))
        self.backoff_base_s = float(settings.HTTP_BACKOFF_BASE_S)
        self.fail_threshold = int(settings.HTTP_CIRCUIT_FAIL_THRESHOLD)
        self.reset_s = float(settings.HTTP_CIRCUIT_RESET_S)
        self.user_agent = settings.HTTP_USER_AGENT
        self._transport = transport

        self._circuit = _CircuitState()
        self._rate_lock = asyncio.Lock()
        self._last_ts = 0.0

    # -------------------------
    # circuit breaker
    # -------------------------

    def _circuit_is_open(self, now: float) -> bool:
        if self._circuit.opened_at is None:
            return False
        if (now - self._circuit.opened_at) < self.reset_s:
            return True
        # half-open: let one request through
        self._circuit.opened_at = None
        return False

    def _on_success(self) -> None:
        self._circuit.fails = 0
        self._circuit.opened_at = None

    def _on_failure(self) -> None:
        self._circuit.fails += 1
        if self._circuit.fails >= self.fail_threshold:
            self._circuit.opened_at = time.monotonic()

    # -------------------------
    # pacing
    # -------------------------

    async def _rate_limit(self) -> None:
        """Minimum gap between consecutive requests from this instance."""
        if self.min_gap_s <= 0:
            return
        async with self._rate_lock:
            wait = (self._last_ts + self.min_gap_s) - time.monotonic()
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_ts = time.monotonic()

    def _client(self, headers: dict[str, str] | None) -> httpx.AsyncClient:
        merged = {"User-Agent": self.user_agent}
        merged.update(headers or {})
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=merged,
            transport=self._transport,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        """
        Send with retries on timeouts, network errors and 429/5xx.
        Raises httpx.HTTPError once retries are exhausted; callers decide how to degrade.
        """
        if self._circuit_is_open(time.monotonic()):
            raise CircuitOpenError(f"circuit_open: refusing external call to {url}")

        last_exc: Exception | None = None
        for attempt in range(self.max_retries + 1):
            await self._rate_limit()
            try:
                async with self._client(headers) as client:
                    resp = await client.request(method, url, params=params, json=json)

                if resp.status_code in RETRYABLE_STATUS:
                    raise httpx.HTTPStatusError(
                        f"retryable_status {resp.status_code}", request=resp.request, response=resp
                    )

                resp.raise_for_status()
                self._on_success()
                return resp
            except httpx.HTTPStatusError as e:
                last_exc = e
                self._on_failure()
                if e.response.status_code not in RETRYABLE_STATUS:
                    break
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exc = e
                self._on_failure()

            if attempt >= self.max_retries:
                break
            delay = min(5.0, self.backoff_base_s * (2**attempt))
            log.debug("retrying %s %s in %.2fs (attempt %d)", method, url, delay, attempt + 1)
            await asyncio.sleep(delay)

        if last_exc is None:
            raise httpx.HTTPError(f"no attempt made for {method} {url}")
        raise last_exc
