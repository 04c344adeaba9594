# flatwatch/adapters/clients/pik_api.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ...config import Settings
from .http_resilience import ResilientHttp

log = logging.getLogger(__name__)


@dataclass
class SourceHealth:
    requests: int = 0
    failures: int = 0
    last_error: str | None = None
    # False when the last fetch_listings() stopped early on an error or a drifted shape
    last_fetch_complete: bool = True

    def on_failure(self, err: str) -> None:
        self.failures += 1
        self.last_error = err


class PikApiClient:
    """
    Low-level HTTP client for the developer's JSON API.
    Returns decoded JSON (dict/list) or None; never raises past this boundary.
    """

    def __init__(self, settings: Settings, *, http: ResilientHttp | None = None) -> None:
        self._base_url = (settings.PIK_API_BASE or "").rstrip("/")
        self._version = (settings.PIK_API_VERSION or "v2").strip("/")
        self.site_url = (settings.PIK_SITE_URL or "").rstrip("/")
        self._http = http or ResilientHttp(settings)
        self.health = SourceHealth()

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Accept-Language": "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7",
            "Origin": self.site_url,
            "Referer": f"{self.site_url}/",
        }

    def build_url(self, endpoint: str, version: str | None = None) -> str:
        return f"{self._base_url}/{version or self._version}/{endpoint.lstrip('/')}"

    async def get_json(self, endpoint: str, params: dict[str, Any] | None = None, *, version: str | None = None) -> Any | None:
        url = self.build_url(endpoint, version)
        self.health.requests += 1
        try:
            resp = await self._http.request("GET", url, headers=self._headers(), params=params)
        except httpx.HTTPStatusError as e:
            self.health.on_failure(f"HTTP {e.response.status_code}")
            log.warning("upstream HTTP %s for %s params=%s", e.response.status_code, url, params)
            return None
        except httpx.HTTPError as e:
            self.health.on_failure(f"{type(e).__name__}: {e}")
            log.warning("upstream transport error for %s: %r", url, e)
            return None

        if resp.status_code != 200:
            self.health.on_failure(f"HTTP {resp.status_code}")
            log.warning("upstream returned %s for %s", resp.status_code, url)
            return None

        try:
            return resp.json()
        except ValueError as e:
            self.health.on_failure(f"invalid_json: {e}")
            log.warning("upstream returned invalid JSON for %s: %s", url, e)
            return None
