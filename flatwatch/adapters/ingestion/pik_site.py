# flatwatch/adapters/ingestion/pik_site.py
from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Sequence
from urllib.parse import urlencode

import httpx
from bs4 import BeautifulSoup

from ...config import Settings
from ...domain.matching import criteria_allows
from ...domain.normalize import normalize_listing
from ...domain.parsing import get_nested, to_int, to_str
from ...domain.types import ListingCriteria, ProjectInfo, RawListing
from ..clients.http_resilience import ResilientHttp
from ..clients.pik_api import SourceHealth

log = logging.getLogger(__name__)

FILTERED_FLATS_PATH = "props.pageProps.initialState.searchService.filteredFlats.data"

ROOM_PATHS = {0: "studio", 1: "one-room", 2: "two-room", 3: "three-room"}


def extract_next_data(html: str) -> dict[str, Any] | None:
    """Pull the JSON payload out of <script id="__NEXT_DATA__">."""
    soup = BeautifulSoup(html, "lxml")
    tag = soup.find("script", id="__NEXT_DATA__")
    if tag is None or not tag.string:
        return None
    try:
        data = json.loads(tag.string)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class PikSiteSource:
    """
    SourceClient over the public site's search pages.

    Richer per-flat data than the API, but needs each project's slug and
    pages through 20 flats at a time. The site has no project catalogue
    endpoint, so fetch_projects() resolves the configured SITE_PROJECT_SLUGS
    one by one through fetch_block_info().
    """

    def __init__(self, settings: Settings, *, http: ResilientHttp | None = None) -> None:
        self.site_url = (settings.PIK_SITE_URL or "").rstrip("/")
        self.max_pages = max(1, int(settings.SITE_MAX_PAGES))
        self.project_slugs = [s.strip().strip("/") for s in (settings.SITE_PROJECT_SLUGS or "").split(",") if s.strip()]
        self._http = http or ResilientHttp(settings)
        self.health = SourceHealth()

    @classmethod
    def from_settings(cls, settings: Settings) -> "PikSiteSource":
        return cls(settings)

    def build_search_url(self, slug: str, criteria: ListingCriteria | None = None) -> str:
        url = f"{self.site_url}/search/{slug.strip('/')}"
        query: dict[str, Any] = {}
        if criteria is not None:
            # the site encodes a single room bucket in the path
            if len(criteria.rooms) == 1 and criteria.rooms[0] in ROOM_PATHS:
                url += "/" + ROOM_PATHS[criteria.rooms[0]]
            if criteria.price_min is not None:
                query["priceFrom"] = criteria.price_min
            if criteria.price_max is not None:
                query["priceTo"] = criteria.price_max
            if criteria.area_min is not None:
                query["areaFrom"] = criteria.area_min
            if criteria.area_max is not None:
                query["areaTo"] = criteria.area_max
        if query:
            url += "?" + urlencode(query)
        return url

    async def _fetch_page_data(self, url: str) -> dict[str, Any] | None:
        self.health.requests += 1
        try:
            resp = await self._http.request(
                "GET",
                url,
                headers={"Accept": "text/html,application/xhtml+xml", "Accept-Language": "ru-RU,ru;q=0.9"},
            )
        except httpx.HTTPError as e:
            self.health.on_failure(f"{type(e).__name__}: {e}")
            log.warning("site fetch failed for %s: %r", url, e)
            return None

        data = extract_next_data(resp.text)
        if data is None:
            self.health.on_failure("missing __NEXT_DATA__")
            log.warning("no __NEXT_DATA__ payload in %s", url)
        return data

    async def fetch_projects(self) -> list[ProjectInfo]:
        out: list[ProjectInfo] = []
        for slug in self.project_slugs:
            info = await self.fetch_block_info(slug)
            if info is None:
                log.warning("could not resolve project slug %r", slug)
                continue
            out.append(info)
        return sorted(out, key=lambda p: p.name)

    async def fetch_block_info(self, slug: str) -> ProjectInfo | None:
        data = await self._fetch_page_data(f"{self.site_url}/{slug.strip('/')}")
        block = get_nested(data or {}, FILTERED_FLATS_PATH + ".block")
        ext_id = to_int(block.get("id")) if isinstance(block, dict) else None
        if ext_id is None:
            return None
        return ProjectInfo(
            external_id=ext_id,
            name=to_str(block.get("name")) or slug,
            slug=slug.strip("/"),
            url=f"/{slug.strip('/')}",
        )

    async def fetch_listings(
        self,
        project_external_ids: Sequence[int],
        criteria: ListingCriteria | None = None,
        *,
        slugs: Mapping[int, str] | None = None,
    ) -> list[RawListing]:
        self.health.last_fetch_complete = True
        slugs = slugs or {}
        out: list[RawListing] = []

        for ext_id in project_external_ids:
            slug = slugs.get(ext_id)
            if not slug:
                log.warning("project %s has no slug; the site source cannot poll it", ext_id)
                self.health.last_fetch_complete = False
                continue
            out.extend(await self._fetch_project(ext_id, slug, criteria))

        return out

    async def _fetch_project(self, ext_id: int, slug: str, criteria: ListingCriteria | None) -> list[RawListing]:
        base_url = self.build_search_url(slug, criteria)
        raws: list[RawListing] = []
        page, last_page = 1, 1

        while page <= last_page:
            sep = "&" if "?" in base_url else "?"
            url = base_url if page == 1 else f"{base_url}{sep}page={page}"

            search = get_nested(await self._fetch_page_data(url) or {}, FILTERED_FLATS_PATH)
            if not isinstance(search, dict):
                self.health.last_fetch_complete = False
                break

            last_page = to_int(search.get("lastPage")) or 1
            block = search.get("block") if isinstance(search.get("block"), dict) else {}
            block_id = to_int(block.get("id")) or ext_id
            for flat in search.get("flats") or []:
                if isinstance(flat, dict):
                    raws.append(RawListing(payload=flat, project_external_id=block_id, project_name=to_str(block.get("name"))))

            page += 1
            if page > self.max_pages:
                if page <= last_page:
                    self.health.last_fetch_complete = False
                    log.warning("project %s has more than %d result pages; stopping", ext_id, self.max_pages)
                break

        # the site does not always honour its own filters
        defaults = {"site_url": self.site_url}
        out: list[RawListing] = []
        for rl in raws:
            data = normalize_listing(rl, defaults)
            if data is not None and criteria_allows(data, criteria):
                out.append(rl)
        return out
