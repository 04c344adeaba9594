# flatwatch/adapters/ingestion/pik_api.py
from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from ...config import Settings
from ...domain.matching import OPEN_ROOM_BUCKET, criteria_allows
from ...domain.normalize import normalize_listing, reject_reason
from ...domain.parsing import to_int, to_str
from ...domain.types import ListingCriteria, ProjectInfo, RawListing
from ..clients.pik_api import PikApiClient

log = logging.getLogger(__name__)

# the API has no "N or more" rooms parameter, so bucket 3 is spelled out
_OPEN_BUCKET_EXPANSION = (3, 4, 5, 6)


def _extract_slug(path: str | None) -> str | None:
    if not path:
        return None
    return path.strip().lstrip("/") or None


def _server_rooms(rooms: Sequence[int]) -> list[int]:
    out: set[int] = set()
    for r in rooms:
        if r >= OPEN_ROOM_BUCKET:
            out.update(_OPEN_BUCKET_EXPANSION)
        else:
            out.add(int(r))
    return sorted(out)


def _project_from_block(item: dict[str, Any]) -> ProjectInfo | None:
    ext_id = to_int(item.get("id"))
    name = to_str(item.get("name"))
    if ext_id is None or not name:
        return None
    path = to_str(item.get("path"))
    return ProjectInfo(
        external_id=ext_id,
        name=name,
        slug=to_str(item.get("url")) or _extract_slug(path),
        url=path,
        guid=to_str(item.get("guid")),
        flats_count=to_int(item.get("count")),
        price_min=to_int(item.get("priceMin") or item.get("price_min")),
    )


class PikApiSource:
    """
    SourceClient over the developer's JSON API.

    - projects: aggregate /filter endpoint asking for every block at once,
      legacy /block list when the aggregate shape is missing
    - listings: one combined /filter request for all projects, paginated by
      flatOffset/flatLimit until a short page or the offset safety cap
    """

    def __init__(self, settings: Settings, *, client: PikApiClient | None = None) -> None:
        self.client = client or PikApiClient(settings)
        self.health = self.client.health
        self.page_size = max(1, int(settings.LISTINGS_PAGE_SIZE))
        self.max_offset = int(settings.LISTINGS_MAX_OFFSET)
        self.block_limit = int(settings.PROJECTS_BLOCK_LIMIT)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PikApiSource":
        return cls(settings)

    # -------------------------
    # Projects
    # -------------------------

    async def fetch_projects(self) -> list[ProjectInfo]:
        # blockLimit defaults to 5 upstream; ask for all of them in one call
        data = await self.client.get_json(
            "filter", {"type": 1, "flatLimit": 0, "blockLimit": self.block_limit}
        )
        if not isinstance(data, dict) or not isinstance(data.get("blocks"), list):
            log.info("aggregate project endpoint returned no blocks; using legacy endpoint")
            return await self._fetch_projects_legacy()

        projects: list[ProjectInfo] = []
        for item in data["blocks"]:
            if not isinstance(item, dict):
                continue
            # only projects with flats for sale
            if (to_int(item.get("count")) or 0) <= 0:
                continue
            p = _project_from_block(item)
            if p is not None:
                projects.append(p)

        projects.sort(key=lambda p: p.name)
        return projects

    async def _fetch_projects_legacy(self) -> list[ProjectInfo]:
        data = await self.client.get_json("block")
        if not isinstance(data, list):
            return []

        projects: list[ProjectInfo] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            ext_id = to_int(item.get("id"))
            if ext_id is None:
                continue
            url = to_str(item.get("url"))
            projects.append(
                ProjectInfo(
                    external_id=ext_id,
                    name=to_str(item.get("name")) or f"Project #{ext_id}",
                    slug=_extract_slug(url),
                    url=url,
                    guid=to_str(item.get("guid")),
                )
            )
        return projects

    # -------------------------
    # Listings
    # -------------------------

    def _base_params(self, project_external_ids: Sequence[int], criteria: ListingCriteria | None) -> dict[str, Any]:
        # NOTE: the API wants 'blocks' (plural); 'block' is silently ignored
        params: dict[str, Any] = {
            "type": 1,
            "blocks": ",".join(str(int(b)) for b in project_external_ids),
            "onlyFlats": 1,
        }
        if criteria is not None:
            if criteria.rooms:
                params["rooms"] = ",".join(str(r) for r in _server_rooms(criteria.rooms))
            if criteria.price_min is not None:
                params["priceMin"] = criteria.price_min
            if criteria.price_max is not None:
                params["priceMax"] = criteria.price_max
            # areaMin/areaMax make the API answer 500; area is filtered client side only
        return params

    async def fetch_listings(
        self,
        project_external_ids: Sequence[int],
        criteria: ListingCriteria | None = None,
        *,
        slugs: Mapping[int, str] | None = None,
    ) -> list[RawListing]:
        self.health.last_fetch_complete = True
        if not project_external_ids:
            return []

        base = self._base_params(project_external_ids, criteria)
        raws: list[RawListing] = []
        offset = 0

        while True:
            data = await self.client.get_json(
                "filter", {**base, "flatLimit": self.page_size, "flatOffset": offset}
            )
            if data is None:
                self.health.last_fetch_complete = False
                break
            blocks = data.get("blocks") if isinstance(data, dict) else None
            if not isinstance(blocks, list):
                self.health.last_fetch_complete = False
                self.health.on_failure("unexpected_shape: no 'blocks' list")
                log.warning("listings page at offset %d has no 'blocks' list; stopping", offset)
                break

            found = 0
            for block in blocks:
                if not isinstance(block, dict):
                    continue
                flats = block.get("flats") or []
                if not isinstance(flats, list):
                    continue
                found += len(flats)
                block_id = to_int(block.get("id"))
                block_name = to_str(block.get("name"))
                for item in flats:
                    if not isinstance(item, dict):
                        continue
                    raws.append(RawListing(payload=item, project_external_id=block_id, project_name=block_name))

            # short page => end of data
            if found < self.page_size:
                break

            offset += self.page_size
            if offset > self.max_offset:
                # truncated: what lies past the cap is unknown, not sold
                self.health.last_fetch_complete = False
                log.warning("listing pagination hit the offset cap (%d); stopping", self.max_offset)
                break

        return self._client_side_filter(raws, criteria)

    def _client_side_filter(self, raws: list[RawListing], criteria: ListingCriteria | None) -> list[RawListing]:
        """Drop unparseable records and re-apply criteria the upstream may have ignored."""
        defaults = {"site_url": self.client.site_url}
        out: list[RawListing] = []
        for rl in raws:
            data = normalize_listing(rl, defaults)
            if data is None:
                log.info("dropping unparseable upstream record: %s", reject_reason(rl.payload))
                continue
            if not criteria_allows(data, criteria):
                continue
            out.append(rl)
        return out
