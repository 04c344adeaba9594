# flatwatch/adapters/ingestion/stub_json.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from ...config import Settings
from ...domain.matching import criteria_allows
from ...domain.normalize import normalize_listing
from ...domain.parsing import to_int, to_str
from ...domain.types import ListingCriteria, ProjectInfo, RawListing
from ..clients.pik_api import SourceHealth

log = logging.getLogger(__name__)


def _as_list_of_dicts(payload: Any) -> list[dict[str, Any]]:
    """
    Accept either:
      - list[dict]
      - {"flats": list[dict]} / {"blocks": list[dict]} (API-like)
    """
    if isinstance(payload, list):
        return [x for x in payload if isinstance(x, dict)]
    if isinstance(payload, dict):
        for key in ("flats", "blocks", "items"):
            v = payload.get(key)
            if isinstance(v, list):
                return [x for x in v if isinstance(x, dict)]
    return []


@dataclass
class StubJsonSource:
    """
    Offline source for development/testing.

    Reads fixtures:
      <fixtures_dir>/projects.json       list of API-like blocks
      <fixtures_dir>/<project_id>.json   list of API-like flats

    A missing project fixture means "no listings" and still counts as a complete poll.
    """

    fixtures_dir: Path
    site_url: str = ""
    health: SourceHealth = field(default_factory=SourceHealth)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StubJsonSource":
        return cls(fixtures_dir=Path(settings.STUB_FIXTURES_DIR), site_url=settings.PIK_SITE_URL)

    def _read(self, path: Path) -> Any:
        self.health.requests += 1
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.health.on_failure(f"{type(e).__name__}: {e}")
            log.warning("bad fixture %s: %s", path, e)
            return None

    async def fetch_projects(self) -> list[ProjectInfo]:
        path = self.fixtures_dir / "projects.json"
        if not path.exists():
            return []
        out: list[ProjectInfo] = []
        for item in _as_list_of_dicts(self._read(path)):
            ext_id = to_int(item.get("id"))
            if ext_id is None:
                continue
            out.append(
                ProjectInfo(
                    external_id=ext_id,
                    name=to_str(item.get("name")) or f"Project #{ext_id}",
                    slug=to_str(item.get("slug") or item.get("url")),
                    url=to_str(item.get("path") or item.get("url")),
                    flats_count=to_int(item.get("count")),
                )
            )
        return sorted(out, key=lambda p: p.name)

    async def fetch_listings(
        self,
        project_external_ids: Sequence[int],
        criteria: ListingCriteria | None = None,
        *,
        slugs: Mapping[int, str] | None = None,
    ) -> list[RawListing]:
        self.health.last_fetch_complete = True
        defaults = {"site_url": self.site_url}
        out: list[RawListing] = []

        for ext_id in project_external_ids:
            path = self.fixtures_dir / f"{ext_id}.json"
            if not path.exists():
                continue
            raw = self._read(path)
            if raw is None:
                self.health.last_fetch_complete = False
                continue
            for item in _as_list_of_dicts(raw):
                rl = RawListing(payload=item, project_external_id=int(ext_id))
                data = normalize_listing(rl, defaults)
                if data is None or not criteria_allows(data, criteria):
                    continue
                out.append(rl)

        return out
