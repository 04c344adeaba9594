# tests/fakes.py
from __future__ import annotations

from typing import Any, Mapping, Sequence

from flatwatch.adapters.clients.pik_api import SourceHealth
from flatwatch.domain.types import ListingCriteria, ProjectInfo, RawListing
from flatwatch.integrations.base import DeliveryResult, EmailMessageSpec


def flat(ext_id: int, price: int, *, rooms: int = 1, area: float = 40.0, floor: int = 5, **extra: Any) -> dict[str, Any]:
    """API-shaped flat payload."""
    payload = {"id": ext_id, "price": price, "rooms": rooms, "area": area, "floor": floor}
    payload.update(extra)
    return payload


class FakeMailer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[EmailMessageSpec] = []

    async def send(self, message: EmailMessageSpec) -> DeliveryResult:
        if self.fail:
            return DeliveryResult(ok=False, error="smtp down")
        self.sent.append(message)
        return DeliveryResult(ok=True)


class FakeSource:
    """In-memory SourceClient: flats keyed by project external id."""

    def __init__(self, projects: Sequence[ProjectInfo] = (), flats: Mapping[int, list[dict[str, Any]]] | None = None) -> None:
        self.projects = list(projects)
        self.flats: dict[int, list[dict[str, Any]]] = dict(flats or {})
        self.complete = True
        self.raise_for: set[int] = set()
        self.calls: list[tuple[list[int], ListingCriteria | None]] = []
        self.health = SourceHealth()

    async def fetch_projects(self) -> list[ProjectInfo]:
        self.health.requests += 1
        return list(self.projects)

    async def fetch_listings(
        self,
        project_external_ids: Sequence[int],
        criteria: ListingCriteria | None = None,
        *,
        slugs: Mapping[int, str] | None = None,
    ) -> list[RawListing]:
        ids = list(project_external_ids)
        self.calls.append((ids, criteria))
        if self.raise_for.intersection(ids):
            raise RuntimeError("upstream exploded")
        self.health.last_fetch_complete = self.complete
        if not self.complete:
            self.health.on_failure("HTTP 503")
        out: list[RawListing] = []
        for ext_id in ids:
            for payload in self.flats.get(ext_id, []):
                out.append(RawListing(payload=dict(payload), project_external_id=ext_id))
        return out
