# flatwatch/adapters/ingestion/base.py
from __future__ import annotations

from typing import Mapping, Protocol, Sequence

from ...domain.types import ListingCriteria, ProjectInfo, RawListing
from ..clients.pik_api import SourceHealth


class SourceClient(Protocol):
    """
    Upstream listing source. Implementations never raise on transport or shape
    problems: they return what they could get and flag `health.last_fetch_complete`.
    """

    health: SourceHealth

    async def fetch_projects(self) -> list[ProjectInfo]:
        raise NotImplementedError

    async def fetch_listings(
        self,
        project_external_ids: Sequence[int],
        criteria: ListingCriteria | None = None,
        *,
        slugs: Mapping[int, str] | None = None,
    ) -> list[RawListing]:
        raise NotImplementedError
