from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ProjectInfo:
    """A project (residential complex) as the upstream describes it."""

    external_id: int
    name: str
    slug: str | None = None
    url: str | None = None
    guid: str | None = None
    flats_count: int | None = None
    price_min: int | None = None


@dataclass(frozen=True)
class RawListing:
    """One upstream flat record, untouched, plus what the enclosing page told us."""

    payload: dict[str, Any]
    project_external_id: int | None = None
    project_name: str | None = None


@dataclass(frozen=True)
class ListingData:
    """Canonical listing shape produced by the normalizer."""

    external_id: int
    price: int
    rooms: int | None = None
    is_studio: bool = False
    area: float | None = None
    floor: int | None = None
    floors_total: int | None = None
    price_per_area: int | None = None
    address: str | None = None
    bulk_id: int | None = None
    bulk_name: str | None = None
    section: str | None = None
    finishing: str | None = None
    settlement_date: str | None = None
    discount: float | None = None
    url: str | None = None
    project_external_id: int | None = None


@dataclass(frozen=True)
class ListingCriteria:
    """
    Fetch-time filters. rooms uses buckets: 0 studio, 1, 2, and 3 meaning "3 or more".
    """

    rooms: tuple[int, ...] = ()
    price_min: int | None = None
    price_max: int | None = None
    area_min: float | None = None
    area_max: float | None = None

    def is_empty(self) -> bool:
        return not self.rooms and all(
            v is None for v in (self.price_min, self.price_max, self.area_min, self.area_max)
        )

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["rooms"] = list(self.rooms)
        return d


@dataclass
class UpsertResult:
    is_new: bool
    price_changed: bool
    stored: Any  # models.Listing
    reactivated: bool = False
    old_price: int | None = None


@dataclass(frozen=True)
class PriceChange:
    listing: Any  # models.Listing
    old_price: int
    new_price: int
    changed_at: datetime

    @property
    def is_drop(self) -> bool:
        return self.new_price < self.old_price


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0
    notified: int = 0
    skipped_duplicates: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CycleReport:
    fetched: int = 0
    new: int = 0
    updated: int = 0
    sold: int = 0
    dropped: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: bool = False
    drop_reasons: dict[str, int] = field(default_factory=dict)
    notifications: DispatchReport = field(default_factory=DispatchReport)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
