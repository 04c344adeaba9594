from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from typing import Literal

from .models import JobRunStatus, ListingStatus, NotificationKind

OrderBy = Literal[
    "price", "-price", "area", "-area", "price_per_area", "-price_per_area", "rooms", "floor", "-first_seen_at"
]


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: int
    name: str
    slug: str | None = None
    url: str | None = None
    flats_count: int | None = None
    price_min: int | None = None
    is_tracked: bool
    updated_at: datetime


class TrackRequest(BaseModel):
    tracked: bool = True


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: int
    project_id: int | None = None
    project_external_id: int | None = None

    rooms: int | None = None
    is_studio: bool
    area: float | None = None
    floor: int | None = None
    floors_total: int | None = None

    price: int
    price_per_area: int | None = None

    address: str | None = None
    bulk_name: str | None = None
    section: str | None = None
    finishing: str | None = None
    settlement_date: str | None = None
    discount: float | None = None
    url: str | None = None

    status: ListingStatus
    first_seen_at: datetime
    last_seen_at: datetime
    relisted_at: datetime | None = None


class PriceHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    price: int
    price_per_area: int | None = None
    recorded_at: datetime


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subscription_id: int | None = None
    kind: NotificationKind
    message: str | None = None
    sent_at: datetime


class ListingDetail(ListingOut):
    price_history: list[PriceHistoryOut] = Field(default_factory=list)
    notifications: list[NotificationOut] = Field(default_factory=list)


class ListingPageOut(BaseModel):
    items: list[ListingOut]
    total: int = Field(..., ge=0)
    limit: int
    offset: int


class _Bounds(BaseModel):
    rooms_min: int | None = Field(None, ge=0)
    rooms_max: int | None = Field(None, ge=0)
    price_min: int | None = Field(None, ge=0)
    price_max: int | None = Field(None, ge=0)
    area_min: float | None = Field(None, ge=0)
    area_max: float | None = Field(None, ge=0)
    floor_min: int | None = None
    floor_max: int | None = None

    @model_validator(mode="after")
    def _check_ranges(self):
        for name in ("rooms", "price", "area", "floor"):
            lo, hi = getattr(self, f"{name}_min"), getattr(self, f"{name}_max")
            if lo is not None and hi is not None and lo > hi:
                raise ValueError(f"{name}_min must not exceed {name}_max")
        return self


class SubscriptionCreate(_Bounds):
    name: str = Field(..., min_length=1, max_length=255)
    project_ids: list[int] = Field(default_factory=list)
    is_active: bool = True
    notify_email: str | None = None


class SubscriptionUpdate(_Bounds):
    name: str | None = Field(None, min_length=1, max_length=255)
    project_ids: list[int] | None = None
    is_active: bool | None = None
    notify_email: str | None = None


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    project_ids: list[int]
    rooms_min: int | None = None
    rooms_max: int | None = None
    price_min: int | None = None
    price_max: int | None = None
    area_min: float | None = None
    area_max: float | None = None
    floor_min: int | None = None
    floor_max: int | None = None
    is_active: bool
    notify_email: str | None = None
    created_at: datetime


class IngestRequest(BaseModel):
    rooms: list[int] = Field(default_factory=list)
    price_min: int | None = Field(None, ge=0)
    price_max: int | None = Field(None, ge=0)
    area_min: float | None = Field(None, ge=0)
    area_max: float | None = Field(None, ge=0)


class DispatchResult(BaseModel):
    sent: int
    failed: int
    notified: int
    skipped_duplicates: int
    errors: list[str]


class CycleResult(BaseModel):
    fetched: int = Field(..., ge=0)
    new: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    sold: int = Field(..., ge=0)
    dropped: int = Field(..., ge=0)
    errors: list[str]
    skipped: bool
    drop_reasons: dict[str, int]
    notifications: DispatchResult


class SyncResultOut(BaseModel):
    fetched: int
    created: int
    updated: int


class JobRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_name: str
    status: JobRunStatus
    started_at: datetime
    finished_at: datetime | None = None
    error: str | None = None
    summary_json: str | None = None


class StatsOut(BaseModel):
    active_listings: int
    total_projects: int
    tracked_projects: int
    active_subscriptions: int
    price_changes_today: int
    new_listings_today: int
    last_check: datetime | None = None


class SourceCheckOut(BaseModel):
    ok: bool
    projects: int
    latency_ms: int
    requests: int
    failures: int
    last_error: str | None = None
