# flatwatch/models.py
from __future__ import annotations

import enum
import json
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .domain.parsing import to_int


def utcnow() -> datetime:
    # naive UTC, which is what SQLite round-trips
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


# -----------------------------
# Core enums
# -----------------------------
class ListingStatus(str, enum.Enum):
    active = "active"
    sold = "sold"


class NotificationKind(str, enum.Enum):
    new = "new"
    price_drop = "price_drop"
    price_increase = "price_increase"


class JobRunStatus(str, enum.Enum):
    running = "running"
    success = "success"
    failed = "failed"


# -----------------------------
# Models
# -----------------------------
class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[int] = mapped_column(Integer, unique=True, index=True)

    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    flats_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_min: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # only user action flips this; resyncs leave it alone
    is_tracked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        Index("ix_listings_project_status", "project_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[int] = mapped_column(Integer, unique=True, index=True)

    project_id: Mapped[int | None] = mapped_column(ForeignKey("projects.id"), nullable=True)
    project_external_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    rooms: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    is_studio: Mapped[bool] = mapped_column(Boolean, default=False)
    area: Mapped[float | None] = mapped_column(Float, nullable=True)
    floor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    floors_total: Mapped[int | None] = mapped_column(Integer, nullable=True)

    price: Mapped[int] = mapped_column(Integer, index=True)
    price_per_area: Mapped[int | None] = mapped_column(Integer, nullable=True)

    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    bulk_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bulk_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    section: Mapped[str | None] = mapped_column(String(64), nullable=True)
    finishing: Mapped[str | None] = mapped_column(String(128), nullable=True)
    settlement_date: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount: Mapped[float | None] = mapped_column(Float, nullable=True)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    status: Mapped[ListingStatus] = mapped_column(
        Enum(ListingStatus), default=ListingStatus.active, index=True
    )

    first_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    # start of the current active period after a sold -> active transition
    relisted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class PriceHistoryEntry(Base):
    """Append-only. Never updated or deleted."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"), index=True)

    price: Mapped[int] = mapped_column(Integer)
    price_per_area: Mapped[int | None] = mapped_column(Integer, nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))

    # JSON array of project external ids; empty means every project
    project_ids_json: Mapped[str] = mapped_column(Text, default="[]")

    rooms_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rooms_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    area_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    area_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    floor_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    floor_max: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    notify_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def project_ids(self) -> list[int]:
        try:
            raw = json.loads(self.project_ids_json or "[]")
        except ValueError:
            return []
        if not isinstance(raw, list):
            return []
        return [i for i in (to_int(x) for x in raw) if i is not None]

    @project_ids.setter
    def project_ids(self, value: list[int] | None) -> None:
        ids = {i for i in (to_int(x) for x in (value or [])) if i is not None}
        self.project_ids_json = json.dumps(sorted(ids))


class NotificationRecord(Base):
    """Append-only send log; the de-duplication source of truth."""

    __tablename__ = "notification_records"
    __table_args__ = (
        Index("ix_notification_lookup", "subscription_id", "listing_id", "kind"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL for the default-address price digest
    subscription_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"))

    kind: Mapped[NotificationKind] = mapped_column(Enum(NotificationKind))
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    sent_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class JobRun(Base):
    """
    Tracks job executions (ingestion cycles, project syncs).
    The latest successful cycle doubles as the "last check" timestamp.
    """
    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(80), index=True)

    status: Mapped[JobRunStatus] = mapped_column(Enum(JobRunStatus), default=JobRunStatus.running, index=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # store error message
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # optional metadata: {"trigger": "scheduler", "criteria": {...}}
    meta_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_json: Mapped[str | None] = mapped_column(Text, nullable=True)


class RunLock(Base):
    """Advisory lock row; one row per named job while it runs."""

    __tablename__ = "run_locks"

    name: Mapped[str] = mapped_column(String(80), primary_key=True)
    owner: Mapped[str] = mapped_column(String(80))
    acquired_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
