# flatwatch/adapters/repos/listings.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.types import ListingData, UpsertResult
from ...models import Listing, ListingStatus, PriceHistoryEntry, Project, Subscription, utcnow

# fields overwritten on every sighting
_MUTABLE_FIELDS = (
    "rooms",
    "is_studio",
    "area",
    "floor",
    "floors_total",
    "price",
    "price_per_area",
    "address",
    "bulk_id",
    "bulk_name",
    "section",
    "finishing",
    "settlement_date",
    "discount",
    "url",
)

ORDERINGS: dict[str, Any] = {
    "price": Listing.price.asc(),
    "-price": Listing.price.desc(),
    "area": Listing.area.asc(),
    "-area": Listing.area.desc(),
    "price_per_area": Listing.price_per_area.asc(),
    "-price_per_area": Listing.price_per_area.desc(),
    "rooms": Listing.rooms.asc(),
    "floor": Listing.floor.asc(),
    "-first_seen_at": Listing.first_seen_at.desc(),
}


@dataclass(frozen=True)
class ListingQuery:
    project_ids: tuple[int, ...] = ()  # project external ids
    rooms_min: int | None = None
    rooms_max: int | None = None
    price_min: int | None = None
    price_max: int | None = None
    area_min: float | None = None
    area_max: float | None = None
    floor_min: int | None = None
    floor_max: int | None = None
    order_by: str = "price"


@dataclass
class ListingPage:
    items: list[Listing] = field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0


def _predicates(q: ListingQuery) -> list[ColumnElement[bool]]:
    """Single source of the WHERE clause for both the page and its count."""
    where: list[ColumnElement[bool]] = [Listing.status == ListingStatus.active]
    if q.project_ids:
        where.append(Listing.project_external_id.in_(list(q.project_ids)))

    for col, lo, hi in (
        (Listing.rooms, q.rooms_min, q.rooms_max),
        (Listing.price, q.price_min, q.price_max),
        (Listing.area, q.area_min, q.area_max),
        (Listing.floor, q.floor_min, q.floor_max),
    ):
        if lo is not None:
            where.append(col >= lo)
        if hi is not None:
            where.append(col <= hi)
    return where


class ListingRepository:
    """
    Owns the Listing / PriceHistoryEntry lifecycle. Flushes, never commits:
    the caller controls transaction boundaries.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, listing_id: int) -> Listing | None:
        return await self.session.get(Listing, listing_id)

    async def get_by_external_id(self, external_id: int) -> Listing | None:
        q = select(Listing).where(Listing.external_id == int(external_id))
        return (await self.session.execute(q)).scalars().first()

    async def _append_history(self, listing: Listing, now: datetime) -> None:
        self.session.add(
            PriceHistoryEntry(
                listing_id=listing.id,
                price=listing.price,
                price_per_area=listing.price_per_area,
                recorded_at=now,
            )
        )

    async def upsert_listing(self, data: ListingData, project_id: int | None) -> UpsertResult:
        """
        Insert-or-update keyed by external id.

        - absent: insert active, first/last seen = now, one history row
        - present, price differs: history row with the new price, then overwrite
        - present and sold: reactivate, relisted_at = now, fresh history row
        """
        now = utcnow()
        existing = await self.get_by_external_id(data.external_id)

        if existing is None:
            listing = Listing(
                external_id=data.external_id,
                project_id=project_id,
                project_external_id=data.project_external_id,
                status=ListingStatus.active,
                first_seen_at=now,
                last_seen_at=now,
            )
            for name in _MUTABLE_FIELDS:
                setattr(listing, name, getattr(data, name))
            self.session.add(listing)
            await self.session.flush()
            await self._append_history(listing, now)
            await self.session.flush()
            return UpsertResult(is_new=True, price_changed=False, stored=listing)

        old_price = existing.price
        price_changed = int(old_price) != int(data.price)
        reactivated = existing.status == ListingStatus.sold

        for name in _MUTABLE_FIELDS:
            setattr(existing, name, getattr(data, name))
        if project_id is not None:
            existing.project_id = project_id
        if data.project_external_id is not None:
            existing.project_external_id = data.project_external_id
        existing.status = ListingStatus.active
        existing.last_seen_at = now
        if reactivated:
            existing.relisted_at = now

        if price_changed or reactivated:
            # new price (or a fresh sighting) goes into the audit trail
            await self._append_history(existing, now)

        await self.session.flush()
        return UpsertResult(
            is_new=False,
            price_changed=price_changed,
            stored=existing,
            reactivated=reactivated,
            old_price=old_price,
        )

    async def mark_sold_except(self, active_external_ids: Iterable[int], project_id: int) -> int:
        """
        Within one project, every active listing not in `active_external_ids`
        becomes sold. An empty set sells the whole project.
        """
        seen = sorted({int(x) for x in active_external_ids})
        q = select(Listing).where(Listing.project_id == project_id, Listing.status == ListingStatus.active)
        if seen:
            q = q.where(Listing.external_id.not_in(seen))
        gone = (await self.session.execute(q)).scalars().all()

        now = utcnow()
        for listing in gone:
            listing.status = ListingStatus.sold
            listing.last_seen_at = now
        await self.session.flush()
        return len(gone)

    async def query_listings(self, query: ListingQuery, *, limit: int = 50, offset: int = 0) -> ListingPage:
        where = _predicates(query)
        order = ORDERINGS.get(query.order_by)
        if order is None:
            raise ValueError(f"unsupported order_by={query.order_by!r}")

        total = (await self.session.execute(select(func.count()).select_from(Listing).where(*where))).scalar_one()
        rows = (
            await self.session.execute(
                select(Listing).where(*where).order_by(order, Listing.id.asc()).limit(limit).offset(offset)
            )
        ).scalars().all()

        return ListingPage(items=list(rows), total=int(total), limit=limit, offset=offset)

    async def price_history(self, listing_id: int) -> list[PriceHistoryEntry]:
        q = select(PriceHistoryEntry).where(PriceHistoryEntry.listing_id == listing_id).order_by(PriceHistoryEntry.id.asc())
        return list((await self.session.execute(q)).scalars().all())

    async def announced_since(self, since: datetime) -> list[Listing]:
        """Active listings whose current active period (first seen or relisted) began at/after `since`."""
        started = func.coalesce(Listing.relisted_at, Listing.first_seen_at)
        q = (
            select(Listing)
            .where(Listing.status == ListingStatus.active, started >= since)
            .order_by(Listing.id.asc())
        )
        return list((await self.session.execute(q)).scalars().all())

    async def stats(self) -> dict[str, int]:
        async def _count(stmt) -> int:
            return int((await self.session.execute(stmt)).scalar_one())

        day_start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)

        return {
            "active_listings": await _count(
                select(func.count()).select_from(Listing).where(Listing.status == ListingStatus.active)
            ),
            "total_projects": await _count(select(func.count()).select_from(Project)),
            "tracked_projects": await _count(
                select(func.count()).select_from(Project).where(Project.is_tracked.is_(True))
            ),
            "active_subscriptions": await _count(
                select(func.count()).select_from(Subscription).where(Subscription.is_active.is_(True))
            ),
            "price_changes_today": await _count(
                select(func.count())
                .select_from(PriceHistoryEntry)
                .where(PriceHistoryEntry.recorded_at >= day_start, PriceHistoryEntry.recorded_at < day_end)
            ),
            "new_listings_today": await _count(
                select(func.count())
                .select_from(Listing)
                .where(Listing.first_seen_at >= day_start, Listing.first_seen_at < day_end)
            ),
        }
