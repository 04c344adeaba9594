# flatwatch/entrypoints/api/routers/listings.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session
from ....adapters.repos.listings import ListingQuery, ListingRepository
from ....adapters.repos.notifications import NotificationRepository
from ....models import JobRunStatus
from ....schemas import ListingDetail, ListingOut, ListingPageOut, NotificationOut, OrderBy, PriceHistoryOut, StatsOut
from ....service_layer.jobruns import latest_job
from ....service_layer.use_cases.ingestion import JOB_NAME

router = APIRouter(tags=["listings"])


def _parse_ids(raw: str | None) -> tuple[int, ...]:
    if not raw:
        return ()
    out: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise HTTPException(status_code=400, detail=f"Bad project id: {part!r}")
        out.append(int(part))
    return tuple(out)


@router.get("/listings", response_model=ListingPageOut)
async def list_listings(
    projects: str | None = Query(None, description="Comma-separated project external ids"),
    rooms_min: int | None = Query(None, ge=0),
    rooms_max: int | None = Query(None, ge=0),
    price_min: int | None = Query(None, ge=0),
    price_max: int | None = Query(None, ge=0),
    area_min: float | None = Query(None, ge=0),
    area_max: float | None = Query(None, ge=0),
    floor_min: int | None = Query(None),
    floor_max: int | None = Query(None),
    order_by: OrderBy = Query("price"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> ListingPageOut:
    q = ListingQuery(
        project_ids=_parse_ids(projects),
        rooms_min=rooms_min,
        rooms_max=rooms_max,
        price_min=price_min,
        price_max=price_max,
        area_min=area_min,
        area_max=area_max,
        floor_min=floor_min,
        floor_max=floor_max,
        order_by=order_by,
    )
    page = await ListingRepository(session).query_listings(q, limit=limit, offset=offset)
    return ListingPageOut(
        items=[ListingOut.model_validate(x) for x in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/listings/{listing_id}", response_model=ListingDetail)
async def get_listing(listing_id: int, session: AsyncSession = Depends(get_session)) -> ListingDetail:
    repo = ListingRepository(session)
    listing = await repo.get(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    history = await repo.price_history(listing_id)
    sent = await NotificationRepository(session).for_listing(listing_id)

    out = ListingDetail.model_validate(listing)
    out.price_history = [PriceHistoryOut.model_validate(h) for h in history]
    out.notifications = [NotificationOut.model_validate(n) for n in sent]
    return out


@router.get("/stats", response_model=StatsOut)
async def stats(session: AsyncSession = Depends(get_session)) -> StatsOut:
    counts = await ListingRepository(session).stats()
    last = await latest_job(session, JOB_NAME, status=JobRunStatus.success)
    return StatsOut(**counts, last_check=last.finished_at if last else None)
