# flatwatch/entrypoints/api/routers/jobs.py
from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_cycle, get_session, require_api_key
from ....domain.types import ListingCriteria
from ....schemas import CycleResult, DispatchResult, IngestRequest, JobRunOut
from ....service_layer.jobruns import latest_job
from ....service_layer.use_cases.ingestion import JOB_NAME, IngestionCycle

router = APIRouter(tags=["jobs"])


@router.post("/jobs/ingest", response_model=CycleResult, dependencies=[Depends(require_api_key)])
async def jobs_ingest(
    body: IngestRequest | None = Body(default=None),
    cycle: IngestionCycle = Depends(get_cycle),
) -> CycleResult:
    """
    Run one ingestion cycle now. Optional filters narrow the poll; a filtered
    poll never marks anything sold.
    """
    criteria = None
    if body is not None:
        if body.price_min is not None and body.price_max is not None and body.price_min > body.price_max:
            raise HTTPException(status_code=400, detail="price_min must not exceed price_max")
        if body.area_min is not None and body.area_max is not None and body.area_min > body.area_max:
            raise HTTPException(status_code=400, detail="area_min must not exceed area_max")
        criteria = ListingCriteria(
            rooms=tuple(sorted(set(body.rooms))),
            price_min=body.price_min,
            price_max=body.price_max,
            area_min=body.area_min,
            area_max=body.area_max,
        )

    report = await cycle.run(criteria=criteria, trigger="api")
    return CycleResult(**report.as_dict())


@router.post("/jobs/notify/resend", response_model=DispatchResult, dependencies=[Depends(require_api_key)])
async def jobs_notify_resend(
    within_hours: float | None = Query(None, gt=0),
    cycle: IngestionCycle = Depends(get_cycle),
) -> DispatchResult:
    """Offer again the new-listing notices that have no successful send on record."""
    report = await cycle.resend_pending(within_hours)
    return DispatchResult(**report.as_dict())


@router.get("/jobs/runs/latest", response_model=JobRunOut, dependencies=[Depends(require_api_key)])
async def jobs_runs_latest(
    job_name: str = Query(JOB_NAME),
    session: AsyncSession = Depends(get_session),
) -> JobRunOut:
    jr = await latest_job(session, job_name)
    if jr is None:
        raise HTTPException(status_code=404, detail=f"No runs recorded for {job_name}")
    return JobRunOut.model_validate(jr)
