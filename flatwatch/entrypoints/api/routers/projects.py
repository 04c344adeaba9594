# flatwatch/entrypoints/api/routers/projects.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session, get_source, require_api_key
from ....adapters.ingestion.base import SourceClient
from ....adapters.repos.projects import ProjectRepository
from ....schemas import ProjectOut, SyncResultOut, TrackRequest
from ....service_layer.use_cases.projects import sync_projects

router = APIRouter(tags=["projects"])


@router.get("/projects", response_model=list[ProjectOut])
async def list_projects(
    tracked_only: bool = Query(False),
    session: AsyncSession = Depends(get_session),
) -> list[ProjectOut]:
    rows = await ProjectRepository(session).list_projects(tracked_only=tracked_only)
    return [ProjectOut.model_validate(p) for p in rows]


@router.post("/projects/sync", response_model=SyncResultOut, dependencies=[Depends(require_api_key)])
async def projects_sync(
    session: AsyncSession = Depends(get_session),
    source: SourceClient = Depends(get_source),
) -> SyncResultOut:
    res = await sync_projects(session, source)
    await session.commit()
    return SyncResultOut(**res.as_dict())


@router.post("/projects/{project_id}/track", response_model=ProjectOut, dependencies=[Depends(require_api_key)])
async def projects_track(
    project_id: int,
    body: TrackRequest,
    session: AsyncSession = Depends(get_session),
) -> ProjectOut:
    proj = await ProjectRepository(session).set_tracked(project_id, body.tracked)
    if proj is None:
        raise HTTPException(status_code=404, detail="Project not found")
    await session.commit()
    return ProjectOut.model_validate(proj)
