# flatwatch/entrypoints/api/routers/source.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps import get_source, require_api_key
from ....adapters.ingestion.base import SourceClient
from ....schemas import SourceCheckOut
from ....service_layer.use_cases.projects import check_source

router = APIRouter(tags=["source"])


@router.get("/source/check", response_model=SourceCheckOut, dependencies=[Depends(require_api_key)])
async def source_check(source: SourceClient = Depends(get_source)) -> SourceCheckOut:
    res = await check_source(source)
    return SourceCheckOut(**res.as_dict())
