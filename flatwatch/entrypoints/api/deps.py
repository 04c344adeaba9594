# flatwatch/entrypoints/api/deps.py
from __future__ import annotations

from typing import AsyncIterator

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...adapters.ingestion.base import SourceClient
from ...config import Settings
from ...service_layer.use_cases.ingestion import IngestionCycle


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_api_key(request: Request, x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    settings: Settings = request.app.state.settings
    if settings.API_KEY:
        if not x_api_key or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.session_maker() as session:
        yield session


def get_source(request: Request) -> SourceClient:
    return request.app.state.source


def get_cycle(request: Request) -> IngestionCycle:
    return request.app.state.cycle
