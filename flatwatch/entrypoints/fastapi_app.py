# flatwatch/entrypoints/fastapi_app.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from ..adapters.ingestion.base import SourceClient
from ..config import Settings, load_settings
from ..db import build_engine, build_session_maker, init_models
from ..integrations.base import Mailer
from ..integrations.smtp import SmtpMailer
from ..service_layer.use_cases.ingestion import IngestionCycle, build_source
from .api.routers import health, jobs, listings, projects, source, subscriptions


def create_app(
    settings: Settings | None = None,
    *,
    source_client: SourceClient | None = None,
    mailer: Mailer | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    engine = build_engine(settings)
    session_maker = build_session_maker(engine)
    src = source_client or build_source(settings)
    mail = mailer or SmtpMailer.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Single place where DB tables are created in dev.
        await init_models(engine)
        yield
        await engine.dispose()

    app = FastAPI(title="flatwatch - apartment listing tracker", lifespan=lifespan)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_maker = session_maker
    app.state.source = src
    app.state.cycle = IngestionCycle(session_maker, src, mail, settings)

    # Routers
    app.include_router(health.router)
    app.include_router(jobs.router)
    app.include_router(projects.router)
    app.include_router(listings.router)
    app.include_router(subscriptions.router)
    app.include_router(source.router)

    return app
