# flatwatch/jobs/scheduler.py
from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..adapters.ingestion.base import SourceClient
from ..config import Settings
from ..integrations.base import Mailer
from ..service_layer.use_cases.ingestion import IngestionCycle
from ..service_layer.use_cases.projects import sync_projects

log = logging.getLogger(__name__)


def build_scheduler(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    source: SourceClient,
    mailer: Mailer | None = None,
) -> AsyncIOScheduler:
    sched = AsyncIOScheduler()
    cycle = IngestionCycle(session_maker, source, mailer, settings)

    async def _run_cycle() -> None:
        report = await cycle.run(trigger="scheduler")
        if report.skipped:
            log.info("scheduled cycle skipped: %s", report.errors)

    async def _run_sync() -> None:
        async with session_maker() as session:
            await sync_projects(session, source)
            await session.commit()

    # max_instances=1 + coalesce: a slow cycle never stacks up behind itself
    sched.add_job(
        _run_cycle,
        "interval",
        hours=float(settings.SCHED_CYCLE_INTERVAL_HOURS),
        id="ingestion_cycle",
        max_instances=1,
        coalesce=True,
    )
    sched.add_job(
        _run_sync,
        "interval",
        hours=float(settings.SCHED_SYNC_INTERVAL_HOURS),
        id="sync_projects",
        max_instances=1,
        coalesce=True,
    )

    return sched
