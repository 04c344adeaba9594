# flatwatch/service_layer/use_cases/projects.py
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ...adapters.ingestion.base import SourceClient
from ...adapters.repos.projects import ProjectRepository
from ..jobruns import finish_job_fail, finish_job_success, start_job

log = logging.getLogger(__name__)


@dataclass
class SyncResult:
    fetched: int
    created: int
    updated: int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SourceCheck:
    ok: bool
    projects: int
    latency_ms: int
    requests: int
    failures: int
    last_error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


async def sync_projects(session: AsyncSession, source: SourceClient) -> SyncResult:
    """
    Refresh the project catalogue from the source. Tracked flags are preserved;
    projects missing from the response are left alone (never deleted).
    Flushes only; the caller commits.
    """
    jr = await start_job(session, "sync_projects")
    try:
        infos = await source.fetch_projects()
        repo = ProjectRepository(session)

        created = updated = 0
        for info in infos:
            existed = await repo.get_by_external_id(info.external_id) is not None
            await repo.upsert_project(info)
            if existed:
                updated += 1
            else:
                created += 1

        result = SyncResult(fetched=len(infos), created=created, updated=updated)
        await finish_job_success(session, jr, result.as_dict())
    except Exception as e:
        await finish_job_fail(session, jr, e)
        raise

    log.info("project sync: fetched=%d created=%d updated=%d", result.fetched, result.created, result.updated)
    return result


async def check_source(source: SourceClient) -> SourceCheck:
    """Connectivity probe: one project catalogue request, timed."""
    failures_before = source.health.failures
    t0 = time.perf_counter()
    try:
        projects = await source.fetch_projects()
    except Exception as e:
        return SourceCheck(
            ok=False,
            projects=0,
            latency_ms=int((time.perf_counter() - t0) * 1000),
            requests=source.health.requests,
            failures=source.health.failures,
            last_error=f"{type(e).__name__}: {e}",
        )

    latency_ms = int((time.perf_counter() - t0) * 1000)
    ok = source.health.failures == failures_before or bool(projects)
    return SourceCheck(
        ok=ok,
        projects=len(projects),
        latency_ms=latency_ms,
        requests=source.health.requests,
        failures=source.health.failures,
        last_error=source.health.last_error,
    )
