# flatwatch/service_layer/jobruns.py
from __future__ import annotations

import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import JobRun, JobRunStatus, utcnow


async def start_job(session: AsyncSession, job_name: str, meta: dict[str, Any] | None = None) -> JobRun:
    jr = JobRun(
        job_name=job_name,
        started_at=utcnow(),
        status=JobRunStatus.running,
        meta_json=json.dumps(meta or {}),
    )
    session.add(jr)
    await session.flush()
    return jr


async def finish_job_success(session: AsyncSession, jr: JobRun, summary: dict[str, Any]) -> None:
    jr.status = JobRunStatus.success
    jr.finished_at = utcnow()
    jr.summary_json = json.dumps(summary)
    jr.error = None
    await session.flush()


async def finish_job_fail(session: AsyncSession, jr: JobRun, err: Exception | str) -> None:
    jr.status = JobRunStatus.failed
    jr.finished_at = utcnow()
    jr.error = str(err)
    await session.flush()


async def latest_job(session: AsyncSession, job_name: str, status: JobRunStatus | None = None) -> JobRun | None:
    q = select(JobRun).where(JobRun.job_name == job_name)
    if status is not None:
        q = q.where(JobRun.status == status)
    q = q.order_by(JobRun.started_at.desc(), JobRun.id.desc()).limit(1)
    return (await session.execute(q)).scalars().first()
