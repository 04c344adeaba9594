# flatwatch/service_layer/use_cases/ingestion.py
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...adapters.ingestion.base import SourceClient
from ...adapters.ingestion.pik_api import PikApiSource
from ...adapters.ingestion.pik_site import PikSiteSource
from ...adapters.ingestion.stub_json import StubJsonSource
from ...adapters.repos.listings import ListingRepository
from ...adapters.repos.projects import ProjectRepository
from ...adapters.repos.subscriptions import SubscriptionRepository
from ...config import Settings
from ...domain.matching import criteria_allows
from ...domain.normalize import normalize_listing, reject_reason
from ...domain.types import CycleReport, DispatchReport, ListingCriteria, ListingData, PriceChange, RawListing
from ...integrations.base import Mailer
from ...integrations.services.dispatch import NotificationDispatcher
from ...integrations.smtp import SmtpMailer
from ...models import JobRun, Project, utcnow
from ..jobruns import finish_job_fail, finish_job_success, start_job
from ..run_lock import CycleLock

log = logging.getLogger(__name__)

JOB_NAME = "ingestion_cycle"


def build_source(settings: Settings) -> SourceClient:
    """
    Source builder keyed by SOURCE_KIND.

    Unknown kinds fall back to stub_json in dev/local/test and are an error
    anywhere else.
    """
    kind = (settings.SOURCE_KIND or "").strip()

    if kind == "pik_api":
        return PikApiSource.from_settings(settings)
    if kind == "pik_site":
        return PikSiteSource.from_settings(settings)
    if kind == "stub_json":
        return StubJsonSource.from_settings(settings)

    if settings.ENV.lower() in ("dev", "local", "test"):
        log.warning("unknown SOURCE_KIND=%r; using stub_json", kind)
        return StubJsonSource.from_settings(settings)

    raise ValueError(f"Unknown SOURCE_KIND={kind!r}. Use pik_api, pik_site, or stub_json.")


@dataclass
class _Deltas:
    new: list[Any] = field(default_factory=list)
    changes: list[PriceChange] = field(default_factory=list)


class IngestionCycle:
    """
    One poll-reconcile-notify pass.

    - projects and subscriptions are read fresh unless the caller supplies them
    - each project is reconciled in its own transaction; a failure there lands
      in report.errors and the other projects carry on
    - SQLAlchemy errors are not isolated: the store is the one thing we can't
      degrade around, so they abort the cycle
    - sold detection only for full polls (no criteria) whose fetch completed
      and returned at least one usable listing for the project
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        source: SourceClient,
        mailer: Mailer | None,
        settings: Settings,
        *,
        lock: CycleLock | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.source = source
        self.mailer = mailer or SmtpMailer.from_settings(settings)
        self.settings = settings
        self.lock = lock or CycleLock(session_maker, name=JOB_NAME, stale_after_s=settings.CYCLE_LOCK_STALE_S)

    async def run(
        self,
        tracked_projects: Sequence[Project] | None = None,
        subscriptions: Sequence[Any] | None = None,
        criteria: ListingCriteria | None = None,
        *,
        trigger: str = "manual",
    ) -> CycleReport:
        if criteria is not None and criteria.is_empty():
            criteria = None

        async with self.lock.hold() as acquired:
            if not acquired:
                log.info("ingestion cycle already running; skipping (%s)", trigger)
                return CycleReport(skipped=True, errors=["another ingestion cycle is already running"])

            async with self.session_maker() as session:
                meta = {"trigger": trigger, "criteria": criteria.as_dict() if criteria else None}
                jr = await start_job(session, JOB_NAME, meta=meta)
                await session.commit()
                job_id = jr.id

            try:
                report = await self._run(tracked_projects, subscriptions, criteria)
            except Exception as e:
                log.exception("ingestion cycle failed")
                await self._finish(job_id, error=e)
                raise

            await self._finish(job_id, summary=report.as_dict())
            return report

    async def resend_pending(self, within_hours: float | None = None) -> DispatchReport:
        """
        Re-offer new-listing notices whose send failed earlier.

        Candidates come from the store (listings whose active period began in
        the window), not from a cycle's deltas; the usual per-subscription
        de-duplication drops everything that already went out.
        """
        hours = self.settings.NOTIFY_RESEND_WINDOW_H if within_hours is None else within_hours
        since = utcnow() - timedelta(hours=hours)

        async with self.lock.hold() as acquired:
            if not acquired:
                return DispatchReport(errors=["another ingestion cycle is already running"])

            async with self.session_maker() as session:
                listings = await ListingRepository(session).announced_since(since)
                subs = await SubscriptionRepository(session).list_active()
                dispatcher = NotificationDispatcher(session, self.mailer, self.settings)
                report = await dispatcher.dispatch(listings, [], subs)
                await session.commit()

        log.info(
            "resend pending (%sh): candidates=%d sent=%d notified=%d failed=%d",
            hours, len(listings), report.sent, report.notified, report.failed,
        )
        return report

    async def _finish(self, job_id: int, *, summary: dict[str, Any] | None = None, error: Exception | None = None) -> None:
        async with self.session_maker() as session:
            jr = await session.get(JobRun, job_id)
            if jr is None:
                return
            if error is not None:
                await finish_job_fail(session, jr, error)
            else:
                await finish_job_success(session, jr, summary or {})
            await session.commit()

    async def _load_inputs(
        self,
        tracked_projects: Sequence[Project] | None,
        subscriptions: Sequence[Any] | None,
    ) -> tuple[list[Project], list[Any]]:
        async with self.session_maker() as session:
            if tracked_projects is None:
                tracked_projects = await ProjectRepository(session).list_projects(tracked_only=True)
            if subscriptions is None:
                subscriptions = await SubscriptionRepository(session).list_active()
        return list(tracked_projects), list(subscriptions)

    async def _run(
        self,
        tracked_projects: Sequence[Project] | None,
        subscriptions: Sequence[Any] | None,
        criteria: ListingCriteria | None,
    ) -> CycleReport:
        report = CycleReport()
        projects, subs = await self._load_inputs(tracked_projects, subscriptions)
        if not projects:
            log.info("no tracked projects; nothing to poll")
            return report

        deltas = _Deltas()
        if self.settings.INGEST_BATCHED:
            await self._run_batched(projects, criteria, report, deltas)
        else:
            await self._run_per_project(projects, criteria, report, deltas)

        log.info(
            "cycle reconciled: fetched=%d new=%d updated=%d sold=%d dropped=%d errors=%d",
            report.fetched, report.new, report.updated, report.sold, report.dropped, len(report.errors),
        )

        async with self.session_maker() as session:
            dispatcher = NotificationDispatcher(session, self.mailer, self.settings)
            report.notifications = await dispatcher.dispatch(deltas.new, deltas.changes, subs)
            await session.commit()

        return report

    # -------------------------
    # Fetch granularity
    # -------------------------

    async def _fetch(
        self,
        projects: Sequence[Project],
        criteria: ListingCriteria | None,
        report: CycleReport,
    ) -> tuple[list[RawListing], bool]:
        ext_ids = [p.external_id for p in projects]
        slugs = {p.external_id: p.slug for p in projects if p.slug}
        try:
            raws = await self.source.fetch_listings(ext_ids, criteria, slugs=slugs)
        except Exception as e:
            log.exception("source fetch failed for projects %s", ext_ids)
            report.errors.append(f"fetch {ext_ids}: {type(e).__name__}: {e}")
            return [], False

        complete = bool(self.source.health.last_fetch_complete)
        if not complete:
            report.errors.append(
                f"fetch {ext_ids} incomplete: {self.source.health.last_error or 'partial response'}"
            )
        return raws, complete

    async def _run_batched(
        self,
        projects: Sequence[Project],
        criteria: ListingCriteria | None,
        report: CycleReport,
        deltas: _Deltas,
    ) -> None:
        raws, complete = await self._fetch(projects, criteria, report)
        if not raws and not complete:
            return
        grouped = self._normalize(raws, report, criteria)

        tracked = {p.external_id for p in projects}
        for ext_id, items in grouped.items():
            if ext_id not in tracked:
                report.dropped += len(items)
                self._count_drop(report, "untracked_project", len(items))

        for project in projects:
            await self._reconcile_project(
                project, grouped.get(project.external_id, []), criteria is None and complete, report, deltas
            )

    async def _run_per_project(
        self,
        projects: Sequence[Project],
        criteria: ListingCriteria | None,
        report: CycleReport,
        deltas: _Deltas,
    ) -> None:
        for project in projects:
            raws, complete = await self._fetch([project], criteria, report)
            if not raws and not complete:
                continue
            grouped = self._normalize(raws, report, criteria, default_project=project.external_id)
            items = grouped.pop(project.external_id, [])
            for other in grouped.values():
                report.dropped += len(other)
                self._count_drop(report, "untracked_project", len(other))
            await self._reconcile_project(project, items, criteria is None and complete, report, deltas)

    # -------------------------
    # Normalize + reconcile
    # -------------------------

    @staticmethod
    def _count_drop(report: CycleReport, reason: str, n: int = 1) -> None:
        report.drop_reasons[reason] = report.drop_reasons.get(reason, 0) + n

    def _normalize(
        self,
        raws: Sequence[RawListing],
        report: CycleReport,
        criteria: ListingCriteria | None = None,
        default_project: int | None = None,
    ) -> dict[int, list[ListingData]]:
        defaults: dict[str, Any] = {"site_url": self.settings.PIK_SITE_URL}
        if default_project is not None:
            defaults["project_external_id"] = default_project

        grouped: dict[int, list[ListingData]] = defaultdict(list)
        seen: set[int] = set()
        for rl in raws:
            report.fetched += 1
            data = normalize_listing(rl, defaults)
            if data is None:
                report.dropped += 1
                self._count_drop(report, reject_reason(rl.payload) or "unparseable")
                continue
            if data.project_external_id is None:
                report.dropped += 1
                self._count_drop(report, "missing_project")
                continue
            if not criteria_allows(data, criteria):
                # sources may ignore filters they do not support
                report.dropped += 1
                self._count_drop(report, "outside_criteria")
                continue
            if data.external_id in seen:
                # same unit twice in one response (overlapping pages)
                continue
            seen.add(data.external_id)
            grouped[data.project_external_id].append(data)
        return grouped

    async def _reconcile_project(
        self,
        project: Project,
        items: Sequence[ListingData],
        check_sold: bool,
        report: CycleReport,
        deltas: _Deltas,
    ) -> None:
        if check_sold and not items:
            # an empty 200 looks the same as upstream shape drift; never sell a whole project on it
            log.warning("project %s: no usable listings in a full poll; sold detection skipped", project.external_id)
            report.errors.append(f"project {project.external_id}: empty listing response, sold detection skipped")
            check_sold = False

        new: list[Any] = []
        changes: list[PriceChange] = []
        sold = 0
        try:
            async with self.session_maker() as session:
                repo = ListingRepository(session)
                for data in items:
                    res = await repo.upsert_listing(data, project.id)
                    if res.is_new or res.reactivated:
                        new.append(res.stored)
                    elif res.price_changed:
                        changes.append(
                            PriceChange(
                                listing=res.stored,
                                old_price=int(res.old_price),
                                new_price=int(res.stored.price),
                                changed_at=res.stored.last_seen_at,
                            )
                        )
                if check_sold:
                    sold = await repo.mark_sold_except([d.external_id for d in items], project.id)
                await session.commit()
        except SQLAlchemyError:
            raise
        except Exception as e:
            log.exception("reconciling project %s failed", project.external_id)
            report.errors.append(f"project {project.external_id}: {type(e).__name__}: {e}")
            return

        report.new += len(new)
        report.updated += len(changes)
        report.sold += sold
        deltas.new.extend(new)
        deltas.changes.extend(changes)
        if new or changes or sold:
            log.info(
                "project %s (%s): new=%d price_changes=%d sold=%d",
                project.external_id, project.name, len(new), len(changes), sold,
            )
