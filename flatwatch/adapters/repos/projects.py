# flatwatch/adapters/repos/projects.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.types import ProjectInfo
from ...models import Project, utcnow


class ProjectRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, project_id: int) -> Project | None:
        return await self.session.get(Project, project_id)

    async def get_by_external_id(self, external_id: int) -> Project | None:
        q = select(Project).where(Project.external_id == int(external_id))
        return (await self.session.execute(q)).scalars().first()

    async def upsert_project(self, info: ProjectInfo, tracked: bool | None = None) -> Project:
        """
        Display fields are refreshed unconditionally. `tracked` is only applied
        when the caller passes it; a plain resync leaves is_tracked alone.
        """
        proj = await self.get_by_external_id(info.external_id)
        if proj is None:
            proj = Project(external_id=info.external_id, is_tracked=bool(tracked), created_at=utcnow())
            self.session.add(proj)

        proj.name = info.name
        # keep what we had if the upstream stopped sending these
        proj.slug = info.slug or proj.slug
        proj.url = info.url or proj.url
        proj.flats_count = info.flats_count
        proj.price_min = info.price_min
        proj.updated_at = utcnow()

        if tracked is not None:
            proj.is_tracked = bool(tracked)

        await self.session.flush()
        return proj

    async def list_projects(self, tracked_only: bool = False) -> list[Project]:
        q = select(Project)
        if tracked_only:
            q = q.where(Project.is_tracked.is_(True))
        q = q.order_by(Project.name.asc(), Project.id.asc())
        return list((await self.session.execute(q)).scalars().all())

    async def set_tracked(self, project_id: int, tracked: bool) -> Project | None:
        proj = await self.get(project_id)
        if proj is None:
            return None
        proj.is_tracked = bool(tracked)
        proj.updated_at = utcnow()
        await self.session.flush()
        return proj
