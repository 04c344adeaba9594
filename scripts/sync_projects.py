# scripts/sync_projects.py
from __future__ import annotations

import argparse
import asyncio

from flatwatch.adapters.repos.projects import ProjectRepository
from flatwatch.config import load_settings
from flatwatch.db import build_engine, build_session_maker, init_models, session_scope
from flatwatch.log import configure_logging
from flatwatch.service_layer.use_cases.ingestion import build_source
from flatwatch.service_layer.use_cases.projects import sync_projects


async def main() -> None:
    p = argparse.ArgumentParser(description="Refresh the project catalogue; optionally start tracking some.")
    p.add_argument("--track", default="", help="Comma-separated project external ids to start tracking")
    args = p.parse_args()

    settings = load_settings()
    configure_logging(settings.LOG_LEVEL)
    engine = build_engine(settings)
    try:
        await init_models(engine)
        session_maker = build_session_maker(engine)

        async with session_scope(session_maker) as session:
            res = await sync_projects(session, build_source(settings))
            print(f"OK: fetched={res.fetched} created={res.created} updated={res.updated}")

            repo = ProjectRepository(session)
            for part in args.track.split(","):
                if not part.strip():
                    continue
                proj = await repo.get_by_external_id(int(part))
                if proj is None:
                    print(f"WARN: unknown project {part}")
                    continue
                await repo.set_tracked(proj.id, True)
                print(f"tracking {proj.external_id} {proj.name}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
