from __future__ import annotations

import asyncio
import logging

from flatwatch.config import load_settings
from flatwatch.db import build_engine, build_session_maker, init_models
from flatwatch.jobs.scheduler import build_scheduler
from flatwatch.log import configure_logging
from flatwatch.service_layer.use_cases.ingestion import build_source


async def main() -> None:
    settings = load_settings()
    configure_logging(settings.LOG_LEVEL)

    engine = build_engine(settings)
    await init_models(engine)

    scheduler = build_scheduler(settings, build_session_maker(engine), build_source(settings))
    scheduler.start()
    logging.getLogger(__name__).info("Scheduler started")

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        scheduler.shutdown()
        await engine.dispose()
        logging.getLogger(__name__).info("Scheduler stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
