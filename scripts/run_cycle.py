# scripts/run_cycle.py
"""
Cron entry: one ingestion cycle, summary on stdout, non-zero exit on failure.

    */30 * * * * cd /srv/flatwatch && python -m scripts.run_cycle
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from flatwatch.config import load_settings
from flatwatch.db import build_engine, build_session_maker, init_models
from flatwatch.domain.types import ListingCriteria
from flatwatch.log import configure_logging
from flatwatch.service_layer.use_cases.ingestion import IngestionCycle, build_source

log = logging.getLogger("run_cycle")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run one listing ingestion cycle.")
    p.add_argument("--rooms", default="", help="Comma-separated room buckets (0=studio, 3=3+)")
    p.add_argument("--price-min", type=int, default=None)
    p.add_argument("--price-max", type=int, default=None)
    p.add_argument("--area-min", type=float, default=None)
    p.add_argument("--area-max", type=float, default=None)
    return p.parse_args(argv)


def _criteria(args: argparse.Namespace) -> ListingCriteria | None:
    rooms = tuple(sorted({int(r) for r in args.rooms.split(",") if r.strip()}))
    crit = ListingCriteria(
        rooms=rooms,
        price_min=args.price_min,
        price_max=args.price_max,
        area_min=args.area_min,
        area_max=args.area_max,
    )
    return None if crit.is_empty() else crit


async def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = load_settings()
    configure_logging(settings.LOG_LEVEL)

    engine = build_engine(settings)
    try:
        await init_models(engine)
        cycle = IngestionCycle(build_session_maker(engine), build_source(settings), None, settings)
        report = await cycle.run(criteria=_criteria(args), trigger="cron")
    except Exception:
        log.exception("FATAL: ingestion cycle aborted")
        return 1
    finally:
        await engine.dispose()

    print(json.dumps(report.as_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
