# scripts/check_source.py
"""
Quick connectivity probe against the configured source.

Usage:
  python -m scripts.check_source
"""
from __future__ import annotations

import asyncio
import sys

from flatwatch.config import load_settings
from flatwatch.log import configure_logging
from flatwatch.service_layer.use_cases.ingestion import build_source
from flatwatch.service_layer.use_cases.projects import check_source


async def main() -> int:
    settings = load_settings()
    configure_logging(settings.LOG_LEVEL)

    print("SOURCE_KIND:", settings.SOURCE_KIND)
    print("PIK_API_BASE:", settings.PIK_API_BASE)

    source = build_source(settings)
    res = await check_source(source)

    print("OK:", res.ok)
    print("projects:", res.projects)
    print("latency_ms:", res.latency_ms)
    print("requests/failures:", res.requests, res.failures)
    if res.last_error:
        print("last_error:", res.last_error)
    return 0 if res.ok else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
