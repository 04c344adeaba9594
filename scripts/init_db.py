# scripts/init_db.py
import asyncio

from flatwatch.config import load_settings
from flatwatch.db import build_engine, init_models


async def main() -> None:
    engine = build_engine(load_settings())
    try:
        await init_models(engine)
    finally:
        await engine.dispose()
    print("OK: created all tables (idempotent).")


if __name__ == "__main__":
    asyncio.run(main())
