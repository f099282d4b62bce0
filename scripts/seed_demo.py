from __future__ import annotations

import asyncio
import sys

from amlguard.core.config import get_settings
from amlguard.core.logging import configure_logging
from amlguard.persistence.db import build_engine, build_sessionmaker
from amlguard.persistence.seed import seed_demo_data


async def seed_demo() -> int:
    settings = get_settings()
    if not settings.database_url:
        print("DATABASE_URL is not set; the in-memory store seeds itself.", file=sys.stderr)
        return 1
    # Use the same engine settings as the API so pool and timeout config match.
    engine = build_engine(settings.database_url)
    try:
        inserted = await seed_demo_data(build_sessionmaker(engine))
    finally:
        await engine.dispose()
    if inserted:
        print(f"Seeded {inserted} demo institutions.")
    else:
        print("Institutions already present; skipping.")
    return 0


def main() -> int:
    configure_logging(get_settings().log_level)
    # Surface clear failures and exit non-zero so CI/dev scripts can detect issues.
    try:
        return asyncio.run(seed_demo())
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
