from __future__ import annotations

import asyncio
import json
import sys

from amlguard.core.config import get_settings
from amlguard.persistence.store import create_store
from amlguard.services.audit import verify_chain


async def _main() -> int:
    settings = get_settings()
    if not settings.database_url:
        print("DATABASE_URL is not set; nothing to verify.", file=sys.stderr)
        return 1
    store = create_store(settings.database_url)
    try:
        result = verify_chain(await store.audit_chain())
    finally:
        await store.close()
    print(json.dumps(result.to_dict(), indent=2))
    # Non-zero exit lets scheduled jobs alert on a broken chain.
    return 0 if result.valid else 3


def main() -> int:
    try:
        return asyncio.run(_main())
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"verify_audit_chain failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
