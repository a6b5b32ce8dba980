"""Apply every SQL file under backend/migrations in name order.

Usage: python -m scripts.apply_migrations  (run from backend/)
"""

import asyncio
import sys
from pathlib import Path

from geofeed.infra.postgres import close_pool, get_pool

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


async def main() -> int:
    files = sorted(MIGRATIONS_DIR.glob("*.sql"))
    if not files:
        print(f"No migrations found in {MIGRATIONS_DIR}")
        return 1
    pool = await get_pool()
    try:
        async with pool.acquire() as conn:
            for path in files:
                print(f"Executing {path.name}...")
                async with conn.transaction():
                    await conn.execute(path.read_text(encoding="utf-8"))
                print(f"Finished {path.name}")
    finally:
        await close_pool()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
