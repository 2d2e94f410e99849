"""Script to create every table from the model metadata.

Usage:
    python scripts/init_db.py          # create missing tables
    python scripts/init_db.py --drop   # drop and recreate (development only)
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import settings  # noqa: E402
from app.database import engine  # noqa: E402
from app.models import combined_metadata  # noqa: E402


async def init_db(drop: bool = False) -> None:
    """Create all tables, optionally dropping them first."""
    metadata = combined_metadata()

    async with engine.begin() as conn:
        if drop:
            if settings.is_production:
                raise SystemExit("Refusing to drop tables in production")
            await conn.run_sync(metadata.drop_all)
            print("✓ Dropped existing tables")

        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print(f"✓ Database initialized successfully ({len(metadata.tables)} tables)")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize the database schema")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()
    asyncio.run(init_db(drop=args.drop))
