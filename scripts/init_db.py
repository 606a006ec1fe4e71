"""Create the scheduling tables directly from the model metadata.

Meant for local development and throwaway databases; production schemas are
managed with Alembic (scripts/migrate.py). Pass --reset to drop everything
first.
"""

import asyncio
import sys

from sqlalchemy import text

from clinic_scheduler.database import engine
from clinic_scheduler.models import metadata

# pgcrypto for gen_random_uuid, btree_gist for the doctor/time-range exclusion
EXTENSIONS = ("pgcrypto", "btree_gist")


async def init_db(reset: bool = False) -> None:
    """Install extensions and create the appointment, waitlist and outbox tables."""
    async with engine.begin() as conn:
        for extension in EXTENSIONS:
            await conn.execute(text(f'CREATE EXTENSION IF NOT EXISTS "{extension}"'))

        if reset:
            await conn.run_sync(metadata.drop_all)
            print("✓ Dropped existing tables")

        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print(f"✓ Created tables: {', '.join(sorted(metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(init_db(reset="--reset" in sys.argv[1:]))
