#!/usr/bin/env python3
"""Create the admissions CRM tables.

Creates leads, lead_tasks and the automation tables straight from the
models, for local development and demos. Production databases are managed
with Alembic (scripts/migrate.py).

Usage:
    uv run python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from packages.core.src.config import get_config
from packages.database.src.models import Base
from packages.database.src.session import close_db, init_db


async def main():
    """Initialize the database."""
    config = get_config()
    print(f"Initializing database tables ({config.environment.value})...")
    try:
        await init_db()
        for table in Base.metadata.sorted_tables:
            print(f"  {table.name}")
        print("Database tables created successfully!")
    except Exception as e:
        print(f"Error creating database tables: {e}")
        raise
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
