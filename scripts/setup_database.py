"""
Database Schema Initialization Script
======================================

Idempotent creation of the tables used by the personalization pipeline.

Usage:
    python -m scripts.setup_database
    python -m scripts.setup_database --drop-existing  # Dangerous!
"""

import argparse
import asyncio
import sys

from loguru import logger

from config.settings import get_settings
from infrastructure.database import DatabaseManager


async def setup_schema(drop_existing: bool = False) -> None:
    """
    Create all pipeline tables.

    Args:
        drop_existing: If True, drops all tables before creation (DANGEROUS)
    """
    db = DatabaseManager(get_settings().database)
    await db.initialize()
    try:
        tables = await db.create_schema(drop_existing=drop_existing)
        logger.success(f"Database schema ready: {', '.join(tables)}")
    finally:
        await db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the pipeline database schema")
    parser.add_argument("--drop-existing", action="store_true", help="Drop tables before creating them")
    args = parser.parse_args()

    try:
        asyncio.run(setup_schema(drop_existing=args.drop_existing))
    except Exception as e:
        logger.error(f"Schema initialization failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
