#!/usr/bin/env python
"""
Script to create the reports table for CivicSync
"""

# Standard library imports
import asyncio
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Third-party imports
from sqlalchemy import text

# Local application imports
from civicsync.core.db import AsyncSessionLocal, async_engine
from civicsync.core.monitoring.logging import get_logger

# Import all models to register them with Base
from civicsync.models import Base

logger = get_logger("scripts.create_tables")


async def create_tables() -> None:
    """Create all tables in the database"""
    logger.info("Creating database tables...")

    try:
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("All tables created successfully")

        # Verify tables were created
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                text(
                    """
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
                ORDER BY table_name;
            """
                )
            )
            for (table_name,) in result.fetchall():
                logger.info(f"  - {table_name}")

    except Exception as e:
        logger.error(f"Error creating tables: {e}")
        sys.exit(1)
    finally:
        await async_engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_tables())
