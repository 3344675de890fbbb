"""Database initialization for chat history tables."""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from app.services.memory.db import engine as default_engine
from app.services.memory.models import Base

logger = logging.getLogger(__name__)


async def init_database(engine: AsyncEngine = default_engine) -> bool:
    """Create tables if they don't exist."""
    try:
        logger.info(f"Initializing chat history database at {engine.url.render_as_string(hide_password=True)}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Chat history tables ready")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return False


if __name__ == "__main__":
    asyncio.run(init_database())
