# scripts/init_db.py
"""Create the database schema for novels, chapters and supporting records."""

from __future__ import annotations

from arcweaver.canon import get_engine, init_models
from arcweaver.core.env import load_env
from arcweaver.core.logging import get_logger, init_logging

logger = get_logger(__name__)


async def init_db() -> None:
    """Create any missing tables."""
    engine = get_engine()
    logger.info("Creating database schema on %s", engine.url.render_as_string(hide_password=True))
    try:
        await init_models(engine)
        logger.info("Database schema created successfully")
    except Exception as e:
        logger.exception("Failed to create database schema: %s", e)
        raise
    finally:
        await engine.dispose()


if __name__ == "__main__":  # pragma: no cover - CLI execution
    import asyncio

    load_env()
    init_logging()
    asyncio.run(init_db())
