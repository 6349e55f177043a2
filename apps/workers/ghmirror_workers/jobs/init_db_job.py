"""Creates the mirror schema and any missing tables."""

import logging

from ghmirror_database.session import create_schema

logger = logging.getLogger(__name__)


async def run_init_db_job() -> dict:
    logger.info("Creating mirror schema")
    await create_schema()
    logger.info("Mirror schema ready")
    return {"status": "ok"}
