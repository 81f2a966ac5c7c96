"""
Engagement — entrypoint.

Loads .env, prepares the database, then serves the engagement surface.

Environment:
  DB_PATH, MAX_AUTHORS, MAX_LINKS, GATE_COMMENTS, DB_BUSY_TIMEOUT  (see core/settings.py)
  PORT       HTTP port for the surface (default 8000)
  LOG_LEVEL  logging level (default INFO)
"""

import asyncio
import logging
import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from core.service import EngagementService
from core.settings import Settings
from surface.app import create_app

PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logger = logging.getLogger("engagement")


async def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    settings = Settings.from_env()
    service = EngagementService(settings)
    await service.init()

    surface_config = uvicorn.Config(
        create_app(service),
        host="0.0.0.0",
        port=PORT,
        log_level=LOG_LEVEL.lower(),
    )
    surface_server = uvicorn.Server(surface_config)

    logger.info("Serving engagement surface on port %d (db: %s)", PORT, settings.db_path)
    await surface_server.serve()


if __name__ == "__main__":
    asyncio.run(main())
