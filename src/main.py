"""EVE Tracker background workers — process entry point.

Run locally:
    python -m src.main
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import httpx

from src.config import get_settings
from src.services.database import close_pool, init_pool
from src.stores.postgres import PostgresCharacterStore
from src.workers.manager import build_worker_manager

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("evetracker")


# ---------- Lifecycle ----------

async def run() -> None:
    """Start the workers and keep them running until SIGINT/SIGTERM."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info(
        "Starting %s workers v%s [%s]",
        settings.app_name,
        settings.app_version,
        settings.environment,
    )

    await init_pool(settings)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        store = PostgresCharacterStore(settings)
        await store.ensure_schema()

        async with httpx.AsyncClient(timeout=30.0) as http_client:
            manager = build_worker_manager(settings, store, http_client)
            manager.start_all()
            await stop.wait()

            logger.info("Shutdown signal received")
            manager.stop_all()
            if manager.scheduler is not None:
                manager.scheduler.shutdown()
    finally:
        await close_pool()
        logger.info("%s workers shut down", settings.app_name)


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
