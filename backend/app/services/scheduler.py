"""Background task scheduler: periodic expiry sweep for pending actions.

Uses FastAPI's lifespan context to start/stop an asyncio background loop.
No external dependencies (no Celery, no APScheduler), just an
asyncio.sleep loop.  Reads already report overdue actions as expired, so
the sweep only has to catch up on the stored status eventually.

Usage:
    In main.py:

        from app.services.scheduler import lifespan
        app = FastAPI(lifespan=lifespan, ...)

Configuration (.env):
    EXPIRY_SWEEP_ENABLED=true
    EXPIRY_SWEEP_INTERVAL_SECONDS=300

Running several workers is safe: each row is expired by a conditional
UPDATE, so overlapping sweeps never double-write.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import settings
from app.database import async_session
from app.services.pending_actions import expire_overdue
from app.utils.cache import close_redis

logger = logging.getLogger("memoria.scheduler")


async def run_expiry_sweep() -> int:
    """Expire every overdue pending action in its own session."""
    async with async_session() as db:
        try:
            return await expire_overdue(db)
        except Exception:
            await db.rollback()
            raise


async def _scheduler_loop() -> None:
    interval = settings.expiry_sweep_interval_seconds
    logger.info("Expiry sweep every %d seconds", interval)

    while True:
        try:
            await run_expiry_sweep()
        except Exception:
            logger.exception("Unhandled error in expiry sweep")
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the sweep on startup, cancel on shutdown."""
    task = None
    if settings.expiry_sweep_enabled:
        task = asyncio.create_task(_scheduler_loop())
        logger.info("Expiry scheduler started")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Expiry scheduler stopped")
        await close_redis()
