import asyncio
import logging
from datetime import timedelta

from starlette.concurrency import run_in_threadpool

from core.config import settings
from database import SessionLocal
from services.sweeper_service import SessionSweeper

logger = logging.getLogger(__name__)


def sweep_stale_sessions() -> int:
    db = SessionLocal()
    try:
        sweeper = SessionSweeper(db)
        return sweeper.sweep(timedelta(hours=settings.SESSION_RETENTION_HOURS))
    finally:
        db.close()


async def cleanup_stale_sessions():
    while True:
        try:
            await run_in_threadpool(sweep_stale_sessions)
        except Exception:
            logger.exception("Upload session cleanup failed")

        await asyncio.sleep(settings.CLEANUP_INTERVAL_SECONDS)
