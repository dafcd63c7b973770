"""
Background jobs.

Jobs:
  1. Preview purge - deletes preview rows whose 24 h lifetime has passed.
     Reads already ignore expired rows; this only reclaims space.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.config import get_settings
from app.core.timeutils import utcnow
from app.database import AsyncSessionLocal
from app.flashcards.repository import CardPreviewRepository

logger = logging.getLogger(__name__)


async def purge_expired_previews() -> int:
    """Delete every preview row with expires_at in the past. Returns the count."""
    logger.info("[Scheduler] Running preview purge job")

    async with AsyncSessionLocal() as db:
        try:
            removed = await CardPreviewRepository(db).delete_expired(utcnow())
            await db.commit()
            logger.info(f"[Scheduler] Preview purge done - removed {removed} row(s)")
            return removed
        except Exception:
            await db.rollback()
            logger.exception("[Scheduler] Preview purge job failed")
            return 0


def create_scheduler() -> AsyncIOScheduler:
    """Build the scheduler with every periodic job registered (not started)."""
    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        purge_expired_previews,
        "interval",
        minutes=settings.preview_cleanup_interval_minutes,
        id="purge_expired_previews",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler
