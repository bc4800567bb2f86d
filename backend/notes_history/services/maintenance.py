"""Background loop: collect new revisions, then apply retention."""

import asyncio
import logging

from notes_history.config import settings
from notes_history.database import async_session_maker
from notes_history.services.revision_retention import delete_old_revisions
from notes_history.services.revision_service import collect_revisions

logger = logging.getLogger(__name__)

_maintenance_task: asyncio.Task | None = None


async def run_maintenance() -> tuple[int, int]:
    """One maintenance cycle. Returns (revisions created, revisions deleted)."""
    if not settings.revision_service_enabled:
        return 0, 0
    async with async_session_maker() as db:
        created = await collect_revisions(db)
        deleted = await delete_old_revisions(db, settings.revision_ttl_ms)
    logger.info("Revision maintenance done: %s created, %s deleted", created, deleted)
    return created, deleted


async def _maintenance_loop() -> None:
    while True:
        await asyncio.sleep(settings.revision_collect_interval_seconds)
        try:
            await run_maintenance()
        except Exception:
            # Nothing was half-written; the next cycle retries
            logger.exception("Revision maintenance failed")


def start_maintenance_task() -> asyncio.Task:
    """Start the periodic maintenance task. Call from app lifespan."""
    global _maintenance_task
    _maintenance_task = asyncio.create_task(_maintenance_loop())
    return _maintenance_task
