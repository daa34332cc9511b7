"""APScheduler setup for periodic unread-count and stale-folder refreshes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

if TYPE_CHECKING:
    from korgan_mail.config import MailConfig
    from korgan_mail.mailbox.orchestrator import MailOrchestrator
    from korgan_mail.refresh.unread import UnreadCountTracker

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "mail-refresh"


async def refresh_tick(orchestrator: MailOrchestrator, tracker: UnreadCountTracker) -> None:
    """One refresh round: badge counts for every folder, then the stale active folder."""
    await tracker.refresh_all_for_user(orchestrator.user_email, force=True)
    if await orchestrator.refresh_if_stale():
        logger.info("Refreshed stale folder %s", orchestrator.current_folder.value)


def create_refresh_scheduler(
    orchestrator: MailOrchestrator,
    tracker: UnreadCountTracker,
    config: MailConfig,
) -> AsyncIOScheduler:
    """Return an AsyncIOScheduler that runs refresh_tick() at a fixed interval.

    The caller is responsible for calling scheduler.start() and scheduler.shutdown().
    """
    interval = max(1, config.refresh_interval_seconds)
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        refresh_tick,
        "interval",
        seconds=interval,
        args=(orchestrator, tracker),
        id=REFRESH_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    logger.info("Mail refresh scheduled every %ds", interval)
    return scheduler
