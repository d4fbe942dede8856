import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from vip_platform.core.config import settings
from vip_platform.services.leaderboard_sync_service import sync_service

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def scheduled_leaderboard_sync():
    try:
        await sync_service.run_sync(force_fresh=True)
    except Exception as e:
        logger.error(f"Error in scheduled leaderboard sync: {e}", exc_info=True)


async def scheduled_race_transition():
    try:
        await sync_service.run_race_transition()
    except Exception as e:
        logger.error(f"Error in scheduled race transition: {e}", exc_info=True)


def start_scheduler():
    """
    Starts the scheduler with defined jobs.
    """
    scheduler.add_job(
        scheduled_leaderboard_sync,
        trigger=IntervalTrigger(minutes=settings.SYNC_INTERVAL_MINUTES),
        id="leaderboard_sync",
        name="Sync affiliate leaderboard",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    # 23:59 on the last calendar day of each month
    scheduler.add_job(
        scheduled_race_transition,
        trigger=CronTrigger(day="last", hour=23, minute=59),
        id="race_transition",
        name="Complete monthly wager race",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.start()
    logger.info("Scheduler started. Jobs:")
    for job in scheduler.get_jobs():
        logger.info(f"- {job.name} (Next run: {job.next_run_time})")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
