"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from product_scout.config import settings
from product_scout.worker.tasks import TaskRunner

logger = logging.getLogger(__name__)


def setup_scheduler(runner: TaskRunner) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - Full discovery pipeline daily at settings.pipeline_cron_hour:pipeline_cron_minute (UTC)
    - Scrape queue rebuild every settings.queue_rebuild_interval_hours

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        runner.run_discovery,
        CronTrigger(hour=settings.pipeline_cron_hour, minute=settings.pipeline_cron_minute),
        id="discovery_pipeline",
        name="Run product discovery pipeline",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=3600,
        replace_existing=True,
    )

    rebuild_hours = max(1, settings.queue_rebuild_interval_hours)
    scheduler.add_job(
        runner.rebuild_queue,
        IntervalTrigger(hours=rebuild_hours),
        id="queue_rebuild",
        name="Rebuild scrape queue",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: discovery pipeline daily at %02d:%02d UTC, "
        "queue rebuild every %d hours",
        settings.pipeline_cron_hour,
        settings.pipeline_cron_minute,
        rebuild_hours,
    )

    return scheduler
