# /orderbot/utils/scheduler.py

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from orderbot.config.settings import settings
from orderbot.utils.job_guard import GuardedJob

# Builds the in-process scheduler for the two sync jobs. It runs on the same
# event loop as the interaction handlers, since both share the order cache.

logger = logging.getLogger(__name__)


def build_scheduler(pull_job: GuardedJob, cleanup_job: GuardedJob,
                    pull_interval: int, cleanup_interval: int,
                    timezone: str = "UTC") -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=timezone)

    # Job 1: Publish newly pending orders
    if pull_interval > 0:
        scheduler.add_job(
            pull_job.run_scheduled,
            'interval',
            seconds=pull_interval,
            id=f"{pull_job.name}_job",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Scheduled job: {pull_job.name} (every {pull_interval} seconds).")
    else:
        logger.info(f"Job {pull_job.name} disabled (PULL_INTERVAL_SECONDS is 0).")

    # Job 2: Remove confirmed orders from the channel and the ledger
    if cleanup_interval > 0:
        scheduler.add_job(
            cleanup_job.run_scheduled,
            'interval',
            seconds=cleanup_interval,
            id=f"{cleanup_job.name}_job",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Scheduled job: {cleanup_job.name} (every {cleanup_interval} seconds).")
    else:
        logger.info(f"Job {cleanup_job.name} disabled (CLEANUP_INTERVAL_SECONDS is 0).")

    return scheduler


def build_default_scheduler() -> AsyncIOScheduler:
    from orderbot.jobs.cleanup_job import cleanup_job
    from orderbot.jobs.pull_and_post_job import pull_and_post_job

    return build_scheduler(
        pull_and_post_job,
        cleanup_job,
        settings.pull_interval_seconds,
        settings.cleanup_interval_seconds,
        settings.scheduler_timezone,
    )
