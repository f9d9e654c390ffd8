# /orderbot/jobs/cleanup_job.py

"""
Cleanup job.

Removes confirmed orders from the channel and from the ledger:

- Fetches confirmed orders from the ledger
- Deletes each order's chat message (a message that is already gone counts
  as deleted)
- Only then deletes the order's ledger rows by message id, and evicts the
  order from the local cache

Orders without a recorded message id were never posted and are left alone.
"""

import logging

from orderbot.config.settings import settings
from orderbot.models.api import CleanupReport
from orderbot.services.cache_service import OrderCache, order_cache
from orderbot.services.discord_service import DiscordService, discord_service
from orderbot.services.ledger_service import LedgerService, ledger_service
from orderbot.utils.job_guard import GuardedJob
from orderbot.utils.metrics import orders_removed_counter

logger = logging.getLogger(__name__)


class CleanupJob:
    name = "cleanup"

    def __init__(self, ledger: LedgerService, cache: OrderCache, discord: DiscordService, channel_id: str):
        self.ledger = ledger
        self.cache = cache
        self.discord = discord
        self.channel_id = channel_id

    async def run(self) -> CleanupReport:
        report = CleanupReport()
        confirmed = await self.ledger.fetch_confirmed()
        report.confirmed = len(confirmed)

        if not confirmed:
            logger.info("No confirmed orders to clean up.")
            return report

        for entry in confirmed:
            if not entry.message_id:
                report.skipped += 1
                logger.warning(f"Confirmed order {entry.order_id} has no message id. Skipping.")
                continue

            try:
                deleted = await self.discord.delete_message(self.channel_id, entry.message_id)
                report.messages_deleted += 1
                if not deleted:
                    logger.info(f"Message {entry.message_id} for order {entry.order_id} was already gone")

                rows = await self.ledger.delete_by_message_id(entry.message_id)
                report.rows_deleted += rows

                async with self.cache.lock(entry.order_id):
                    removed = self.cache.remove(entry.order_id)
                if removed is None:
                    # Cached under a different id than the sheet reports now.
                    stale = self.cache.find_by_message_id(entry.message_id)
                    if stale is not None:
                        async with self.cache.lock(stale.order_id):
                            self.cache.remove(stale.order_id)
                orders_removed_counter.inc()
                logger.info(f"Removed confirmed order {entry.order_id}: message {entry.message_id}, {rows} ledger rows")

            except Exception as e:
                # Fail safely: log and continue with the next order
                report.failed += 1
                logger.error(f"Error cleaning up order {entry.order_id}: {e}", exc_info=True)
                continue

        logger.info(
            f"Cleanup complete: {report.confirmed} confirmed, {report.messages_deleted} messages and "
            f"{report.rows_deleted} rows removed, {report.skipped} skipped, {report.failed} failed"
        )
        return report


# Globally accessible instance
cleanup_job = GuardedJob(
    CleanupJob.name,
    CleanupJob(ledger_service, order_cache, discord_service, settings.channel_id).run,
)
