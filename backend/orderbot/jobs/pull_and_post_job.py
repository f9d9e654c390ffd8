# /orderbot/jobs/pull_and_post_job.py

"""
Pull-and-post job.

Publishes every pending order that is not yet in the channel:

- Fetches pending orders from the ledger
- Skips orders that already carry a message id (the ledger's message id
  column is the idempotency marker); they are refreshed in the cache only,
  under the same per-order lock click handlers hold
- Renders page 0, posts it as a new message, then writes the message id back

The post happens before the message id is recorded. A crash between the two
steps re-posts the order on the next run; the reverse order could lose the
post entirely, so the duplicate is the accepted risk.
"""

import logging

from orderbot.config.settings import settings
from orderbot.models.api import PullReport
from orderbot.models.domain import Order
from orderbot.services.cache_service import OrderCache, order_cache
from orderbot.services.discord_service import DiscordService, discord_service
from orderbot.services.ledger_service import LedgerService, ledger_service
from orderbot.services.render_service import render_order
from orderbot.services.status_policy import StatusPolicy, status_policy
from orderbot.utils.job_guard import GuardedJob
from orderbot.utils.metrics import orders_posted_counter

logger = logging.getLogger(__name__)


class PullAndPostJob:
    name = "pull_and_post"

    def __init__(self, ledger: LedgerService, cache: OrderCache, discord: DiscordService,
                 channel_id: str, page_size: int, policy: StatusPolicy):
        self.ledger = ledger
        self.cache = cache
        self.discord = discord
        self.channel_id = channel_id
        self.page_size = page_size
        self.policy = policy

    async def run(self) -> PullReport:
        report = PullReport()
        # Edits that finish after this point are newer than the read below.
        read_revision = self.cache.revision
        pending = await self.ledger.fetch_pending()
        report.fetched = len(pending)

        if not pending:
            logger.info("No pending orders in the ledger.")
            return report

        logger.info(f"Processing {len(pending)} pending orders")

        for order in pending:
            try:
                async with self.cache.lock(order.order_id):
                    posted = await self._sync_order(order, read_revision)
                if posted:
                    report.posted += 1
                    orders_posted_counter.inc()
                else:
                    report.skipped += 1

            except Exception as e:
                # Fail safely: log and continue with the next order
                report.failed += 1
                logger.error(f"Error posting order {order.order_id}: {e}", exc_info=True)
                continue

        logger.info(
            f"Pull-and-post complete: {report.fetched} fetched, {report.posted} posted, "
            f"{report.skipped} already posted, {report.failed} failed"
        )
        return report

    async def _sync_order(self, order: Order, read_revision: int) -> bool:
        """Refreshes one order in the cache and posts it if needed. Returns True when posted."""
        cached = self.cache.get(order.order_id)
        if order.message_id:
            self.cache.put(order, read_revision)
            return False

        if cached is not None and cached.message_id:
            # Posted earlier but the ledger write was lost: record it, do not post again.
            self.cache.put(order, read_revision)
            await self.ledger.record_message_id(order.order_id, cached.message_id)
            logger.info(f"Re-recorded message {cached.message_id} for order {order.order_id}")
            return False

        self.cache.put(order, read_revision)
        self.cache.set_page(order.order_id, 0)
        view = render_order(self.cache.get(order.order_id), 0, page_size=self.page_size, policy=self.policy)
        message_id = await self.discord.send_message(self.channel_id, view.to_message_payload())

        # Cache first, so clicks on the new message resolve even if the ledger write fails.
        self.cache.set_message_id(order.order_id, message_id)
        await self.ledger.record_message_id(order.order_id, message_id)
        logger.info(f"Posted order {order.order_id} as message {message_id}")
        return True


# Globally accessible instance
pull_and_post_job = GuardedJob(
    PullAndPostJob.name,
    PullAndPostJob(ledger_service, order_cache, discord_service, settings.channel_id, settings.page_size, status_policy).run,
)
