# /orderbot/services/interaction_service.py

"""
Interaction handling for order messages.

Every Discord interaction goes through two phases:

1. ``acknowledge()`` runs inside the HTTP request and must answer within
   Discord's three second budget, so it does no I/O at all. Button clicks and
   modal submissions get a deferred update, slash commands a deferred private
   reply. The one exception is the "missing" button: Discord only lets a
   modal be the *first* answer to a click, so that click is answered with
   the prompt itself and is finished by the modal submission.
2. ``resolve()`` runs after the response has been sent. It updates the cache,
   writes through to the ledger, re-renders and replaces the order message
   in place. Failures end up as a private notice to the user who clicked;
   nothing is ever posted to the shared channel from here.

Handlers for the same order are serialized with the cache's per-order lock,
held from the cache read to the message edit. The pull job takes the same
lock, so a ledger refresh never lands between a write and its re-render.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional

from orderbot.config import strings
from orderbot.config.settings import settings
from orderbot.models.actions import (
    Action, BulkPageAction, Direction, MissingFormAction, NavigateAction, SetItemAction, decode_action,
)
from orderbot.models.api import CallbackType, EPHEMERAL_FLAG, Interaction, InteractionCallback, InteractionType
from orderbot.models.domain import ItemStatus, Order, compose_status_value
from orderbot.services.cache_service import OrderCache, order_cache
from orderbot.services.discord_service import DiscordService, discord_service
from orderbot.services.ledger_service import LedgerService, ledger_service
from orderbot.services.render_service import NOTE_INPUT_ID, render_missing_prompt, render_order
from orderbot.services.status_policy import StatusPolicy, status_policy
from orderbot.jobs.cleanup_job import cleanup_job
from orderbot.jobs.pull_and_post_job import pull_and_post_job
from orderbot.utils.exceptions import (
    ActionDecodeError, ChatPlatformError, InteractionExpired, LedgerProtocolError, LedgerUnavailable, OrderNotInCache,
)
from orderbot.utils.job_guard import GuardedJob
from orderbot.utils.metrics import interaction_counter

logger = logging.getLogger(__name__)


class InteractionState(Enum):
    RECEIVED = "received"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass
class InteractionContext:
    interaction: Interaction
    action: Optional[Action] = None
    decode_error: Optional[ActionDecodeError] = None
    callback: Optional[InteractionCallback] = None
    state: InteractionState = InteractionState.RECEIVED
    # Set when the acknowledgment already completed the interaction (pong, prompt).
    finished_on_ack: bool = False

    @property
    def kind(self) -> str:
        if self.interaction.type == InteractionType.APPLICATION_COMMAND:
            return f"command:{self.interaction.command_name or 'unknown'}"
        if self.action is None:
            return self.interaction.type.name.lower()
        return type(self.action).__name__

    @property
    def message_id(self) -> Optional[str]:
        if self.interaction.message is not None:
            return self.interaction.message.id
        return getattr(self.action, "message_id", None)

    @property
    def channel_id(self) -> Optional[str]:
        if self.interaction.message is not None and self.interaction.message.channel_id:
            return self.interaction.message.channel_id
        return self.interaction.channel_id


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InteractionService:
    def __init__(self, cache: OrderCache, ledger: LedgerService, discord: DiscordService, page_size: int,
                 policy: StatusPolicy, jobs: Optional[Dict[str, GuardedJob]] = None,
                 clock: Callable[[], str] = _utc_now_iso):
        self.cache = cache
        self.ledger = ledger
        self.discord = discord
        self.page_size = page_size
        self.policy = policy
        self.jobs = jobs or {}
        self.clock = clock

    # --- Phase 1: acknowledgment (no I/O) ---

    def acknowledge(self, interaction: Interaction) -> InteractionContext:
        ctx = InteractionContext(interaction=interaction)

        if interaction.type == InteractionType.PING:
            ctx.callback = InteractionCallback(type=CallbackType.PONG)
            ctx.finished_on_ack = True

        elif interaction.type == InteractionType.APPLICATION_COMMAND:
            ctx.callback = InteractionCallback(
                type=CallbackType.DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE,
                data={"flags": EPHEMERAL_FLAG},
            )

        elif interaction.type in (InteractionType.MESSAGE_COMPONENT, InteractionType.MODAL_SUBMIT):
            try:
                ctx.action = decode_action(interaction.custom_id)
            except ActionDecodeError as e:
                logger.warning(f"Undecodable action on interaction {interaction.id}: {e}")
                ctx.decode_error = e

            if isinstance(ctx.action, SetItemAction) and ctx.action.needs_prompt:
                prompt = render_missing_prompt(ctx.action, self.cache.get(ctx.action.order_id))
                ctx.callback = InteractionCallback(type=CallbackType.MODAL, data=prompt)
                ctx.finished_on_ack = True
            else:
                ctx.callback = InteractionCallback(type=CallbackType.DEFERRED_UPDATE_MESSAGE)

        else:
            ctx.callback = InteractionCallback(
                type=CallbackType.CHANNEL_MESSAGE_WITH_SOURCE,
                data={"content": strings.UNKNOWN_ACTION, "flags": EPHEMERAL_FLAG},
            )
            ctx.finished_on_ack = True

        ctx.state = InteractionState.ACKNOWLEDGED
        if ctx.finished_on_ack:
            ctx.state = InteractionState.RESOLVED
            interaction_counter.labels(kind=ctx.kind, outcome="resolved").inc()
        return ctx

    # --- Phase 2: deferred work ---

    async def resolve(self, ctx: InteractionContext) -> InteractionState:
        if ctx.state != InteractionState.ACKNOWLEDGED:
            return ctx.state

        try:
            if ctx.interaction.type == InteractionType.APPLICATION_COMMAND:
                await self._run_command(ctx)
            elif ctx.decode_error is not None:
                await self._notify(ctx, strings.UNKNOWN_ACTION)
            else:
                await self._apply_action(ctx)
            ctx.state = InteractionState.RESOLVED

        except InteractionExpired as e:
            logger.error(f"Interaction {ctx.interaction.id} expired before it could be answered: {e}")
            ctx.state = InteractionState.FAILED
        except OrderNotInCache as e:
            logger.warning(f"Interaction {ctx.interaction.id} references an unknown order: {e}")
            await self._notify(ctx, strings.ORDER_NOT_FOUND)
            ctx.state = InteractionState.FAILED
        except LedgerUnavailable as e:
            logger.warning(f"Ledger unavailable while handling interaction {ctx.interaction.id}: {e}")
            await self._notify(ctx, strings.LEDGER_UNAVAILABLE)
            ctx.state = InteractionState.FAILED
        except LedgerProtocolError as e:
            logger.error(f"Ledger rejected interaction {ctx.interaction.id}: {e}")
            await self._notify(ctx, strings.LEDGER_REJECTED)
            ctx.state = InteractionState.FAILED
        except Exception as e:
            logger.error(f"Error handling interaction {ctx.interaction.id}: {e}", exc_info=True)
            await self._notify(ctx, strings.GENERIC_ERROR)
            ctx.state = InteractionState.FAILED

        interaction_counter.labels(kind=ctx.kind, outcome=ctx.state.value).inc()
        return ctx.state

    async def handle(self, interaction: Interaction) -> InteractionContext:
        """Both phases back to back; used by scripts and tests, not by the HTTP route."""
        ctx = self.acknowledge(interaction)
        await self.resolve(ctx)
        return ctx

    # --- Order actions ---

    async def _apply_action(self, ctx: InteractionContext):
        action = ctx.action
        async with self.cache.lock(action.order_id):
            order = await self.cache.get_or_fetch(action.order_id)
            if order is None:
                raise OrderNotInCache(action.order_id)
            if ctx.message_id and not order.message_id:
                self.cache.set_message_id(order.order_id, ctx.message_id)

            failed = total = 0
            if isinstance(action, NavigateAction):
                step = -1 if action.direction == Direction.PREV else 1
                self.cache.set_page(order.order_id, action.page + step)

            elif isinstance(action, SetItemAction):
                self.cache.set_page(order.order_id, action.page)
                await self._write_item(order.order_id, action.item_key, action.status, None, ctx.interaction.actor)

            elif isinstance(action, MissingFormAction):
                note = (ctx.interaction.text_input(NOTE_INPUT_ID) or "").strip() or None
                self.cache.set_page(order.order_id, action.page)
                await self._write_item(order.order_id, action.item_key, ItemStatus.MISSING, note, ctx.interaction.actor)

            elif isinstance(action, BulkPageAction):
                page = self.cache.set_page(order.order_id, action.page)
                failed, total = await self._write_page(order.order_id, page, action.status, ctx.interaction.actor)

            await self._refresh_view(ctx, self.cache.get(order.order_id))

        if failed:
            await self._notify(ctx, strings.BULK_PARTIAL_FAILURE.format(failed=failed, total=total))

    async def _write_item(self, order_id: str, item_key: str, status: ItemStatus, note: Optional[str], actor: str):
        """Cache first, then the ledger; a failed write restores the item's previous cached state."""
        previous = self.cache.mutate_item(order_id, item_key, status, note)
        try:
            await self.ledger.set_item_status(item_key, compose_status_value(status, note), actor, self.clock())
        except Exception:
            self.cache.mutate_item(order_id, item_key, previous.status, previous.note)
            raise

    async def _write_page(self, order_id: str, page: int, status: ItemStatus, actor: str) -> tuple[int, int]:
        """One ledger write per item, in order. Earlier successes are kept when a later item fails."""
        order = self.cache.get(order_id)
        item_keys = [item.item_key for item in order.page_items(page, self.page_size)]
        failed = 0
        for item_key in item_keys:
            try:
                await self._write_item(order_id, item_key, status, None, actor)
            except (LedgerUnavailable, LedgerProtocolError) as e:
                failed += 1
                logger.warning(f"Bulk update of {item_key} in order {order_id} failed: {e}")
        if failed:
            logger.warning(f"Bulk update of order {order_id} page {page}: {failed}/{len(item_keys)} items failed")
        return failed, len(item_keys)

    async def _refresh_view(self, ctx: InteractionContext, order: Order):
        view = render_order(order, order.page, page_size=self.page_size, policy=self.policy,
                            message_id=order.message_id or ctx.message_id)
        try:
            await self.discord.edit_original(ctx.interaction.token, view.to_message_payload())
        except InteractionExpired:
            message_id = order.message_id or ctx.message_id
            if not (message_id and ctx.channel_id):
                raise
            # The token is gone but the bot can still edit its own message.
            logger.warning(f"Interaction {ctx.interaction.id} expired; editing message {message_id} directly")
            await self.discord.edit_message(ctx.channel_id, message_id, view.to_message_payload())

    # --- Slash commands ---

    async def _run_command(self, ctx: InteractionContext):
        name = ctx.interaction.command_name
        if name == "ping":
            await self._reply(ctx, strings.PONG)
            return

        job_name = {"sync": "pull_and_post", "cleanup": "cleanup"}.get(name)
        job = self.jobs.get(job_name) if job_name else None
        if job is None:
            await self._reply(ctx, strings.UNKNOWN_COMMAND)
            return

        logger.info(f"Job '{job.name}' triggered on demand by {ctx.interaction.actor}")
        report = await job.trigger()
        if report is None:
            await self._reply(ctx, strings.JOB_ALREADY_RUNNING)
        elif job_name == "pull_and_post":
            await self._reply(ctx, strings.SYNC_DONE.format(posted=report.posted, skipped=report.skipped, failed=report.failed))
        else:
            await self._reply(ctx, strings.CLEANUP_DONE.format(
                messages_deleted=report.messages_deleted, rows_deleted=report.rows_deleted, failed=report.failed,
            ))

    async def _reply(self, ctx: InteractionContext, content: str):
        await self.discord.edit_original(ctx.interaction.token, {"content": content})

    async def _notify(self, ctx: InteractionContext, content: str):
        """Private notice to the user; never raises, since it already runs on a failure path."""
        try:
            if ctx.interaction.type == InteractionType.APPLICATION_COMMAND:
                await self._reply(ctx, content)
            else:
                await self.discord.send_followup(ctx.interaction.token, content, ephemeral=True)
        except InteractionExpired:
            logger.error(f"Could not notify user of interaction {ctx.interaction.id}: interaction expired")
        except ChatPlatformError as e:
            logger.error(f"Could not notify user of interaction {ctx.interaction.id}: {e}")


# Globally accessible instance
interaction_service = InteractionService(
    order_cache,
    ledger_service,
    discord_service,
    settings.page_size,
    status_policy,
    jobs={"pull_and_post": pull_and_post_job, "cleanup": cleanup_job},
)
