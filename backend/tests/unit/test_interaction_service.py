# backend/tests/unit/test_interaction_service.py
import asyncio

import pytest

from orderbot.config import strings
from orderbot.models.actions import (
    BulkPageAction, Direction, MissingFormAction, NavigateAction, SetItemAction, encode_action,
)
from orderbot.models.api import CallbackType, CleanupReport, EPHEMERAL_FLAG, Interaction, PullReport
from orderbot.models.domain import ItemStatus
from orderbot.services.interaction_service import InteractionState
from orderbot.utils.exceptions import InteractionExpired, LedgerProtocolError, LedgerUnavailable
from orderbot.utils.job_guard import GuardedJob, JobState

from conftest import FIXED_NOW, command_interaction, component_interaction, make_order, modal_interaction, statuses


def click(action) -> Interaction:
    return Interaction.model_validate(component_interaction(encode_action(action)))


def submit(action, note) -> Interaction:
    return Interaction.model_validate(modal_interaction(encode_action(action), note))


def command(name) -> Interaction:
    return Interaction.model_validate(command_interaction(name))


def last_edit_description(discord) -> str:
    payload = discord.edit_original.await_args.args[1]
    return payload["embeds"][0]["description"]


# --- Acknowledgment ---

def test_ping_is_answered_with_pong(service):
    ctx = service.acknowledge(Interaction.model_validate({"id": "p", "application_id": "4242", "type": 1, "token": "t"}))
    assert ctx.callback.to_response() == {"type": 1}
    assert ctx.state == InteractionState.RESOLVED


def test_button_click_is_deferred(service, cached_order):
    ctx = service.acknowledge(click(SetItemAction("A100", 0, "SKU-1", ItemStatus.HAVE, "900")))
    assert ctx.callback.type == CallbackType.DEFERRED_UPDATE_MESSAGE
    assert ctx.state == InteractionState.ACKNOWLEDGED


def test_command_is_deferred_privately(service):
    ctx = service.acknowledge(command("ping"))
    assert ctx.callback.to_response() == {"type": 5, "data": {"flags": EPHEMERAL_FLAG}}


@pytest.mark.asyncio
async def test_missing_click_answers_with_prompt_and_no_io(service, cached_order, ledger, discord):
    ctx = service.acknowledge(click(SetItemAction("A100", 0, "SKU-2", ItemStatus.MISSING, "900")))

    assert ctx.callback.type == CallbackType.MODAL
    assert ctx.callback.data["title"] == "Missing item 2"
    assert ctx.state == InteractionState.RESOLVED

    assert await service.resolve(ctx) == InteractionState.RESOLVED
    ledger.set_item_status.assert_not_awaited()
    discord.edit_original.assert_not_awaited()


# --- Navigation ---

@pytest.mark.asyncio
async def test_next_page_moves_cursor_without_ledger_write(service, cached_order, ledger, discord):
    ctx = await service.handle(click(NavigateAction("A100", 0, Direction.NEXT, "900")))

    assert ctx.state == InteractionState.RESOLVED
    assert cached_order.page == 1
    ledger.set_item_status.assert_not_awaited()
    assert "Page 2/2" in last_edit_description(discord)


@pytest.mark.asyncio
async def test_next_on_last_page_is_a_no_op(service, cached_order, discord):
    await service.handle(click(NavigateAction("A100", 1, Direction.NEXT, "900")))

    assert cached_order.page == 1
    assert "Page 2/2" in last_edit_description(discord)


# --- Single item ---

@pytest.mark.asyncio
async def test_have_writes_through_and_rerenders_in_place(service, cached_order, ledger, discord):
    ctx = await service.handle(click(SetItemAction("A100", 0, "SKU-1", ItemStatus.HAVE, "900")))

    assert ctx.state == InteractionState.RESOLVED
    assert cached_order.items[0].status == ItemStatus.HAVE
    ledger.set_item_status.assert_awaited_once_with("SKU-1", "HAVE", "ana", FIXED_NOW)
    discord.edit_original.assert_awaited_once()
    assert discord.edit_original.await_args.args[0] == "tok-1"
    discord.send_message.assert_not_awaited()
    assert "✅ **1. Product 1**" in last_edit_description(discord)


@pytest.mark.asyncio
async def test_repeated_have_is_idempotent(service, cached_order, ledger, discord):
    action = SetItemAction("A100", 0, "SKU-1", ItemStatus.HAVE, "900")

    await service.handle(click(action))
    first_write = ledger.set_item_status.await_args
    first_render = discord.edit_original.await_args.args[1]
    await service.handle(click(action))

    assert ledger.set_item_status.await_args == first_write
    assert discord.edit_original.await_args.args[1] == first_render


@pytest.mark.asyncio
async def test_missing_with_note_then_have_clears_note(service, cached_order, ledger, discord):
    await service.handle(submit(MissingFormAction("A100", 0, "SKU-1", "900"), "no lavender"))

    ledger.set_item_status.assert_awaited_with("SKU-1", "MISSING: no lavender", "ana", FIXED_NOW)
    assert cached_order.items[0].note == "no lavender"
    assert "❌ **1. Product 1** x2 — no lavender" in last_edit_description(discord)

    await service.handle(click(SetItemAction("A100", 0, "SKU-1", ItemStatus.HAVE, "900")))

    ledger.set_item_status.assert_awaited_with("SKU-1", "HAVE", "ana", FIXED_NOW)
    assert cached_order.items[0].status == ItemStatus.HAVE
    assert cached_order.items[0].note is None
    assert "no lavender" not in last_edit_description(discord)


@pytest.mark.asyncio
async def test_missing_without_note(service, cached_order, ledger):
    await service.handle(submit(MissingFormAction("A100", 0, "SKU-3", "900"), "   "))
    ledger.set_item_status.assert_awaited_once_with("SKU-3", "MISSING", "ana", FIXED_NOW)


@pytest.mark.asyncio
async def test_clicked_message_id_is_adopted(service, cache, discord):
    cache.put(make_order(message_id=None))

    await service.handle(click(NavigateAction("A100", 0, Direction.NEXT)))

    assert cache.get("A100").message_id == "900"


# --- Bulk ---

@pytest.mark.asyncio
async def test_bulk_have_writes_every_item_on_the_page(service, cached_order, ledger):
    await service.handle(click(BulkPageAction("A100", 0, ItemStatus.HAVE, "900")))

    assert [c.args[0] for c in ledger.set_item_status.await_args_list] == ["SKU-1", "SKU-2", "SKU-3", "SKU-4"]
    assert ledger.set_item_status.await_count == 4
    assert statuses(cached_order) == [ItemStatus.HAVE] * 4 + [ItemStatus.UNSET]


@pytest.mark.asyncio
async def test_bulk_partial_failure_keeps_successes_and_notifies(service, cached_order, ledger, discord):
    ledger.set_item_status.side_effect = [None, LedgerUnavailable("set_item_status", "timeout"), None, None]

    ctx = await service.handle(click(BulkPageAction("A100", 0, ItemStatus.MISSING, "900")))

    assert ctx.state == InteractionState.RESOLVED
    assert statuses(cached_order) == [
        ItemStatus.MISSING, ItemStatus.UNSET, ItemStatus.MISSING, ItemStatus.MISSING, ItemStatus.UNSET,
    ]
    discord.edit_original.assert_awaited_once()
    discord.send_followup.assert_awaited_once_with(
        "tok-1", strings.BULK_PARTIAL_FAILURE.format(failed=1, total=4), ephemeral=True,
    )


# --- Failures ---

@pytest.mark.asyncio
async def test_unknown_order_gets_private_notice(service, ledger, discord):
    ctx = await service.handle(click(SetItemAction("Z999", 0, "SKU-1", ItemStatus.HAVE, "900")))

    assert ctx.state == InteractionState.FAILED
    ledger.fetch_pending.assert_awaited_once()
    discord.send_followup.assert_awaited_once_with("tok-1", strings.ORDER_NOT_FOUND, ephemeral=True)
    discord.edit_original.assert_not_awaited()


@pytest.mark.asyncio
async def test_uncached_order_is_fetched_from_ledger(service, cache, ledger):
    ledger.fetch_pending.return_value = [make_order("B200")]

    ctx = await service.handle(click(SetItemAction("B200", 0, "SKU-2", ItemStatus.HAVE, "900")))

    assert ctx.state == InteractionState.RESOLVED
    assert cache.get("B200").items[1].status == ItemStatus.HAVE


@pytest.mark.asyncio
@pytest.mark.parametrize("error, notice", [
    (LedgerUnavailable("set_item_status", "timed out"), strings.LEDGER_UNAVAILABLE),
    (LedgerProtocolError("set_item_status", "bad key"), strings.LEDGER_REJECTED),
])
async def test_ledger_failure_rolls_back_and_notifies(service, cached_order, ledger, discord, error, notice):
    cached_order.items[0] = cached_order.items[0].model_copy(update={"status": ItemStatus.MISSING, "note": "old"})
    ledger.set_item_status.side_effect = error

    ctx = await service.handle(click(SetItemAction("A100", 0, "SKU-1", ItemStatus.HAVE, "900")))

    assert ctx.state == InteractionState.FAILED
    assert cached_order.items[0].status == ItemStatus.MISSING
    assert cached_order.items[0].note == "old"
    discord.send_followup.assert_awaited_once_with("tok-1", notice, ephemeral=True)
    discord.edit_original.assert_not_awaited()


@pytest.mark.asyncio
async def test_expired_token_falls_back_to_channel_edit(service, cached_order, discord):
    discord.edit_original.side_effect = InteractionExpired("edit_original")

    ctx = await service.handle(click(SetItemAction("A100", 0, "SKU-1", ItemStatus.HAVE, "900")))

    assert ctx.state == InteractionState.RESOLVED
    discord.edit_message.assert_awaited_once()
    assert discord.edit_message.await_args.args[:2] == ("555", "900")


@pytest.mark.asyncio
async def test_expired_notice_is_only_logged(service, cached_order, ledger, discord):
    ledger.set_item_status.side_effect = LedgerUnavailable("set_item_status", "timed out")
    discord.send_followup.side_effect = InteractionExpired("send_followup")

    ctx = await service.handle(click(SetItemAction("A100", 0, "SKU-1", ItemStatus.HAVE, "900")))

    assert ctx.state == InteractionState.FAILED


@pytest.mark.asyncio
async def test_undecodable_identifier_gets_unknown_action_notice(service, discord):
    ctx = await service.handle(Interaction.model_validate(component_interaction("legacy_button_1")))

    assert ctx.callback.type == CallbackType.DEFERRED_UPDATE_MESSAGE
    discord.send_followup.assert_awaited_once_with("tok-1", strings.UNKNOWN_ACTION, ephemeral=True)


@pytest.mark.asyncio
async def test_same_order_updates_never_overlap(service, cached_order, ledger):
    active = 0
    max_active = 0

    async def slow_write(*args):
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        await asyncio.sleep(0.01)
        active -= 1

    ledger.set_item_status.side_effect = slow_write

    await asyncio.gather(*[
        service.handle(click(SetItemAction("A100", 0, f"SKU-{n}", ItemStatus.HAVE, "900")))
        for n in range(1, 5)
    ])

    assert max_active == 1
    assert statuses(cached_order)[:4] == [ItemStatus.HAVE] * 4


# --- Commands ---

@pytest.mark.asyncio
async def test_ping_command(service, discord):
    await service.handle(command("ping"))
    discord.edit_original.assert_awaited_once_with("tok-3", {"content": strings.PONG})


@pytest.mark.asyncio
async def test_sync_command_runs_job_and_reports(service, discord, mocker):
    job = GuardedJob("pull_and_post", mocker.AsyncMock(return_value=PullReport(fetched=3, posted=2, skipped=1)))
    service.jobs = {"pull_and_post": job}

    ctx = await service.handle(command("sync"))

    assert ctx.state == InteractionState.RESOLVED
    discord.edit_original.assert_awaited_once_with(
        "tok-3", {"content": strings.SYNC_DONE.format(posted=2, skipped=1, failed=0)},
    )


@pytest.mark.asyncio
async def test_cleanup_command_reports_counts(service, discord, mocker):
    report = CleanupReport(confirmed=2, messages_deleted=2, rows_deleted=5)
    service.jobs = {"cleanup": GuardedJob("cleanup", mocker.AsyncMock(return_value=report))}

    await service.handle(command("cleanup"))

    discord.edit_original.assert_awaited_once_with(
        "tok-3", {"content": strings.CLEANUP_DONE.format(messages_deleted=2, rows_deleted=5, failed=0)},
    )


@pytest.mark.asyncio
async def test_command_while_job_running(service, discord, mocker):
    job = GuardedJob("pull_and_post", mocker.AsyncMock())
    job.state = JobState.RUNNING
    service.jobs = {"pull_and_post": job}

    await service.handle(command("sync"))

    job.func.assert_not_awaited()
    discord.edit_original.assert_awaited_once_with("tok-3", {"content": strings.JOB_ALREADY_RUNNING})


@pytest.mark.asyncio
async def test_command_job_failure_is_reported(service, discord, mocker):
    failing = mocker.AsyncMock(side_effect=LedgerUnavailable("list_pending", "timed out"))
    service.jobs = {"pull_and_post": GuardedJob("pull_and_post", failing)}

    ctx = await service.handle(command("sync"))

    assert ctx.state == InteractionState.FAILED
    discord.edit_original.assert_awaited_once_with("tok-3", {"content": strings.LEDGER_UNAVAILABLE})


@pytest.mark.asyncio
async def test_unknown_command(service, discord):
    await service.handle(command("dance"))
    discord.edit_original.assert_awaited_once_with("tok-3", {"content": strings.UNKNOWN_COMMAND})
