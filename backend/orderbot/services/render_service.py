# /orderbot/services/render_service.py

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from orderbot.config import strings
from orderbot.config.settings import MAX_ACTION_ROWS
from orderbot.models.actions import (
    BulkPageAction, Direction, MissingFormAction, NavigateAction, SetItemAction, encode_action,
)
from orderbot.models.domain import Item, ItemStatus, Order
from orderbot.services.status_policy import StatusPolicy

# Pure functions turning an order and a page number into a Discord message
# payload. No I/O and no clock: the same input always renders the same output.

STATUS_GLYPHS = {
    ItemStatus.UNSET: "⬜",
    ItemStatus.HAVE: "✅",
    ItemStatus.MISSING: "❌",
}

NOTE_INPUT_ID = "note"
NOTE_MAX_LENGTH = 200
MODAL_TITLE_MAX_LENGTH = 45
EMBED_COLOR = 0x5865F2

# Discord component constants
ACTION_ROW = 1
BUTTON = 2
TEXT_INPUT = 4
STYLE_SECONDARY = 2
STYLE_SUCCESS = 3
STYLE_DANGER = 4
TEXT_INPUT_PARAGRAPH = 2


@dataclass
class RenderedView:
    embed: Dict[str, Any]
    components: List[Dict[str, Any]] = field(default_factory=list)
    page: int = 0
    total_pages: int = 1

    def to_message_payload(self) -> Dict[str, Any]:
        return {"embeds": [self.embed], "components": self.components}


def _button(label: str, custom_id: str, style: int, disabled: bool = False) -> Dict[str, Any]:
    return {"type": BUTTON, "style": style, "label": label, "custom_id": custom_id, "disabled": disabled}


def _item_line(number: int, item: Item, detailed: bool) -> str:
    line = f"{STATUS_GLYPHS[item.status]} **{number}. {item.name}**"
    if detailed:
        line += f" x{item.quantity}"
        if item.note:
            line += f" — {item.note}"
    return line


def render_summary(order: Order, page: int, page_size: int, policy: StatusPolicy) -> Dict[str, Any]:
    start, end = order.page_bounds(page, page_size)
    lines = [
        _item_line(index + 1, item, detailed=start <= index < end)
        for index, item in enumerate(order.items)
    ]
    status = policy.derive(order.items)

    header = [f"**{strings.LABEL_ORDER}:** {order.order_id}"]
    if order.customer:
        header.append(f"**{strings.LABEL_CUSTOMER}:** {order.customer}")
    if order.marketplace:
        header.append(f"**{strings.LABEL_MARKETPLACE}:** {order.marketplace}")
    header.append(f"**{strings.LABEL_STATUS}:** **{strings.ORDER_STATUS_LABELS[status.value]}**")

    description = "\n".join(header + [
        "",
        f"**{strings.LABEL_ITEMS}:**",
        "\n".join(lines) if lines else strings.NO_ITEMS,
        "",
        strings.PAGE_INDICATOR.format(
            page=order.clamp_page(page, page_size) + 1,
            total_pages=order.total_pages(page_size),
        ),
    ])
    return {
        "title": strings.ORDER_TITLE,
        "description": description,
        "color": EMBED_COLOR,
        "footer": {"text": strings.ORDER_FOOTER},
    }


def render_controls(order: Order, page: int, page_size: int, message_id: Optional[str] = None) -> List[Dict[str, Any]]:
    page = order.clamp_page(page, page_size)
    last_page = order.total_pages(page_size) - 1
    start, end = order.page_bounds(page, page_size)

    rows = []
    for index in range(start, end):
        item = order.items[index]
        number = index + 1
        have_id = encode_action(SetItemAction(order.order_id, page, item.item_key, ItemStatus.HAVE, message_id))
        missing_id = encode_action(SetItemAction(order.order_id, page, item.item_key, ItemStatus.MISSING, message_id))
        rows.append({"type": ACTION_ROW, "components": [
            _button(strings.BUTTON_HAVE.format(number=number), have_id, STYLE_SUCCESS,
                    disabled=item.status == ItemStatus.HAVE),
            # A missing item stays clickable so its note can be edited.
            _button(strings.BUTTON_MISSING.format(number=number), missing_id, STYLE_DANGER),
        ]})

    rows.append({"type": ACTION_ROW, "components": [
        _button(strings.BUTTON_PREVIOUS, encode_action(NavigateAction(order.order_id, page, Direction.PREV, message_id)),
                STYLE_SECONDARY, disabled=page <= 0),
        _button(strings.BUTTON_NEXT, encode_action(NavigateAction(order.order_id, page, Direction.NEXT, message_id)),
                STYLE_SECONDARY, disabled=page >= last_page),
        _button(strings.BUTTON_PAGE_HAVE, encode_action(BulkPageAction(order.order_id, page, ItemStatus.HAVE, message_id)),
                STYLE_SUCCESS, disabled=start == end),
        _button(strings.BUTTON_PAGE_MISSING, encode_action(BulkPageAction(order.order_id, page, ItemStatus.MISSING, message_id)),
                STYLE_DANGER, disabled=start == end),
    ]})
    return rows[:MAX_ACTION_ROWS]


def render_order(order: Order, page: int, *, page_size: int, policy: StatusPolicy, message_id: Optional[str] = None) -> RenderedView:
    """Renders the summary embed and the control rows for one page of an order."""
    page = order.clamp_page(page, page_size)
    return RenderedView(
        embed=render_summary(order, page, page_size, policy),
        components=render_controls(order, page, page_size, message_id or order.message_id),
        page=page,
        total_pages=order.total_pages(page_size),
    )


def render_missing_prompt(action: SetItemAction, order: Optional[Order] = None) -> Dict[str, Any]:
    """
    Modal asking what is missing. It is the first response to the click, so
    it only uses what is already in memory: when the order is cached the
    title carries the item number and the current note is prefilled.
    """
    number = 0
    current_note = None
    if order is not None:
        for index, item in enumerate(order.items):
            if item.item_key == action.item_key:
                number, current_note = index + 1, item.note
                break

    title = strings.MISSING_PROMPT_TITLE.format(number=number) if number else strings.MISSING_PROMPT_TITLE_GENERIC
    text_input = {
        "type": TEXT_INPUT,
        "custom_id": NOTE_INPUT_ID,
        "label": strings.MISSING_PROMPT_LABEL,
        "style": TEXT_INPUT_PARAGRAPH,
        "required": False,
        "max_length": NOTE_MAX_LENGTH,
        "placeholder": strings.MISSING_PROMPT_PLACEHOLDER,
    }
    if current_note:
        text_input["value"] = current_note
    form_action = MissingFormAction(action.order_id, action.page, action.item_key, action.message_id)
    return {
        "custom_id": encode_action(form_action),
        "title": title[:MODAL_TITLE_MAX_LENGTH],
        "components": [{"type": ACTION_ROW, "components": [text_input]}],
    }
