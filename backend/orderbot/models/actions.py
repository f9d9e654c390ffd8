# /orderbot/models/actions.py

"""
Action identifiers carried by every button and modal.

A control's ``custom_id`` is the only state Discord hands back on a click, so
it encodes everything needed to route the click without a server-side
session::

    {kind}:{sub}:{order_id}:{page}:{item_key}:{message_id}

``kind``, ``sub``, ``page`` and ``message_id`` never contain ``:``. Order ids
have ``%`` and ``:`` percent-escaped. The item key is whatever sits between
the page field and the last ``:``, so keys such as ``SKU:12:blue`` survive
the round trip. Empty fields stand for "not needed".
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from orderbot.models.domain import ItemStatus
from orderbot.utils.exceptions import ActionDecodeError

DELIMITER = ":"
MAX_CUSTOM_ID_LENGTH = 100


class ActionKind(str, Enum):
    NAVIGATE = "nav"
    SET_ITEM = "set"
    BULK_PAGE = "bulk"
    MISSING_FORM = "modal"


class Direction(str, Enum):
    PREV = "prev"
    NEXT = "next"


@dataclass(frozen=True)
class NavigateAction:
    order_id: str
    page: int
    direction: Direction
    message_id: Optional[str] = None


@dataclass(frozen=True)
class SetItemAction:
    """``status`` MISSING means "open the prompt", the write happens on MissingFormAction."""
    order_id: str
    page: int
    item_key: str
    status: ItemStatus
    message_id: Optional[str] = None

    @property
    def needs_prompt(self) -> bool:
        return self.status == ItemStatus.MISSING


@dataclass(frozen=True)
class BulkPageAction:
    order_id: str
    page: int
    status: ItemStatus
    message_id: Optional[str] = None


@dataclass(frozen=True)
class MissingFormAction:
    order_id: str
    page: int
    item_key: str
    message_id: Optional[str] = None


Action = Union[NavigateAction, SetItemAction, BulkPageAction, MissingFormAction]

_STATUS_SUBS = {"have": ItemStatus.HAVE, "missing": ItemStatus.MISSING}
_SUB_FOR_STATUS = {status: sub for sub, status in _STATUS_SUBS.items()}


def _escape_order_id(order_id: str) -> str:
    return order_id.replace("%", "%25").replace(DELIMITER, "%3A")


def _unescape_order_id(value: str) -> str:
    return value.replace("%3A", DELIMITER).replace("%25", "%")


def _join(kind: ActionKind, sub: str, order_id: str, page: int, item_key: str, message_id: Optional[str]) -> str:
    head = DELIMITER.join([kind.value, sub, _escape_order_id(order_id), str(page), item_key])
    custom_id = f"{head}{DELIMITER}{message_id or ''}"
    if len(custom_id) > MAX_CUSTOM_ID_LENGTH and message_id:
        # The hosting message id is also present on the interaction itself.
        custom_id = f"{head}{DELIMITER}"
    if len(custom_id) > MAX_CUSTOM_ID_LENGTH:
        raise ValueError(f"custom_id for order {order_id} exceeds {MAX_CUSTOM_ID_LENGTH} characters")
    return custom_id


def encode_action(action: Action) -> str:
    if isinstance(action, NavigateAction):
        return _join(ActionKind.NAVIGATE, action.direction.value, action.order_id, action.page, "", action.message_id)
    if isinstance(action, SetItemAction):
        return _join(ActionKind.SET_ITEM, _SUB_FOR_STATUS[action.status], action.order_id, action.page,
                     action.item_key, action.message_id)
    if isinstance(action, BulkPageAction):
        return _join(ActionKind.BULK_PAGE, _SUB_FOR_STATUS[action.status], action.order_id, action.page,
                     "", action.message_id)
    if isinstance(action, MissingFormAction):
        return _join(ActionKind.MISSING_FORM, "missing", action.order_id, action.page,
                     action.item_key, action.message_id)
    raise TypeError(f"Unsupported action type: {type(action).__name__}")


def decode_action(custom_id: str) -> Action:
    """Parses a custom_id back into a structured action. Raises ActionDecodeError."""
    if not custom_id:
        raise ActionDecodeError(custom_id, "empty identifier")

    parts = custom_id.split(DELIMITER, 4)
    if len(parts) != 5:
        raise ActionDecodeError(custom_id, "too few fields")
    kind_raw, sub, order_raw, page_raw, rest = parts
    item_key, sep, message_id = rest.rpartition(DELIMITER)
    if not sep:
        raise ActionDecodeError(custom_id, "missing message id field")

    try:
        kind = ActionKind(kind_raw)
    except ValueError:
        raise ActionDecodeError(custom_id, f"unknown action kind '{kind_raw}'")

    order_id = _unescape_order_id(order_raw)
    if not order_id:
        raise ActionDecodeError(custom_id, "missing order id")

    try:
        page = int(page_raw)
    except ValueError:
        raise ActionDecodeError(custom_id, f"invalid page '{page_raw}'")
    if page < 0:
        raise ActionDecodeError(custom_id, "negative page")

    message_id = message_id or None

    if kind == ActionKind.NAVIGATE:
        try:
            direction = Direction(sub)
        except ValueError:
            raise ActionDecodeError(custom_id, f"unknown direction '{sub}'")
        return NavigateAction(order_id=order_id, page=page, direction=direction, message_id=message_id)

    if kind == ActionKind.MISSING_FORM:
        if not item_key:
            raise ActionDecodeError(custom_id, "missing item key")
        return MissingFormAction(order_id=order_id, page=page, item_key=item_key, message_id=message_id)

    status = _STATUS_SUBS.get(sub)
    if status is None:
        raise ActionDecodeError(custom_id, f"unknown status '{sub}'")

    if kind == ActionKind.BULK_PAGE:
        return BulkPageAction(order_id=order_id, page=page, status=status, message_id=message_id)

    if not item_key:
        raise ActionDecodeError(custom_id, "missing item key")
    return SetItemAction(order_id=order_id, page=page, item_key=item_key, status=status, message_id=message_id)
