# backend/tests/unit/test_actions.py
import pytest

from orderbot.models.actions import (
    MAX_CUSTOM_ID_LENGTH, BulkPageAction, Direction, MissingFormAction, NavigateAction, SetItemAction,
    decode_action, encode_action,
)
from orderbot.models.domain import ItemStatus
from orderbot.utils.exceptions import ActionDecodeError


def test_set_item_wire_format():
    action = SetItemAction("A100", 1, "SKU-3", ItemStatus.HAVE, "900")
    assert encode_action(action) == "set:have:A100:1:SKU-3:900"
    assert decode_action("set:have:A100:1:SKU-3:900") == action


def test_item_key_may_contain_colons():
    action = SetItemAction("A100", 0, "SKU:12:blue", ItemStatus.MISSING, "900")
    custom_id = encode_action(action)
    assert custom_id == "set:missing:A100:0:SKU:12:blue:900"
    assert decode_action(custom_id) == action


def test_order_id_colons_and_percents_are_escaped():
    action = NavigateAction("50%:off", 2, Direction.NEXT, "900")
    custom_id = encode_action(action)
    assert custom_id == "nav:next:50%25%3Aoff:2::900"
    assert decode_action(custom_id) == action


def test_navigation_and_bulk_have_no_item_key():
    assert decode_action("nav:prev:A100:3::") == NavigateAction("A100", 3, Direction.PREV, None)
    assert decode_action("bulk:missing:A100:2::900") == BulkPageAction("A100", 2, ItemStatus.MISSING, "900")


def test_missing_form_action():
    action = MissingFormAction("A100", 0, "SKU-1", "900")
    assert encode_action(action) == "modal:missing:A100:0:SKU-1:900"
    assert decode_action("modal:missing:A100:0:SKU-1:900") == action


def test_set_missing_needs_prompt():
    assert SetItemAction("A", 0, "K", ItemStatus.MISSING).needs_prompt
    assert not SetItemAction("A", 0, "K", ItemStatus.HAVE).needs_prompt


def test_message_id_dropped_when_identifier_too_long():
    action = SetItemAction("O" * 40, 0, "K" * 40, ItemStatus.HAVE, "12345678901234567890")
    custom_id = encode_action(action)
    assert len(custom_id) <= MAX_CUSTOM_ID_LENGTH
    assert custom_id.endswith(":")
    decoded = decode_action(custom_id)
    assert decoded.item_key == "K" * 40
    assert decoded.message_id is None


def test_identifier_too_long_even_without_message_id():
    with pytest.raises(ValueError):
        encode_action(SetItemAction("A100", 0, "K" * 100, ItemStatus.HAVE))


@pytest.mark.parametrize("custom_id", [
    "",
    "garbage",
    "set:have:A100:0",
    "set:have:A100:0:SKU-1",
    "zzz:have:A100:0:SKU-1:",
    "set:have::0:SKU-1:",
    "set:have:A100:x:SKU-1:",
    "set:have:A100:-1:SKU-1:",
    "set:maybe:A100:0:SKU-1:",
    "set:have:A100:0::",
    "modal:missing:A100:0::",
    "nav:sideways:A100:0::",
])
def test_malformed_identifiers_raise(custom_id):
    with pytest.raises(ActionDecodeError):
        decode_action(custom_id)
