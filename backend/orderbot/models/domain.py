# /orderbot/models/domain.py

import math
import logging
from enum import Enum
from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any

# This file defines the core Pydantic models used throughout the application's
# business logic: orders, their items and the pagination arithmetic that the
# renderer and the interaction handlers share.

logger = logging.getLogger(__name__)

MISSING_NOTE_SEPARATOR = ": "


class ItemStatus(str, Enum):
    UNSET = "UNSET"
    HAVE = "HAVE"
    MISSING = "MISSING"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"


# Values written by the original sheet before the statuses were translated.
_LEGACY_STATUS_VALUES = {
    "TENHO": ItemStatus.HAVE,
    "FALTA": ItemStatus.MISSING,
}


def compose_status_value(status: ItemStatus, note: Optional[str] = None) -> str:
    """Builds the exact string stored in the ledger's status column."""
    if status == ItemStatus.UNSET:
        return ""
    if status == ItemStatus.MISSING and note:
        return f"{ItemStatus.MISSING.value}{MISSING_NOTE_SEPARATOR}{note}"
    return status.value


def parse_status_value(raw: Any) -> tuple[ItemStatus, Optional[str]]:
    """Inverse of compose_status_value. Unknown values read as UNSET."""
    if raw is None:
        return ItemStatus.UNSET, None
    value = str(raw).strip()
    if not value or value.upper() == ItemStatus.UNSET.value:
        return ItemStatus.UNSET, None

    head, sep, tail = value.partition(":")
    head = head.strip().upper()
    status = _LEGACY_STATUS_VALUES.get(head)
    if status is None:
        try:
            status = ItemStatus(head)
        except ValueError:
            logger.warning(f"Unknown ledger status value '{value}', treating it as unset")
            return ItemStatus.UNSET, None

    note = tail.strip() if sep else None
    if status != ItemStatus.MISSING:
        return status, None
    return status, note or None


def total_pages(item_count: int, page_size: int) -> int:
    return max(1, math.ceil(item_count / page_size))


def clamp_page(page: int, item_count: int, page_size: int) -> int:
    return min(max(0, page), total_pages(item_count, page_size) - 1)


def _parse_quantity(raw: Any) -> int:
    try:
        quantity = int(float(raw))
    except (TypeError, ValueError):
        return 1
    return quantity if quantity >= 1 else 1


class Item(BaseModel):
    item_key: str
    name: str
    quantity: int = Field(default=1, ge=1)
    status: ItemStatus = ItemStatus.UNSET
    note: Optional[str] = None

    @model_validator(mode="after")
    def note_only_when_missing(self):
        # Only MISSING may carry an annotation.
        if self.status != ItemStatus.MISSING:
            self.note = None
        elif self.note is not None:
            self.note = self.note.strip() or None
        return self

    @property
    def status_value(self) -> str:
        return compose_status_value(self.status, self.note)

    @classmethod
    def from_ledger_row(cls, row: Dict[str, Any]) -> "Item":
        status, note = parse_status_value(row.get("status"))
        return cls(
            item_key=str(row["item_key"]),
            name=str(row.get("product") or row.get("name") or row["item_key"]),
            quantity=_parse_quantity(row.get("qty", row.get("quantity", 1))),
            status=status,
            note=note,
        )


class Order(BaseModel):
    order_id: str
    customer: str = ""
    marketplace: str = ""
    items: List[Item] = []
    page: int = Field(default=0, ge=0)
    message_id: Optional[str] = None

    def find_item(self, item_key: str) -> Optional[Item]:
        for item in self.items:
            if item.item_key == item_key:
                return item
        return None

    def total_pages(self, page_size: int) -> int:
        return total_pages(len(self.items), page_size)

    def clamp_page(self, page: int, page_size: int) -> int:
        return clamp_page(page, len(self.items), page_size)

    def page_bounds(self, page: int, page_size: int) -> tuple[int, int]:
        """Returns [start, end) item indexes for the (clamped) page."""
        page = self.clamp_page(page, page_size)
        start = page * page_size
        return start, min(start + page_size, len(self.items))

    def page_items(self, page: int, page_size: int) -> List[Item]:
        start, end = self.page_bounds(page, page_size)
        return self.items[start:end]

    def merge_from_ledger(self, fresh: "Order", page_size: int, keep_statuses: bool = False) -> "Order":
        """
        Refreshes items and labels from a ledger read while keeping the local
        page cursor. Statuses follow the ledger, since every click is written
        through immediately, unless keep_statuses is set: then items known
        locally keep their cached status and note (the read predates a local
        edit and would roll it back).
        """
        items = fresh.items
        if keep_statuses:
            local = {item.item_key: item for item in self.items}
            items = [
                item.model_copy(update={"status": local[item.item_key].status, "note": local[item.item_key].note})
                if item.item_key in local else item
                for item in fresh.items
            ]
        return fresh.model_copy(update={
            "items": items,
            "page": fresh.clamp_page(self.page, page_size),
            "message_id": fresh.message_id or self.message_id,
        })

    @classmethod
    def from_ledger_rows(cls, rows: List[Dict[str, Any]]) -> List["Order"]:
        """
        Groups one-row-per-item ledger rows into orders, keeping the order in
        which orders and items first appear. Rows without an order id or an
        item key are skipped.
        """
        orders: Dict[str, Order] = {}
        for row in rows:
            order_id = str(row.get("order_id") or "").strip()
            item_key = str(row.get("item_key") or "").strip()
            if not order_id or not item_key:
                logger.warning(f"Skipping ledger row without order_id/item_key: {row}")
                continue

            order = orders.get(order_id)
            if order is None:
                order = cls(
                    order_id=order_id,
                    customer=str(row.get("customer") or ""),
                    marketplace=str(row.get("marketplace") or ""),
                    message_id=str(row["message_id"]) if row.get("message_id") else None,
                )
                orders[order_id] = order
            elif not order.message_id and row.get("message_id"):
                order.message_id = str(row["message_id"])

            order.items.append(Item.from_ledger_row(row))
        return list(orders.values())

    @classmethod
    def from_ledger_api(cls, data: Dict[str, Any]) -> "Order":
        """Builds an order from the grouped ``orders`` payload shape."""
        return cls(
            order_id=str(data["order_id"]),
            customer=str(data.get("customer") or ""),
            marketplace=str(data.get("marketplace") or ""),
            message_id=str(data["message_id"]) if data.get("message_id") else None,
            items=[Item.from_ledger_row(row) for row in data.get("items", [])],
        )


class ConfirmedOrder(BaseModel):
    order_id: str
    message_id: Optional[str] = None
