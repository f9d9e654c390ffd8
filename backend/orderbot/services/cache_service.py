# /orderbot/services/cache_service.py

import os
import json
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Dict, List

from pydantic import ValidationError

from orderbot.config.settings import settings
from orderbot.models.domain import Item, ItemStatus, Order
from orderbot.services.ledger_service import LedgerService, ledger_service
from orderbot.utils.exceptions import OrderNotInCache
from orderbot.utils.metrics import cache_operations, cached_orders_gauge

# This service owns the in-process order map. It is the source of truth for
# page cursors and for status edits between a ledger read and the next write;
# the ledger stays the source of truth for which orders exist. Every mutation
# marks the cache dirty and schedules one trailing, debounced snapshot write.

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class OrderCache:
    def __init__(self, ledger: LedgerService, snapshot_path: str, page_size: int, debounce_seconds: float = 0.4):
        self.ledger = ledger
        self.snapshot_path = Path(snapshot_path)
        self.page_size = page_size
        self.debounce_seconds = debounce_seconds
        self._orders: Dict[str, Order] = {}
        self._dirty = False
        self._save_handle: Optional[asyncio.TimerHandle] = None
        self._flush_task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._revision = 0
        self._released_at: Dict[str, int] = {}

    # --- Per-order serialization ---

    @asynccontextmanager
    async def lock(self, order_id: str):
        """
        Serializes everything that reads, edits or replaces one order across
        awaits: click handlers and the pull job both hold it. Releasing it
        bumps the order's edit revision, which put() uses to tell a ledger read
        taken before the edit from one taken after.
        """
        order_lock = self._locks.get(order_id)
        if order_lock is None:
            order_lock = self._locks[order_id] = asyncio.Lock()
        async with order_lock:
            try:
                yield
            finally:
                if order_id in self._orders:
                    self._revision += 1
                    self._released_at[order_id] = self._revision

    @property
    def revision(self) -> int:
        return self._revision

    # --- Lookups ---

    def get(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        cache_operations.labels(operation="get", status="hit" if order else "miss").inc()
        return order

    async def get_or_fetch(self, order_id: str) -> Optional[Order]:
        """
        Cache lookup that falls back to one ledger read on a miss. This is the
        only place a miss turns into a remote call. Ledger errors propagate.
        """
        order = self.get(order_id)
        if order is not None:
            return order

        logger.info(f"Order {order_id} not cached, looking it up in the ledger")
        for fresh in await self.ledger.fetch_pending():
            if fresh.order_id == order_id:
                # Another coroutine may have filled the entry while we waited.
                existing = self._orders.get(order_id)
                if existing is not None:
                    return existing
                self.put(fresh)
                return fresh
        cache_operations.labels(operation="fetch", status="not_found").inc()
        return None

    def find_by_message_id(self, message_id: str) -> Optional[Order]:
        for order in self._orders.values():
            if order.message_id == message_id:
                return order
        return None

    def orders(self) -> List[Order]:
        return list(self._orders.values())

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._orders

    def __len__(self) -> int:
        return len(self._orders)

    # --- Mutations ---

    def put(self, order: Order, read_revision: Optional[int] = None):
        """
        Stores a ledger read. When read_revision (the cache revision taken
        before the read) is older than the order's last locked edit, cached
        statuses win over the read's.
        """
        existing = self._orders.get(order.order_id)
        if existing is not None:
            stale = read_revision is not None and self._released_at.get(order.order_id, 0) > read_revision
            order = existing.merge_from_ledger(order, self.page_size, keep_statuses=stale)
        self._orders[order.order_id] = order
        cached_orders_gauge.set(len(self._orders))
        self.schedule_save()

    def mutate_item(self, order_id: str, item_key: str, status: ItemStatus, note: Optional[str] = None) -> Item:
        """Sets one item's status in place and returns the item as it was before."""
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotInCache(order_id)

        for index, item in enumerate(order.items):
            if item.item_key == item_key:
                order.items[index] = Item(
                    item_key=item.item_key,
                    name=item.name,
                    quantity=item.quantity,
                    status=status,
                    note=note,
                )
                cache_operations.labels(operation="mutate", status="success").inc()
                self.schedule_save()
                return item
        raise OrderNotInCache(order_id, item_key)

    def set_page(self, order_id: str, page: int) -> int:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotInCache(order_id)
        order.page = order.clamp_page(page, self.page_size)
        self.schedule_save()
        return order.page

    def set_message_id(self, order_id: str, message_id: str):
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotInCache(order_id)
        order.message_id = message_id
        self.schedule_save()

    def remove(self, order_id: str) -> Optional[Order]:
        order = self._orders.pop(order_id, None)
        # Holders keep their reference; later callers get a fresh lock.
        self._locks.pop(order_id, None)
        self._released_at.pop(order_id, None)
        if order is not None:
            cached_orders_gauge.set(len(self._orders))
            self.schedule_save()
        return order

    # --- Persistence ---

    def load(self) -> int:
        """
        Hydrates the cache from the snapshot file. A missing, unreadable or
        malformed snapshot leaves the cache empty; it is never fatal.
        """
        self._orders = {}
        if not self.snapshot_path.exists():
            logger.info(f"No cache snapshot at {self.snapshot_path}, starting empty")
            return 0

        try:
            raw = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
            entries = raw["orders"] if isinstance(raw, dict) and "orders" in raw else raw
            if not isinstance(entries, dict):
                raise ValueError("snapshot is not a mapping of orders")
            orders = {order_id: Order.model_validate(data) for order_id, data in entries.items()}
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            cache_operations.labels(operation="load", status="error").inc()
            logger.warning(f"Ignoring unreadable cache snapshot {self.snapshot_path}: {e}")
            return 0

        for order in orders.values():
            order.page = order.clamp_page(order.page, self.page_size)
        self._orders = orders
        cached_orders_gauge.set(len(self._orders))
        cache_operations.labels(operation="load", status="success").inc()
        logger.info(f"Loaded {len(self._orders)} orders from {self.snapshot_path}")
        return len(self._orders)

    def schedule_save(self):
        """Marks the cache dirty and arms the single trailing save timer."""
        self._dirty = True
        if self._save_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (e.g. a script); the next flush() persists the change.
            return
        self._save_handle = loop.call_later(self.debounce_seconds, self._on_save_timer)

    def _on_save_timer(self):
        self._save_handle = None
        self._flush_task = asyncio.ensure_future(self.flush())

    async def flush(self):
        """Writes the snapshot now if anything changed since the last write."""
        async with self._write_lock:
            if not self._dirty:
                return
            self._dirty = False
            document = json.dumps({
                "version": SNAPSHOT_VERSION,
                "orders": {order_id: order.model_dump(mode="json") for order_id, order in self._orders.items()},
            }, ensure_ascii=False, indent=2)
            try:
                await asyncio.to_thread(self._write_snapshot, document)
                cache_operations.labels(operation="save", status="success").inc()
            except OSError as e:
                self._dirty = True
                cache_operations.labels(operation="save", status="error").inc()
                logger.error(f"Failed to write cache snapshot {self.snapshot_path}: {e}")

    def _write_snapshot(self, document: str):
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.snapshot_path.with_suffix(self.snapshot_path.suffix + ".tmp")
        tmp_path.write_text(document, encoding="utf-8")
        os.replace(tmp_path, self.snapshot_path)

    async def close(self):
        """Cancels the pending timer and writes any unsaved change."""
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task
        await self.flush()


# Globally accessible instance
order_cache = OrderCache(
    ledger_service,
    settings.cache_path,
    settings.page_size,
    settings.cache_save_debounce_ms / 1000,
)
