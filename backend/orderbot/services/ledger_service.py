# /orderbot/services/ledger_service.py

import httpx
import logging
from typing import Optional, List, Dict, Any

from orderbot.config.settings import settings
from orderbot.models.domain import Order, ConfirmedOrder
from orderbot.utils.exceptions import LedgerUnavailable, LedgerProtocolError
from orderbot.utils.metrics import ledger_requests_counter, ledger_latency_histogram

# This service is the only code that talks to the remote order sheet. Reads go
# out as GET ?action=..., writes as a JSON POST with an "action" discriminator;
# every request carries the shared key. The client never retries: callers
# decide whether the next tick or the next click is the retry.

logger = logging.getLogger(__name__)


class LedgerService:
    def __init__(self, base_url: str, api_key: str, timeout: float = 15.0, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    # --- Reads ---

    async def fetch_pending(self) -> List[Order]:
        """Returns the orders still waiting to be checked, in ledger order."""
        payload = await self._get("list_pending")
        if "orders" in payload:
            try:
                return [Order.from_ledger_api(order) for order in payload["orders"]]
            except (KeyError, TypeError, ValueError) as e:
                raise LedgerProtocolError("list_pending", f"malformed order: {e}")
        if "rows" in payload:
            try:
                return Order.from_ledger_rows(payload["rows"])
            except (KeyError, TypeError, ValueError) as e:
                raise LedgerProtocolError("list_pending", f"malformed row: {e}")
        raise LedgerProtocolError("list_pending", "response has neither 'orders' nor 'rows'")

    async def fetch_confirmed(self) -> List[ConfirmedOrder]:
        """Returns one entry per confirmed order, with the chat message id recorded for it."""
        payload = await self._get("list_confirmed")
        entries = payload.get("orders", payload.get("rows"))
        if not isinstance(entries, list):
            raise LedgerProtocolError("list_confirmed", "response has neither 'orders' nor 'rows'")

        confirmed: Dict[str, ConfirmedOrder] = {}
        for entry in entries:
            try:
                order_id = str(entry["order_id"]).strip()
            except (KeyError, TypeError):
                raise LedgerProtocolError("list_confirmed", f"entry without order_id: {entry}")
            if not order_id:
                continue
            message_id = str(entry["message_id"]).strip() if entry.get("message_id") else None
            existing = confirmed.get(order_id)
            if existing is None:
                confirmed[order_id] = ConfirmedOrder(order_id=order_id, message_id=message_id)
            elif not existing.message_id and message_id:
                existing.message_id = message_id
        return list(confirmed.values())

    # --- Writes ---

    async def record_message_id(self, order_id: str, message_id: str) -> None:
        await self._post("set_message_id", {"order_id": order_id, "message_id": message_id})

    async def set_item_status(self, item_key: str, status: str, actor: str, timestamp_iso: str) -> None:
        """Writes the composed status value (e.g. "MISSING: no lavender") for one item row."""
        await self._post("set_item_status", {
            "item_key": item_key,
            "status": status,
            "checked_by": actor,
            "checked_at": timestamp_iso,
        })

    async def delete_by_message_id(self, message_id: str) -> int:
        payload = await self._post("delete_order_by_message_id", {"message_id": message_id})
        try:
            return int(payload.get("deleted", 0))
        except (TypeError, ValueError):
            raise LedgerProtocolError("delete_order_by_message_id", f"invalid deleted count: {payload.get('deleted')!r}")

    async def aclose(self):
        await self.http_client.aclose()

    # --- Transport ---

    async def _get(self, action: str) -> Dict[str, Any]:
        params = {"action": action, "key": self.api_key}
        return await self._request(action, "GET", params=params)

    async def _post(self, action: str, body: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"action": action, "key": self.api_key, **body}
        return await self._request(action, "POST", json=payload)

    async def _request(self, action: str, method: str, **kwargs) -> Dict[str, Any]:
        if not self.base_url:
            raise LedgerUnavailable(action, "LEDGER_BASE_URL is not configured")

        try:
            with ledger_latency_histogram.labels(action=action).time():
                response = await self.http_client.request(method, self.base_url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            ledger_requests_counter.labels(action=action, status="timeout").inc()
            logger.warning(f"ledger_timeout action={action}: {e!r}")
            raise LedgerUnavailable(action, f"timed out after {self.timeout}s")
        except httpx.RequestError as e:
            ledger_requests_counter.labels(action=action, status="unavailable").inc()
            logger.warning(f"ledger_unavailable action={action}: {e!r}")
            raise LedgerUnavailable(action, str(e) or e.__class__.__name__)

        if response.status_code >= 500:
            ledger_requests_counter.labels(action=action, status="unavailable").inc()
            logger.warning(f"ledger_server_error action={action}: HTTP {response.status_code}")
            raise LedgerUnavailable(action, f"HTTP {response.status_code}")

        if response.status_code >= 400:
            ledger_requests_counter.labels(action=action, status="rejected").inc()
            raise LedgerProtocolError(action, f"HTTP {response.status_code}", response.status_code)

        try:
            payload = response.json()
        except ValueError:
            ledger_requests_counter.labels(action=action, status="malformed").inc()
            logger.error(f"ledger_malformed_response action={action}: {response.text[:200]!r}")
            raise LedgerProtocolError(action, "response is not JSON", response.status_code)

        if not isinstance(payload, dict) or payload.get("ok") is not True:
            ledger_requests_counter.labels(action=action, status="rejected").inc()
            error = payload.get("error", "ok flag missing or false") if isinstance(payload, dict) else "unexpected JSON shape"
            logger.error(f"ledger_rejected action={action}: {error}")
            raise LedgerProtocolError(action, str(error), response.status_code)

        ledger_requests_counter.labels(action=action, status="success").inc()
        return payload


# Globally accessible instance
ledger_service = LedgerService(settings.ledger_base_url, settings.ledger_api_key, settings.ledger_timeout_seconds)
