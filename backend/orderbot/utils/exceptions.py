# /orderbot/utils/exceptions.py

"""
Custom exceptions for the order checklist bot.

Exception Hierarchy:
    OrderBotError (base)
    ├── LedgerUnavailable    - network error or timeout talking to the ledger (transient)
    ├── LedgerProtocolError  - ledger answered, but not with a usable response
    ├── ChatPlatformError    - Discord REST call failed
    │   └── InteractionExpired - the interaction token is no longer valid
    ├── OrderNotInCache      - order unknown to both the cache and the ledger
    └── ActionDecodeError    - a control identifier could not be decoded

Usage:
    LedgerUnavailable is safe to retry on the next tick or the next click.
    Everything else is logged and reported privately to the user who clicked.
"""

from typing import Optional, Dict, Any


class OrderBotError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class LedgerUnavailable(OrderBotError):
    """The ledger could not be reached or did not answer within the timeout."""

    def __init__(self, action: str, reason: str):
        super().__init__(f"Ledger unavailable during '{action}': {reason}", {"action": action})
        self.action = action


class LedgerProtocolError(OrderBotError):
    """
    The ledger answered with something other than a well-formed success.

    Covers non-2xx statuses, bodies that are not JSON, ``ok: false`` answers
    and payloads missing the expected keys. Not retried automatically.
    """

    def __init__(self, action: str, reason: str, status_code: Optional[int] = None):
        super().__init__(
            f"Ledger rejected '{action}': {reason}",
            {"action": action, "status_code": status_code},
        )
        self.action = action
        self.status_code = status_code


class ChatPlatformError(OrderBotError):
    """A Discord REST call failed."""

    def __init__(self, operation: str, status_code: Optional[int] = None, reason: str = ""):
        super().__init__(
            f"Discord '{operation}' failed: {reason or status_code}",
            {"operation": operation, "status_code": status_code},
        )
        self.operation = operation
        self.status_code = status_code


class InteractionExpired(ChatPlatformError):
    """The acknowledgment budget was missed; the interaction token can no longer be used."""

    def __init__(self, operation: str):
        super().__init__(operation, 404, "interaction token expired or unknown")


class OrderNotInCache(OrderBotError):
    """The referenced order (or item) is in neither the cache nor the ledger's pending list."""

    def __init__(self, order_id: str, item_key: Optional[str] = None):
        details = {"order_id": order_id}
        if item_key is not None:
            details["item_key"] = item_key
        super().__init__(f"Order {order_id} not found", details)
        self.order_id = order_id
        self.item_key = item_key


class ActionDecodeError(OrderBotError):
    """A control's custom_id does not follow the action identifier schema."""

    def __init__(self, custom_id: str, reason: str):
        super().__init__(f"Cannot decode action '{custom_id}': {reason}", {"custom_id": custom_id})
        self.custom_id = custom_id
