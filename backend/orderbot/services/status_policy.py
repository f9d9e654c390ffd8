# /orderbot/services/status_policy.py

from typing import Iterable, Protocol

from orderbot.config.settings import settings
from orderbot.models.domain import Item, ItemStatus, OrderStatus

# Order-level status is derived from item statuses, never stored. Two
# derivations exist in the field, so the rule is a policy chosen by config.


class StatusPolicy(Protocol):
    name: str

    def derive(self, items: Iterable[Item]) -> OrderStatus: ...


class BinaryStatusPolicy:
    """COMPLETE once every item is marked (HAVE or MISSING), PENDING otherwise."""
    name = "binary"

    def derive(self, items: Iterable[Item]) -> OrderStatus:
        if all(item.status != ItemStatus.UNSET for item in items):
            return OrderStatus.COMPLETE
        return OrderStatus.PENDING


class TernaryStatusPolicy:
    """PENDING while anything is unmarked, INCOMPLETE if anything is missing, else COMPLETE."""
    name = "ternary"

    def derive(self, items: Iterable[Item]) -> OrderStatus:
        statuses = {item.status for item in items}
        if ItemStatus.UNSET in statuses:
            return OrderStatus.PENDING
        if ItemStatus.MISSING in statuses:
            return OrderStatus.INCOMPLETE
        return OrderStatus.COMPLETE


POLICIES = {
    BinaryStatusPolicy.name: BinaryStatusPolicy,
    TernaryStatusPolicy.name: TernaryStatusPolicy,
}


def get_status_policy(name: str) -> StatusPolicy:
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown status policy '{name}'. Expected one of: {', '.join(POLICIES)}")


# Globally accessible instance
status_policy = get_status_policy(settings.status_policy)
