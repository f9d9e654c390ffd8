import os
import tempfile

import pytest
from unittest.mock import AsyncMock
from nacl.signing import SigningKey

# CRITICAL: set the environment FIRST, before any orderbot imports, so the
# module-level settings and service instances pick it up.
SIGNING_KEY = SigningKey.generate()
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LEDGER_BASE_URL", "https://ledger.test/exec")
os.environ.setdefault("LEDGER_API_KEY", "test-ledger-key")
os.environ.setdefault("CHANNEL_ID", "555")
os.environ.setdefault("DISCORD_APPLICATION_ID", "4242")
os.environ.setdefault("DISCORD_BOT_TOKEN", "test-bot-token")
os.environ.setdefault("DISCORD_PUBLIC_KEY", SIGNING_KEY.verify_key.encode().hex())
os.environ.setdefault("CACHE_PATH", os.path.join(tempfile.mkdtemp(), "order_cache.json"))
os.environ.setdefault("PULL_INTERVAL_SECONDS", "0")
os.environ.setdefault("CLEANUP_INTERVAL_SECONDS", "0")

from fastapi.testclient import TestClient  # noqa: E402

from orderbot.main import app  # noqa: E402
from orderbot.models.domain import Item, Order  # noqa: E402
from orderbot.services.cache_service import OrderCache  # noqa: E402
from orderbot.services.discord_service import DiscordService  # noqa: E402
from orderbot.services.interaction_service import InteractionService  # noqa: E402
from orderbot.services.ledger_service import LedgerService  # noqa: E402
from orderbot.services.status_policy import BinaryStatusPolicy  # noqa: E402

FIXED_NOW = "2026-10-18T12:00:00+00:00"


def make_order(order_id: str = "A100", item_count: int = 5, message_id: str | None = "900", **kwargs) -> Order:
    """An order with items SKU-1..SKU-n named Product 1..n, all unset."""
    items = [
        Item(item_key=f"SKU-{i}", name=f"Product {i}", quantity=(i % 2) + 1)
        for i in range(1, item_count + 1)
    ]
    return Order(order_id=order_id, customer="Maria", marketplace="Shop", items=items,
                 message_id=message_id, **kwargs)


def statuses(order: Order) -> list:
    return [item.status for item in order.items]


def component_interaction(custom_id: str, message_id: str = "900", username: str = "ana", **extra) -> dict:
    return {
        "id": "i-1",
        "application_id": "4242",
        "type": 3,
        "token": "tok-1",
        "data": {"custom_id": custom_id, "component_type": 2},
        "member": {"user": {"id": "u-1", "username": username}},
        "message": {"id": message_id, "channel_id": "555"},
        "channel_id": "555",
        **extra,
    }


def modal_interaction(custom_id: str, note: str | None, message_id: str = "900") -> dict:
    return {
        "id": "i-2",
        "application_id": "4242",
        "type": 5,
        "token": "tok-2",
        "data": {
            "custom_id": custom_id,
            "components": [{"type": 1, "components": [{"type": 4, "custom_id": "note", "value": note}]}],
        },
        "member": {"user": {"id": "u-1", "username": "ana"}},
        "message": {"id": message_id, "channel_id": "555"},
        "channel_id": "555",
    }


def command_interaction(name: str) -> dict:
    return {
        "id": "i-3",
        "application_id": "4242",
        "type": 2,
        "token": "tok-3",
        "data": {"name": name},
        "member": {"user": {"id": "u-1", "username": "ana"}},
        "channel_id": "555",
    }


@pytest.fixture
def ledger():
    mock = AsyncMock(spec=LedgerService)
    mock.fetch_pending.return_value = []
    mock.fetch_confirmed.return_value = []
    mock.delete_by_message_id.return_value = 0
    return mock


@pytest.fixture
def discord():
    mock = AsyncMock(spec=DiscordService)
    mock.send_message.return_value = "msg-new"
    mock.delete_message.return_value = True
    return mock


@pytest.fixture
def cache(ledger, tmp_path):
    return OrderCache(ledger, str(tmp_path / "order_cache.json"), page_size=4, debounce_seconds=60)


@pytest.fixture
def policy():
    return BinaryStatusPolicy()


@pytest.fixture
def service(cache, ledger, discord, policy):
    return InteractionService(cache, ledger, discord, page_size=4, policy=policy, jobs={}, clock=lambda: FIXED_NOW)


@pytest.fixture(scope="function")
def test_client(mocker):
    """
    Provides a TestClient for API integration tests. The lifespan runs, but
    the shared HTTP clients are not closed so later tests can still use them.
    """
    mocker.patch("orderbot.utils.lifecycle.ledger_service.aclose", new_callable=AsyncMock)
    mocker.patch("orderbot.utils.lifecycle.discord_service.aclose", new_callable=AsyncMock)

    with TestClient(app) as client:
        yield client


def signed_headers(body: bytes, timestamp: str = "1700000000") -> dict:
    signature = SIGNING_KEY.sign(timestamp.encode() + body).signature.hex()
    return {
        "X-Signature-Ed25519": signature,
        "X-Signature-Timestamp": timestamp,
        "Content-Type": "application/json",
    }


@pytest.fixture
def cached_order(cache):
    order = make_order()
    cache.put(order)
    return cache.get(order.order_id)
