from __future__ import annotations

import threading
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from bakery_orders.ai.assistant import OrderAssistant
from bakery_orders.config import Settings
from bakery_orders.domain.models import Order, OrderItem
from bakery_orders.runtime import build_runtime
from bakery_orders.store.db import BakeryRepository, KeyValueStore
from bakery_orders.sync.sheets import SheetsClient, SyncResult


class RecordingSheetsClient(SheetsClient):
    """Sheets client that records posted payloads instead of sending them."""

    def __init__(self, *, succeed: bool = True, gate: Optional[threading.Event] = None) -> None:
        super().__init__()
        self.succeed = succeed
        self.gate = gate
        self.started = threading.Event()
        self.calls: List[Dict[str, Any]] = []

    def post(self, url: str, rows: List[Dict[str, Any]]) -> SyncResult:
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        self.calls.append({"url": url, "rows": rows})
        if self.succeed:
            return SyncResult(success=True, status_code=200)
        return SyncResult(success=False, error="boom")


class FakeCompletions:
    def __init__(self, replies: List[Any]) -> None:
        self.replies = list(replies)
        self.requests: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.requests.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_openai(*replies: Any) -> Any:
    completions = FakeCompletions(list(replies))
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def make_order(order_id: str, date: str, *items: tuple, client_id: str = "c1") -> Order:
    return Order(
        id=order_id,
        client_id=client_id,
        date=date,
        items=[OrderItem(product_id=pid, quantity=qty) for pid, qty in items],
    )


@pytest.fixture
def store(tmp_path: Path) -> KeyValueStore:
    return KeyValueStore(db_path=str(tmp_path / "bakery.sqlite3"))


@pytest.fixture
def repository(store: KeyValueStore) -> BakeryRepository:
    return BakeryRepository(store)


@pytest.fixture
def sheets() -> RecordingSheetsClient:
    return RecordingSheetsClient()


@pytest.fixture
def runtime(tmp_path: Path, store: KeyValueStore, sheets: RecordingSheetsClient):
    settings = Settings(root_dir=str(tmp_path))
    rt = build_runtime(settings, store=store, sheets_client=sheets, assistant=OrderAssistant())
    yield rt
    rt.close(timeout=5)
