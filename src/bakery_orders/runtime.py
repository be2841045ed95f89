"""Wiring of store, service, sync outbox and AI assistant from Settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .access import AccessGate
from .ai.assistant import OrderAssistant
from .config import Settings
from .logging import get_logger
from .orders.service import OrderService
from .store.db import BakeryRepository, KeyValueStore
from .sync.outbox import SyncOutbox
from .sync.sheets import SheetsClient

LOG = get_logger("runtime")


@dataclass
class Runtime:
    settings: Settings
    service: OrderService
    outbox: SyncOutbox
    assistant: OrderAssistant
    gate: AccessGate

    def close(self, timeout: Optional[float] = None) -> None:
        self.outbox.close(timeout)


def build_runtime(
    settings: Settings,
    *,
    store: Optional[KeyValueStore] = None,
    sheets_client: Optional[SheetsClient] = None,
    assistant: Optional[OrderAssistant] = None,
) -> Runtime:
    store = store or KeyValueStore(root_dir=settings.root_dir)
    service = OrderService(BakeryRepository(store))
    if not service.webhook_url and settings.sheets_url:
        LOG.info("Seeding sheets webhook URL from SHEETS_WEBHOOK_URL")
        service.set_webhook_url(settings.sheets_url)

    client = sheets_client or SheetsClient(timeout=settings.sheets_timeout)
    outbox = SyncOutbox(client, url_provider=lambda: service.webhook_url)
    service.outbox = outbox

    return Runtime(
        settings=settings,
        service=service,
        outbox=outbox,
        assistant=assistant or OrderAssistant.from_settings(settings),
        gate=AccessGate(settings.access_pin),
    )
