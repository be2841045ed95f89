"""Coalescing outbox feeding the sheets webhook.

There is a single pending slot. Submitting while a request is in flight
replaces whatever was waiting, so the worker only ever sends the newest
state, and a finished request whose generation has been superseded does not
overwrite the status of the newer one.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..domain.constants import SYNC_ERROR, SYNC_IDLE, SYNC_PENDING, SYNC_SYNCED
from ..domain.models import Client, Order, Product
from ..logging import get_logger
from .sheets import SheetsClient, SyncResult

LOG = get_logger("sync-outbox")


@dataclass
class _Job:
    generation: int
    url: str
    rows: List[Dict[str, Any]]


class SyncOutbox:
    def __init__(self, client: SheetsClient, url_provider: Callable[[], str]) -> None:
        self.client = client
        self._url_provider = url_provider
        self._cond = threading.Condition()
        self._pending: Optional[_Job] = None
        self._in_flight = False
        self._generation = 0
        self._closed = False
        self._status = SYNC_IDLE if url_provider() else SYNC_PENDING
        self.last_result: Optional[SyncResult] = None
        self._worker = threading.Thread(target=self._run, name="sheets-sync", daemon=True)
        self._worker.start()

    @property
    def status(self) -> str:
        with self._cond:
            return self._status

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._in_flight or self._pending is not None

    def submit(
        self,
        orders: Sequence[Order],
        products: Sequence[Product],
        clients: Sequence[Client],
    ) -> int:
        """Queue a snapshot of the collections; returns its generation.

        Never blocks on the network. Without a configured URL the status
        becomes "pending" and nothing is queued.
        """
        url = self._url_provider()
        rows = SheetsClient.build_rows(orders, products, clients)
        with self._cond:
            if self._closed:
                raise RuntimeError("SyncOutbox is closed")
            self._generation += 1
            generation = self._generation
            if not url:
                self._pending = None
                self._status = SYNC_PENDING
                LOG.debug("No sheets URL configured; sync generation %d skipped", generation)
                return generation
            if self._pending is not None:
                LOG.debug("Superseding pending sync generation %d", self._pending.generation)
            self._pending = _Job(generation=generation, url=url, rows=rows)
            self._cond.notify_all()
        return generation

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until nothing is pending or in flight. False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending is None and not self._in_flight, timeout)

    def close(self, timeout: Optional[float] = None) -> None:
        """Send whatever is pending, then stop the worker."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        self._worker.join(timeout)

    def _run(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._pending is not None or self._closed)
                job = self._pending
                if job is None:
                    return
                self._pending = None
                self._in_flight = True
            try:
                result = self.client.post(job.url, job.rows)
            except Exception as exc:
                # Keep the worker alive; sync errors only ever surface as status.
                LOG.exception("Sync generation %d crashed", job.generation)
                result = SyncResult(success=False, error=str(exc))
            with self._cond:
                self._in_flight = False
                self.last_result = result
                if job.generation == self._generation:
                    self._status = SYNC_SYNCED if result.success else SYNC_ERROR
                    LOG.info("Sync generation %d finished: %s", job.generation, self._status)
                else:
                    LOG.debug(
                        "Sync generation %d finished after newer generation %d; status unchanged",
                        job.generation,
                        self._generation,
                    )
                self._cond.notify_all()
