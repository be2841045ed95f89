from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..domain.constants import UNKNOWN_CLIENT
from ..domain.models import Client, Order, Product
from ..logging import get_logger
from ..production.export import format_quantity


@dataclass
class SyncResult:
    success: bool
    error: Optional[str] = None
    status_code: Optional[int] = None


class SheetsClient:
    """POST the full order list to a spreadsheet web-app URL.

    The response is not interpreted: a request that completes counts as
    delivered, only transport failures are reported.
    """

    def __init__(self, *, timeout: Optional[float] = None, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self.log = get_logger("sheets-client")
        self.s = session or requests.Session()
        self.s.headers.update({"Content-Type": "application/json"})

    @staticmethod
    def build_rows(
        orders: Sequence[Order],
        products: Sequence[Product],
        clients: Sequence[Client],
    ) -> List[Dict[str, Any]]:
        """Flatten orders into the spreadsheet row shape."""
        products_by_id = {p.id: p for p in products}
        clients_by_id = {c.id: c for c in clients}
        rows: List[Dict[str, Any]] = []
        for order in orders:
            client = clients_by_id.get(order.client_id)
            parts = []
            for it in order.items:
                p = products_by_id.get(it.product_id)
                name = p.name if p else ""
                unit = p.unit if p else ""
                parts.append(f"{name} (x{format_quantity(it.quantity)} {unit})")
            rows.append(
                {
                    "id": order.id,
                    "fecha": order.date,
                    "dia": order.day,
                    "cliente": client.name if client else UNKNOWN_CLIENT,
                    "productos": ", ".join(parts),
                }
            )
        return rows

    def post(self, url: str, rows: List[Dict[str, Any]]) -> SyncResult:
        if not url:
            return SyncResult(success=False, error="No URL configured")
        body = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "orders": rows,
        }
        self.log.info(f"POST {len(rows)} order(s) to sheets webhook")
        try:
            r = self.s.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            self.log.error(f"Sheets sync error: {e}")
            return SyncResult(success=False, error=str(e))
        if r.status_code >= 400:
            self.log.warning(f"Sheets webhook answered HTTP {r.status_code}; treating request as delivered")
        return SyncResult(success=True, status_code=r.status_code)
