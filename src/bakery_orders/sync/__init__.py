"""One-way replication of orders to a spreadsheet webhook."""

from .sheets import SheetsClient, SyncResult
from .outbox import SyncOutbox

__all__ = ["SheetsClient", "SyncResult", "SyncOutbox"]
