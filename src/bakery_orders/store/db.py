from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from ..domain.constants import (
    KEY_CLIENTS,
    KEY_ORDERS,
    KEY_PRODUCTS,
    KEY_SHEETS_URL,
    SEED_CLIENTS,
    SEED_PRODUCTS,
)
from ..domain.models import Client, Order, Product
from ..logging import get_logger
from ..paths import find_project_root, var_dir


LOG = get_logger("store")

DEFAULT_DB_FOLDER = "bakery"
DEFAULT_DB_FILENAME = "bakery.sqlite3"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS entries (
  key         TEXT PRIMARY KEY,
  value       TEXT NOT NULL,
  updated_at  TEXT DEFAULT (datetime('now'))
);
"""

T = TypeVar("T")


class KeyValueStore:
    """SQLite-backed store of named text entries.

    - Places the DB under `<project-root>/var/bakery/bakery.sqlite3` unless
      an explicit `db_path` is given.
    - Ensures schema on first use.
    - Every write replaces the whole value of its key.
    """

    def __init__(self, root_dir: Optional[str] = None, *, db_path: Optional[str] = None) -> None:
        if db_path is None:
            root = find_project_root(root_dir)
            db_folder = os.path.join(var_dir(root), DEFAULT_DB_FOLDER)
            db_path = os.path.join(db_folder, DEFAULT_DB_FILENAME)
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self.db_path = os.path.abspath(db_path)
        LOG.info(f"Bakery store path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            try:
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.DatabaseError as exc:
                LOG.debug("WAL mode unavailable (%s); using default journal", exc)
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def get(self, key: str) -> Optional[str]:
        with self.connect() as conn:
            row = conn.execute("SELECT value FROM entries WHERE key = ?;", (key,)).fetchone()
            return row["value"] if row is not None else None

    def set(self, key: str, value: str) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO entries (key, value, updated_at) VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at;
                """,
                (key, value),
            )
            conn.commit()
        LOG.debug("Wrote %s (%d chars)", key, len(value))

    def keys(self) -> List[str]:
        with self.connect() as conn:
            return [row["key"] for row in conn.execute("SELECT key FROM entries ORDER BY key;")]


class BakeryRepository:
    """Load/save the four bakery collections on top of a KeyValueStore.

    Missing products/clients fall back to the built-in seed catalog; missing
    orders fall back to an empty list. Nothing is written on load.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    # ---------- products ----------
    def load_products(self) -> List[Product]:
        return self._load_list(KEY_PRODUCTS, Product.from_dict, SEED_PRODUCTS)

    def save_products(self, products: List[Product]) -> None:
        self._save_list(KEY_PRODUCTS, [p.to_dict() for p in products])

    # ---------- clients ----------
    def load_clients(self) -> List[Client]:
        return self._load_list(KEY_CLIENTS, Client.from_dict, SEED_CLIENTS)

    def save_clients(self, clients: List[Client]) -> None:
        self._save_list(KEY_CLIENTS, [c.to_dict() for c in clients])

    # ---------- orders ----------
    def load_orders(self) -> List[Order]:
        return self._load_list(KEY_ORDERS, Order.from_dict, [])

    def save_orders(self, orders: List[Order]) -> None:
        self._save_list(KEY_ORDERS, [o.to_dict() for o in orders])

    # ---------- webhook URL ----------
    def load_webhook_url(self) -> str:
        return self.store.get(KEY_SHEETS_URL) or ""

    def save_webhook_url(self, url: str) -> None:
        self.store.set(KEY_SHEETS_URL, url or "")

    # ---------- helpers ----------
    def _load_list(
        self,
        key: str,
        factory: Callable[[Dict[str, Any]], T],
        seed: List[Dict[str, Any]],
    ) -> List[T]:
        raw = self.store.get(key)
        if raw is None:
            LOG.info("No stored %s; using %d seed record(s)", key, len(seed))
            return [factory(dict(entry)) for entry in seed]
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"Stored {key} is not a JSON array")
        return [factory(entry) for entry in data]

    def _save_list(self, key: str, payload: List[Dict[str, Any]]) -> None:
        self.store.set(key, json.dumps(payload, ensure_ascii=False, allow_nan=False))
