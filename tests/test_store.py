from __future__ import annotations

import json

import pytest

from bakery_orders.domain.constants import KEY_ORDERS, SEED_CLIENTS, SEED_PRODUCTS
from bakery_orders.domain.models import Client, Product
from bakery_orders.store.db import BakeryRepository, KeyValueStore

from conftest import make_order


def test_empty_store_falls_back_to_seed_catalog(repository: BakeryRepository):
    assert [p.id for p in repository.load_products()] == [p["id"] for p in SEED_PRODUCTS]
    assert [c.name for c in repository.load_clients()] == [c["name"] for c in SEED_CLIENTS]
    assert repository.load_orders() == []
    assert repository.load_webhook_url() == ""
    # Loading must not write anything.
    assert repository.store.keys() == []


def test_collections_round_trip_through_a_new_store(tmp_path, repository: BakeryRepository):
    products = [Product(id="p1", name="Mignon", category="Panes", unit="kg")]
    clients = [Client(id="c1", name="Central", address="Av. 1"), Client(id="c2", name="Faro")]
    orders = [make_order("o1", "2024-06-10", ("p1", 2.5)), make_order("o2", "2024-06-11", ("p1", 3), client_id="c2")]
    repository.save_products(products)
    repository.save_clients(clients)
    repository.save_orders(orders)
    repository.save_webhook_url("https://example.test/hook")

    reopened = BakeryRepository(KeyValueStore(db_path=repository.store.db_path))
    assert reopened.load_products() == products
    assert reopened.load_clients() == clients
    assert reopened.load_orders() == orders
    assert reopened.load_webhook_url() == "https://example.test/hook"


def test_orders_are_stored_as_json_with_derived_day(repository: BakeryRepository):
    repository.save_orders([make_order("o1", "2024-06-10", ("p1", 1))])
    stored = json.loads(repository.store.get(KEY_ORDERS))
    assert stored == [
        {"id": "o1", "clientId": "c1", "date": "2024-06-10", "day": "Lunes", "items": [{"productId": "p1", "quantity": 1}]}
    ]


def test_stale_day_label_in_stored_documents_is_ignored(store: KeyValueStore):
    store.set(
        KEY_ORDERS,
        json.dumps([{"id": "o1", "clientId": "c1", "date": "2024-06-11", "day": "Lunes", "items": []}]),
    )
    (order,) = BakeryRepository(store).load_orders()
    assert order.day == "Martes"


def test_default_location_is_under_var(tmp_path):
    (tmp_path / "README.md").write_text("marker", encoding="utf-8")
    store = KeyValueStore(root_dir=str(tmp_path))
    assert store.db_path == str(tmp_path / "var" / "bakery" / "bakery.sqlite3")


def test_non_finite_quantities_are_never_written(repository: BakeryRepository):
    repository.save_orders([make_order("o1", "2024-06-10", ("p1", 1))])
    before = repository.store.get(KEY_ORDERS)
    with pytest.raises(ValueError):
        repository.save_orders([make_order("o2", "2024-06-10", ("p1", float("nan")))])
    assert repository.store.get(KEY_ORDERS) == before
