from __future__ import annotations

import json

import pytest

from bakery_orders.domain.constants import KEY_ORDERS
from bakery_orders.domain.models import OrderItem
from bakery_orders.errors import OrderNotFoundError, ValidationError
from bakery_orders.orders.service import OrderService
from bakery_orders.store.db import BakeryRepository

from conftest import make_order


@pytest.fixture
def service(repository: BakeryRepository) -> OrderService:
    return OrderService(repository)


def _stored_ids(service: OrderService):
    return [o["id"] for o in json.loads(service.repository.store.get(KEY_ORDERS))]


def test_create_appends_and_persists(service: OrderService):
    order = service.build_order("c1", "2024-06-10", [OrderItem("1", 5)])
    created = service.create(order)
    assert created.id and len(created.id) == 9
    assert created.day == "Lunes"
    assert [o.id for o in service.orders] == [created.id]
    assert _stored_ids(service) == [created.id]


@pytest.mark.parametrize(
    "client_id, items, message",
    [
        ("", [OrderItem("1", 1)], "Selecciona un cliente"),
        ("c1", [OrderItem("1", 1), OrderItem("", 2)], "Selecciona los productos"),
        ("c1", [OrderItem("1", 0)], "mayor que cero"),
        ("c1", [OrderItem("1", float("nan"))], "mayor que cero"),
        ("c1", [OrderItem("1", float("inf"))], "mayor que cero"),
    ],
)
def test_invalid_orders_are_rejected_without_changes(service: OrderService, client_id, items, message):
    with pytest.raises(ValidationError, match=message):
        service.create(service.build_order(client_id, "2024-06-10", items))
    assert service.orders == []
    assert service.repository.store.get(KEY_ORDERS) is None


@pytest.mark.parametrize("raw", ["nan", "inf", "-Infinity", float("nan"), float("inf")])
def test_order_items_refuse_non_finite_quantities(raw):
    with pytest.raises(ValueError, match="finite"):
        OrderItem.from_dict({"productId": "1", "quantity": raw})


def test_order_items_accept_numeric_strings():
    assert OrderItem.from_dict({"productId": "1", "quantity": "2,5"}).quantity == 2.5
    assert OrderItem.from_dict({"productId": "1", "quantity": " 3 "}).quantity == 3
    with pytest.raises(ValueError):
        OrderItem.from_dict({"productId": "1", "quantity": "tres"})


def test_invalid_date_is_rejected(service: OrderService):
    with pytest.raises(ValidationError):
        service.create(service.build_order("c1", "10/06/2024", [OrderItem("1", 1)]))


def test_duplicate_id_is_rejected(service: OrderService):
    service.create(make_order("o1", "2024-06-10", ("1", 1)))
    with pytest.raises(ValidationError):
        service.create(make_order("o1", "2024-06-11", ("1", 1)))


def test_update_replaces_by_id_and_rederives_weekday(service: OrderService):
    service.create(make_order("o1", "2024-06-10", ("1", 1)))
    service.create(make_order("o2", "2024-06-10", ("2", 2)))
    service.update(make_order("o1", "2024-06-12", ("1", 4)))
    first = service.get_order("o1")
    assert first.date == "2024-06-12"
    assert first.day == "Miércoles"
    assert first.items == [OrderItem("1", 4)]
    assert [o.id for o in service.orders] == ["o1", "o2"]


def test_update_unknown_order_raises(service: OrderService):
    with pytest.raises(OrderNotFoundError):
        service.update(make_order("missing", "2024-06-10", ("1", 1)))


def test_delete_removes_exactly_that_order(service: OrderService):
    for oid in ("o1", "o2", "o3"):
        service.create(make_order(oid, "2024-06-10", ("1", 1)))
    before = {o.id: o.to_dict() for o in service.orders}
    assert service.delete("o2") is True
    after = {o.id: o.to_dict() for o in service.orders}
    assert list(after) == ["o1", "o3"]
    assert after == {k: v for k, v in before.items() if k != "o2"}
    assert _stored_ids(service) == ["o1", "o3"]


def test_declined_confirmation_leaves_state_unchanged(service: OrderService):
    service.create(make_order("o1", "2024-06-10", ("1", 1)))
    prompts = []

    def decline(message: str) -> bool:
        prompts.append(message)
        return False

    assert service.delete("o1", confirm=decline) is False
    assert [o.id for o in service.orders] == ["o1"]
    assert prompts == ["¿Estás seguro de eliminar este pedido?"]
    assert service.remove_client("c1", confirm=decline) is False
    assert service.find_client("c1") is not None


def test_removing_catalog_entries_leaves_dangling_references(service: OrderService):
    service.create(make_order("o1", "2024-06-10", ("1", 1), client_id="c2"))
    assert service.remove_product("1") is True
    assert service.remove_client("c2") is True
    assert service.get_order("o1").items == [OrderItem("1", 1)]
    assert service.dangling_references() == {"missing_client": ["o1"], "missing_product": ["o1"]}


def test_catalog_additions_persist(service: OrderService, repository: BakeryRepository):
    product = service.add_product("  Chipá ", unit="kg")
    client = service.add_client("Kiosco Norte", address="Calle 5")
    assert product.category == "General"
    assert product.name == "Chipá"
    reloaded = OrderService(repository)
    assert reloaded.find_product(product.id) == product
    assert reloaded.find_client(client.id) == client
    with pytest.raises(ValidationError):
        service.add_product("Bad", unit="litros")
    with pytest.raises(ValidationError):
        service.add_client("   ")


def test_orders_for_client_filters(service: OrderService):
    service.create(make_order("o1", "2024-06-10", ("1", 1), client_id="c1"))
    service.create(make_order("o2", "2024-06-10", ("1", 1), client_id="c2"))
    assert [o.id for o in service.orders_for_client("c2")] == ["o2"]


def test_webhook_url_is_trimmed_and_persisted(service: OrderService, repository: BakeryRepository):
    service.set_webhook_url("  https://example.test/exec ")
    assert OrderService(repository).webhook_url == "https://example.test/exec"
