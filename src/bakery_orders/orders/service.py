from __future__ import annotations

import math
from typing import Callable, Dict, Iterable, List, Optional

from ..domain.calendar import parse_date
from ..domain.constants import UNIT_CHOICES, UNIT_UNITS
from ..domain.models import Client, Order, OrderItem, Product, new_id
from ..errors import OrderNotFoundError, ValidationError
from ..logging import get_logger
from ..store.db import BakeryRepository
from ..sync.outbox import SyncOutbox


LOG = get_logger("order-service")

ConfirmFn = Callable[[str], bool]

DEFAULT_CATEGORY = "General"


def _confirmed(confirm: Optional[ConfirmFn], message: str) -> bool:
    if confirm is None:
        return True
    if confirm(message):
        return True
    LOG.info("Declined: %s", message)
    return False


class OrderService:
    """Owns the in-memory collections and applies every mutation.

    Each mutation computes a new collection, persists it in full through the
    repository and, for orders, hands the new collection to the sync outbox
    without waiting for delivery.
    """

    def __init__(self, repository: BakeryRepository, outbox: Optional[SyncOutbox] = None) -> None:
        self.repository = repository
        self.outbox = outbox
        self._products: List[Product] = repository.load_products()
        self._clients: List[Client] = repository.load_clients()
        self._orders: List[Order] = repository.load_orders()
        self._webhook_url: str = repository.load_webhook_url()
        LOG.info(
            "Loaded %d product(s), %d client(s), %d order(s)",
            len(self._products),
            len(self._clients),
            len(self._orders),
        )

    # ---------- read access ----------
    @property
    def products(self) -> List[Product]:
        return list(self._products)

    @property
    def clients(self) -> List[Client]:
        return list(self._clients)

    @property
    def orders(self) -> List[Order]:
        return list(self._orders)

    @property
    def webhook_url(self) -> str:
        return self._webhook_url

    def get_order(self, order_id: str) -> Order:
        for order in self._orders:
            if order.id == order_id:
                return order
        raise OrderNotFoundError(order_id)

    def orders_for_client(self, client_id: str) -> List[Order]:
        return [o for o in self._orders if o.client_id == client_id]

    def find_product(self, product_id: str) -> Optional[Product]:
        return next((p for p in self._products if p.id == product_id), None)

    def find_client(self, client_id: str) -> Optional[Client]:
        return next((c for c in self._clients if c.id == client_id), None)

    def dangling_references(self) -> Dict[str, List[str]]:
        """Return ids of orders pointing at deleted clients or products."""
        product_ids = {p.id for p in self._products}
        client_ids = {c.id for c in self._clients}
        return {
            "missing_client": [o.id for o in self._orders if o.client_id not in client_ids],
            "missing_product": [
                o.id for o in self._orders if any(it.product_id not in product_ids for it in o.items)
            ],
        }

    # ---------- orders ----------
    @staticmethod
    def build_order(
        client_id: str,
        date: str,
        items: Iterable[OrderItem],
        order_id: Optional[str] = None,
    ) -> Order:
        return Order(id=order_id or new_id(), client_id=client_id, date=date, items=list(items))

    def validate(self, order: Order) -> None:
        if not order.client_id:
            raise ValidationError("Selecciona un cliente")
        if any(not it.product_id for it in order.items):
            raise ValidationError("Selecciona los productos")
        for it in order.items:
            if not math.isfinite(it.quantity) or it.quantity <= 0:
                raise ValidationError("La cantidad debe ser mayor que cero")
        try:
            parse_date(order.date)
        except ValueError as exc:
            raise ValidationError(f"Fecha inválida: {order.date!r}") from exc

    def create(self, order: Order) -> Order:
        self.validate(order)
        if not order.id:
            order.id = new_id()
        if any(o.id == order.id for o in self._orders):
            raise ValidationError(f"Ya existe un pedido con id {order.id}")
        self._commit_orders(self._orders + [order])
        LOG.info("Created order %s for client %s on %s", order.id, order.client_id, order.date)
        return order

    def update(self, order: Order) -> Order:
        self.validate(order)
        self.get_order(order.id)
        self._commit_orders([order if o.id == order.id else o for o in self._orders])
        LOG.info("Updated order %s", order.id)
        return order

    def delete(self, order_id: str, *, confirm: Optional[ConfirmFn] = None) -> bool:
        self.get_order(order_id)
        if not _confirmed(confirm, "¿Estás seguro de eliminar este pedido?"):
            return False
        self._commit_orders([o for o in self._orders if o.id != order_id])
        LOG.info("Deleted order %s", order_id)
        return True

    def resync(self) -> Optional[int]:
        """Push the current orders if a webhook is configured and orders exist."""
        if self.outbox is None or not self._webhook_url or not self._orders:
            return None
        return self.outbox.submit(self._orders, self._products, self._clients)

    def _commit_orders(self, orders: List[Order]) -> None:
        self.repository.save_orders(orders)
        self._orders = orders
        if self.outbox is not None:
            self.outbox.submit(orders, self._products, self._clients)

    # ---------- catalog ----------
    def add_product(self, name: str, unit: str = UNIT_UNITS, category: str = DEFAULT_CATEGORY) -> Product:
        if not name or not name.strip():
            raise ValidationError("El producto necesita un nombre")
        if unit not in UNIT_CHOICES:
            raise ValidationError(f"Unidad inválida: {unit!r}")
        product = Product(id=new_id(), name=name.strip(), category=category or DEFAULT_CATEGORY, unit=unit)
        products = self._products + [product]
        self.repository.save_products(products)
        self._products = products
        LOG.info("Added product %s (%s)", product.name, product.id)
        return product

    def remove_product(self, product_id: str, *, confirm: Optional[ConfirmFn] = None) -> bool:
        """Remove a product; orders keep their now-dangling product ids."""
        if self.find_product(product_id) is None:
            return False
        if not _confirmed(confirm, "¿Seguro quieres eliminar este producto?"):
            return False
        products = [p for p in self._products if p.id != product_id]
        self.repository.save_products(products)
        self._products = products
        LOG.info("Removed product %s", product_id)
        return True

    def add_client(self, name: str, address: Optional[str] = None) -> Client:
        if not name or not name.strip():
            raise ValidationError("El cliente necesita un nombre")
        client = Client(id=new_id(), name=name.strip(), address=(address or "").strip() or None)
        clients = self._clients + [client]
        self.repository.save_clients(clients)
        self._clients = clients
        LOG.info("Added client %s (%s)", client.name, client.id)
        return client

    def remove_client(self, client_id: str, *, confirm: Optional[ConfirmFn] = None) -> bool:
        """Remove a client; their orders keep the dangling client id."""
        if self.find_client(client_id) is None:
            return False
        if not _confirmed(confirm, "¿Seguro quieres eliminar este cliente?"):
            return False
        clients = [c for c in self._clients if c.id != client_id]
        self.repository.save_clients(clients)
        self._clients = clients
        LOG.info("Removed client %s", client_id)
        return True

    def set_webhook_url(self, url: str) -> None:
        url = (url or "").strip()
        self.repository.save_webhook_url(url)
        self._webhook_url = url
        LOG.info("Sheets webhook URL %s", "updated" if url else "cleared")
