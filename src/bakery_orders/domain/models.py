from __future__ import annotations

import math
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .calendar import weekday_name
from .constants import UNIT_CHOICES, UNIT_UNITS

Number = Union[int, float]

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_id(length: int = 9) -> str:
    """Return a short random base-36 identifier."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _quantity(value: Any) -> Number:
    if isinstance(value, bool):
        raise ValueError("quantity must be a number")
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str) and value.strip():
        s = value.strip().replace(",", ".")
        try:
            number = int(s)
        except ValueError:
            number = float(s)
    else:
        raise ValueError(f"quantity must be a number, got {value!r}")
    # NaN and infinities cannot be rendered as JSON.
    if isinstance(number, float) and not math.isfinite(number):
        raise ValueError(f"quantity must be finite, got {value!r}")
    return number


@dataclass
class Product:
    id: str
    name: str
    category: str
    unit: str = UNIT_UNITS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        unit = _text(data.get("unit")) or UNIT_UNITS
        if unit not in UNIT_CHOICES:
            raise ValueError(f"unit must be one of {', '.join(UNIT_CHOICES)}")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            category=str(data.get("category") or ""),
            unit=unit,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "category": self.category, "unit": self.unit}


@dataclass
class Client:
    id: str
    name: str
    address: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Client":
        return cls(id=str(data["id"]), name=str(data.get("name") or ""), address=_text(data.get("address")))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.address is not None:
            out["address"] = self.address
        return out


@dataclass
class OrderItem:
    product_id: str
    quantity: Number

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderItem":
        return cls(product_id=str(data.get("productId") or ""), quantity=_quantity(data.get("quantity", 1)))

    def to_dict(self) -> Dict[str, Any]:
        return {"productId": self.product_id, "quantity": self.quantity}


@dataclass
class Order:
    """A dated request from a client.

    ``day`` is derived from ``date`` on every read, so editing the date
    always yields a matching weekday label.
    """

    id: str
    client_id: str
    date: str  # YYYY-MM-DD
    items: List[OrderItem] = field(default_factory=list)

    @property
    def day(self) -> str:
        try:
            return weekday_name(self.date)
        except ValueError:
            return ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        # A stored "day" key from older documents is ignored.
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise ValueError("items must be a list")
        return cls(
            id=str(data.get("id") or ""),
            client_id=str(data.get("clientId") or ""),
            date=str(data.get("date") or ""),
            items=[OrderItem.from_dict(it) for it in raw_items],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "clientId": self.client_id,
            "date": self.date,
            "day": self.day,
            "items": [it.to_dict() for it in self.items],
        }


@dataclass
class ProductionLine:
    product_id: str
    product_name: str
    total: Number
    unit: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "total": self.total,
            "unit": self.unit,
        }
