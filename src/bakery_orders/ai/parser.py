from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from ..domain.models import OrderItem, Product
from ..errors import OrderParseError
from ..logging import get_logger


LOG = get_logger("ai-parser")


@dataclass(frozen=True)
class ParsedItem:
    product_name: str
    quantity: float


def order_items_schema() -> dict:
    """JSON schema sent to the model for structured output.

    Structured outputs need an object at the root, so the list lives under
    ``items``.
    """
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["items"],
        "properties": {
            "items": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["productName", "quantity"],
                    "properties": {
                        "productName": {"type": "string"},
                        "quantity": {"type": "number"},
                    },
                },
            }
        },
    }


def _extract_fenced_json(text: str) -> Optional[str]:
    """If the model wrapped JSON in ``` or ```json fences, return the inner content."""
    match = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    if match and match.group(1):
        return match.group(1).strip()
    return None


def _load_json(text: Optional[str]) -> Any:
    if not isinstance(text, str) or not text.strip():
        raise OrderParseError("empty model response")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        fenced = _extract_fenced_json(text)
        if fenced is None:
            raise OrderParseError(f"response is not JSON: {exc}") from exc
        try:
            return json.loads(fenced)
        except json.JSONDecodeError as inner:
            raise OrderParseError(f"fenced block is not JSON: {inner}") from inner


def decode_order_items(text: Optional[str]) -> List[ParsedItem]:
    """Decode model output into parsed items, raising OrderParseError.

    Accepts a bare JSON array or an object with an ``items`` array. Every
    entry must carry a non-empty ``productName`` string and a positive,
    finite numeric ``quantity``.
    """
    data = _load_json(text)
    if isinstance(data, dict):
        data = data.get("items")
    if not isinstance(data, list):
        raise OrderParseError("expected a JSON array of items")

    parsed: List[ParsedItem] = []
    for idx, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise OrderParseError(f"items[{idx}] must be an object")
        name = entry.get("productName")
        if not isinstance(name, str) or not name.strip():
            raise OrderParseError(f"items[{idx}].productName required")
        qty = entry.get("quantity")
        if isinstance(qty, bool) or not isinstance(qty, (int, float)):
            raise OrderParseError(f"items[{idx}].quantity must be a number")
        if not math.isfinite(qty) or qty <= 0:
            raise OrderParseError(f"items[{idx}].quantity must be > 0")
        parsed.append(ParsedItem(product_name=name.strip(), quantity=qty))
    LOG.debug("Decoded %d item(s) from model output", len(parsed))
    return parsed


def match_products(parsed: Sequence[ParsedItem], products: Sequence[Product]) -> List[OrderItem]:
    """Map parsed names to catalog products; unmatched entries are dropped.

    A parsed name matches the first product whose name contains it,
    case-insensitively.
    """
    items: List[OrderItem] = []
    for entry in parsed:
        needle = entry.product_name.lower()
        product = next((p for p in products if needle in p.name.lower()), None)
        if product is None:
            LOG.info("No product matches %r; dropping it", entry.product_name)
            continue
        items.append(OrderItem(product_id=product.id, quantity=entry.quantity))
    return items
