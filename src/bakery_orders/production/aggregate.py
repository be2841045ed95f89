from __future__ import annotations

from collections import Counter
from typing import Callable, Dict, Iterable, List, Sequence

from ..domain.calendar import DateLike, parse_date, week_range
from ..domain.models import Number, Order, Product, ProductionLine

OrderPredicate = Callable[[Order], bool]


def aggregate(orders: Iterable[Order], predicate: OrderPredicate) -> Dict[str, Number]:
    """Sum item quantities per product id over the orders matching predicate.

    Returns an empty mapping when nothing matches. Pure; inputs are not
    modified.
    """
    totals: Dict[str, Number] = {}
    for order in orders:
        if not predicate(order):
            continue
        for item in order.items:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def on_date(value: DateLike) -> OrderPredicate:
    day = parse_date(value).isoformat()
    return lambda order: order.date == day


def within(start: DateLike, end: DateLike) -> OrderPredicate:
    """Inclusive ``start <= order.date <= end``."""
    lo = parse_date(start).isoformat()
    hi = parse_date(end).isoformat()
    return lambda order: lo <= order.date <= hi


def daily_totals(orders: Iterable[Order], value: DateLike) -> Dict[str, Number]:
    return aggregate(orders, on_date(value))


def weekly_totals(orders: Iterable[Order], value: DateLike) -> Dict[str, Number]:
    week = week_range(value)
    return aggregate(orders, within(week.start, week.end))


def summarize(totals: Dict[str, Number], products: Sequence[Product]) -> List[ProductionLine]:
    """Resolve product names and units for an aggregation result.

    Ids without a matching product keep their total with an empty name/unit.
    """
    by_id = {p.id: p for p in products}
    lines: List[ProductionLine] = []
    for product_id, total in totals.items():
        product = by_id.get(product_id)
        lines.append(
            ProductionLine(
                product_id=product_id,
                product_name=product.name if product else "",
                total=total,
                unit=product.unit if product else "",
            )
        )
    lines.sort(key=lambda line: (line.product_name.lower(), line.product_id))
    return lines


def by_name(lines: Sequence[ProductionLine]) -> Dict[str, Number]:
    """Key summarized totals by product name for human-facing consumers.

    Names shared by several products get the product id appended so no total
    is lost; dangling ids are keyed by the id itself.
    """
    counts = Counter(line.product_name for line in lines if line.product_name)
    named: Dict[str, Number] = {}
    for line in lines:
        if not line.product_name:
            label = line.product_id
        elif counts[line.product_name] > 1:
            label = f"{line.product_name} ({line.product_id})"
        else:
            label = line.product_name
        named[label] = line.total
    return named
