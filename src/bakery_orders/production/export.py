"""CSV exports for single orders and production plans.

Fields are joined verbatim: names containing the delimiter or a newline are
not quoted. Product and client names are operator-controlled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..domain.calendar import DateLike, parse_date, week_range
from ..domain.constants import UNKNOWN_CLIENT
from ..domain.models import Client, Number, Order, Product
from ..errors import EmptyExportError
from .aggregate import aggregate, on_date, summarize, within

ORDER_HEADER = ["Producto", "Cantidad", "Unidad"]
DAILY_HEADER = ["Producto", "Total", "Unidad", "Fecha"]
WEEKLY_HEADER = ["Producto", "Total Semanal", "Unidad", "Desde", "Hasta"]


@dataclass(frozen=True)
class CsvExport:
    filename: str
    content: str
    media_type: str = "text/csv; charset=utf-8"


def format_quantity(value: Number) -> str:
    """Shortest text form: ``5`` for whole numbers, ``2.5`` otherwise."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_delimited_rows(header: Sequence[str], rows: Iterable[Sequence[str]], delimiter: str = ",") -> str:
    lines = [delimiter.join(header)]
    lines.extend(delimiter.join(row) for row in rows)
    return "\n".join(lines)


def export_order(order: Order, products: Sequence[Product], clients: Sequence[Client]) -> CsvExport:
    by_id = {p.id: p for p in products}
    rows: List[List[str]] = []
    for item in order.items:
        product = by_id.get(item.product_id)
        rows.append(
            [
                product.name if product else "",
                format_quantity(item.quantity),
                product.unit if product else "",
            ]
        )
    client_name = _client_name(order.client_id, clients)
    return CsvExport(
        filename=f"pedido_{client_name}_{order.date}.csv",
        content=to_delimited_rows(ORDER_HEADER, rows),
    )


def export_daily(orders: Sequence[Order], products: Sequence[Product], value: DateLike) -> CsvExport:
    day = parse_date(value).isoformat()
    totals = aggregate(orders, on_date(day))
    if not totals:
        raise EmptyExportError(f"No hay pedidos para el {day}")
    rows = [
        [line.product_name, format_quantity(line.total), line.unit, day]
        for line in summarize(totals, products)
    ]
    return CsvExport(
        filename=f"produccion_diaria_{day}.csv",
        content=to_delimited_rows(DAILY_HEADER, rows),
    )


def export_weekly(orders: Sequence[Order], products: Sequence[Product], value: DateLike) -> CsvExport:
    week = week_range(value)
    in_week = within(week.start, week.end)
    if not any(in_week(o) for o in orders):
        raise EmptyExportError("No hay pedidos en esta semana")
    totals = aggregate(orders, in_week)
    rows = [
        [line.product_name, format_quantity(line.total), line.unit, week.start, week.end]
        for line in summarize(totals, products)
    ]
    return CsvExport(
        filename=f"produccion_semanal_{week.start}_{week.end}.csv",
        content=to_delimited_rows(WEEKLY_HEADER, rows),
    )


def _client_name(client_id: str, clients: Sequence[Client]) -> str:
    found: Optional[Client] = next((c for c in clients if c.id == client_id), None)
    return found.name if found else UNKNOWN_CLIENT
