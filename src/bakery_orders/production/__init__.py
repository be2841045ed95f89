"""Production planning: per-product totals and CSV exports."""

from .aggregate import aggregate, by_name, daily_totals, on_date, summarize, weekly_totals, within
from .export import CsvExport, export_daily, export_order, export_weekly, to_delimited_rows

__all__ = [
    "aggregate",
    "by_name",
    "daily_totals",
    "on_date",
    "summarize",
    "weekly_totals",
    "within",
    "CsvExport",
    "export_daily",
    "export_order",
    "export_weekly",
    "to_delimited_rows",
]
