"""Bakery order management.

Records clients, products and orders, derives daily/weekly production
totals, exports CSV files and mirrors orders to a spreadsheet webhook.
"""

__version__ = "0.3.0"

__all__ = [
    "config",
    "logging",
    "paths",
]
