"""Domain types and calendar helpers shared across the package."""

from .models import Client, Order, OrderItem, Product, ProductionLine, new_id
from .calendar import WeekRange, parse_date, shift_date, week_range, weekday_name

__all__ = [
    "Client",
    "Order",
    "OrderItem",
    "Product",
    "ProductionLine",
    "new_id",
    "WeekRange",
    "parse_date",
    "shift_date",
    "week_range",
    "weekday_name",
]
