"""Order lifecycle and catalog management."""

from .service import ConfirmFn, OrderService

__all__ = ["ConfirmFn", "OrderService"]
