from __future__ import annotations


class BakeryError(Exception):
    """Base class for errors raised by the order-management core."""


class ValidationError(BakeryError):
    """Submitted data was rejected; nothing was changed."""


class OrderNotFoundError(BakeryError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class EmptyExportError(BakeryError):
    """No orders matched the requested export."""


class OrderParseError(BakeryError):
    """Model output could not be decoded into order items."""


class AccessDeniedError(BakeryError):
    pass
