"""Language-model helpers: free-text order parsing and production advice."""

from .assistant import OrderAssistant
from .parser import ParsedItem, decode_order_items, match_products

__all__ = ["OrderAssistant", "ParsedItem", "decode_order_items", "match_products"]
