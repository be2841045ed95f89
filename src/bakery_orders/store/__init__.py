"""Durable storage for the bakery collections."""

from .db import BakeryRepository, KeyValueStore

__all__ = ["BakeryRepository", "KeyValueStore"]
