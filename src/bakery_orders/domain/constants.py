from __future__ import annotations

from typing import Any, Dict, List, Tuple

# Monday-first weekday labels; index 0 is Monday.
DAYS: Tuple[str, ...] = ("Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo")

UNIT_UNITS = "unidades"
UNIT_KG = "kg"
UNIT_CHOICES: Tuple[str, ...] = (UNIT_UNITS, UNIT_KG)

UNKNOWN_CLIENT = "Desconocido"

# Durable store keys.
KEY_PRODUCTS = "bakery_products_v2"
KEY_CLIENTS = "bakery_clients_v2"
KEY_ORDERS = "bakery_orders_v2"
KEY_SHEETS_URL = "bakery_sheets_url"

SYNC_IDLE = "idle"
SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"
SYNC_ERROR = "error"

SEED_PRODUCTS: List[Dict[str, Any]] = [
    {"id": "1", "name": "Pan Francés", "category": "Panes", "unit": UNIT_UNITS},
    {"id": "2", "name": "Mignon", "category": "Panes", "unit": UNIT_KG},
    {"id": "3", "name": "Factura Medialuna", "category": "Bollería", "unit": UNIT_UNITS},
    {"id": "4", "name": "Pan de Molde Blanco", "category": "Panes", "unit": UNIT_UNITS},
    {"id": "5", "name": "Bizcochitos de Grasa", "category": "Secos", "unit": UNIT_KG},
    {"id": "6", "name": "Integral con Semillas", "category": "Panes", "unit": UNIT_UNITS},
]

SEED_CLIENTS: List[Dict[str, Any]] = [
    {"id": "c1", "name": "Supermercado Central"},
    {"id": "c2", "name": "Cafetería El Faro"},
    {"id": "c3", "name": "Restaurante Gourmet"},
]
