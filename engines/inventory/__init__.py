"""
Bazaar Inventory Engine
=========================
Per-product and per-variant stock with a reservation ledger.
"""

from engines.inventory.ledger import InventoryLedger
from engines.inventory.models import (
    InventoryKey,
    InventoryKind,
    InventoryMovement,
    InventoryRecord,
    MovementType,
)
from engines.inventory.store import InMemoryInventoryStore, InventoryStore

__all__ = [
    "InventoryLedger",
    "InventoryKey",
    "InventoryKind",
    "InventoryRecord",
    "InventoryMovement",
    "MovementType",
    "InventoryStore",
    "InMemoryInventoryStore",
]
