"""
Bazaar Inventory Engine — Store Protocol and In-Memory Store
===============================================================
The ledger never writes a record blindly. It reads a snapshot,
computes the next one, and asks the store to swap them; the swap
succeeds only if the stored version still equals the snapshot's.
A relational store implements the same contract with a conditional
UPDATE ... WHERE version = %s.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol

from engines.inventory.models import (
    InventoryKey,
    InventoryMovement,
    InventoryRecord,
)


class InventoryStore(Protocol):

    def get(self, key: InventoryKey) -> Optional[InventoryRecord]:
        ...  # pragma: no cover

    def create(self, record: InventoryRecord, movement: InventoryMovement) -> bool:
        """Insert a new record. False if the key already exists."""
        ...  # pragma: no cover

    def swap(
        self,
        expected: InventoryRecord,
        updated: InventoryRecord,
        movement: InventoryMovement,
    ) -> bool:
        """
        Replace `expected` with `updated` and append `movement`,
        atomically, only if the stored version is still
        expected.version. Returns False on a lost race.
        """
        ...  # pragma: no cover

    def all_records(self) -> List[InventoryRecord]:
        ...  # pragma: no cover

    def movements(self, key: InventoryKey) -> List[InventoryMovement]:
        ...  # pragma: no cover


class InMemoryInventoryStore:
    """Thread-safe in-memory store for tests and single-process use."""

    def __init__(self) -> None:
        self._records: Dict[InventoryKey, InventoryRecord] = {}
        self._movements: Dict[InventoryKey, List[InventoryMovement]] = {}
        self._lock = threading.Lock()

    def get(self, key: InventoryKey) -> Optional[InventoryRecord]:
        with self._lock:
            return self._records.get(key)

    def create(self, record: InventoryRecord, movement: InventoryMovement) -> bool:
        with self._lock:
            if record.key in self._records:
                return False
            self._records[record.key] = record
            self._movements.setdefault(record.key, []).append(movement)
            return True

    def swap(
        self,
        expected: InventoryRecord,
        updated: InventoryRecord,
        movement: InventoryMovement,
    ) -> bool:
        with self._lock:
            current = self._records.get(expected.key)
            if current is None or current.version != expected.version:
                return False
            self._records[expected.key] = updated
            self._movements.setdefault(expected.key, []).append(movement)
            return True

    def all_records(self) -> List[InventoryRecord]:
        with self._lock:
            return list(self._records.values())

    def movements(self, key: InventoryKey) -> List[InventoryMovement]:
        with self._lock:
            return list(self._movements.get(key, []))
