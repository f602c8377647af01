"""
Bazaar Inventory Engine — Records and Movements
==================================================
One InventoryRecord exists per simple product and one per variant.
Records are immutable snapshots; every mutation produces a new
snapshot with version + 1, which the store accepts only if nobody
else moved the version in between.

Invariant: 0 <= reserved_quantity <= quantity
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from core.errors import ValidationError


# ══════════════════════════════════════════════════════════════
# KEYS
# ══════════════════════════════════════════════════════════════

class InventoryKind(str, Enum):
    PRODUCT = "product"
    VARIANT = "variant"


@dataclass(frozen=True)
class InventoryKey:
    kind: InventoryKind
    ref_id: str

    def __post_init__(self):
        if not isinstance(self.kind, InventoryKind):
            raise ValidationError("kind must be InventoryKind.", field="kind")
        if not self.ref_id or not isinstance(self.ref_id, str):
            raise ValidationError("ref_id must be a non-empty string.", field="ref_id")

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.ref_id}"

    @classmethod
    def product(cls, product_id: str) -> InventoryKey:
        return cls(InventoryKind.PRODUCT, product_id)

    @classmethod
    def variant(cls, variant_id: str) -> InventoryKey:
        return cls(InventoryKind.VARIANT, variant_id)

    @classmethod
    def for_line(cls, product_id: str, variant_id: Optional[str] = None) -> InventoryKey:
        """Variant stock when the line names a variant, product stock otherwise."""
        if variant_id:
            return cls.variant(variant_id)
        return cls.product(product_id)


# ══════════════════════════════════════════════════════════════
# RECORD
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class InventoryRecord:
    key: InventoryKey
    quantity: int
    reserved_quantity: int = 0
    low_stock_threshold: int = 10
    version: int = 0

    def __post_init__(self):
        if self.quantity < 0:
            raise ValidationError("quantity cannot be negative.", field="quantity")
        if not 0 <= self.reserved_quantity <= self.quantity:
            raise ValidationError(
                f"reserved_quantity {self.reserved_quantity} outside "
                f"[0, {self.quantity}] for {self.key}.",
                field="reserved_quantity",
            )

    @property
    def available(self) -> int:
        return self.quantity - self.reserved_quantity

    @property
    def is_low_stock(self) -> bool:
        return self.available <= self.low_stock_threshold

    def evolve(self, **changes) -> InventoryRecord:
        """Next snapshot: applies changes and bumps the version."""
        return replace(self, version=self.version + 1, **changes)

    def to_dict(self) -> dict:
        return {
            "key": str(self.key),
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available": self.available,
            "low_stock_threshold": self.low_stock_threshold,
            "version": self.version,
        }


# ══════════════════════════════════════════════════════════════
# MOVEMENT AUDIT LOG
# ══════════════════════════════════════════════════════════════

class MovementType(str, Enum):
    REGISTER = "register"
    RESERVE = "reserve"
    RELEASE = "release"
    FULFILL = "fulfill"
    RESTORE = "restore"
    ADJUST = "adjust"


@dataclass(frozen=True)
class InventoryMovement:
    """
    One applied ledger operation.

    quantity is the amount actually applied (a floored release
    records what was really released, not what was asked for).
    """
    key: InventoryKey
    movement_type: MovementType
    quantity: int
    quantity_after: int
    reserved_after: int
    occurred_at: datetime
    reason: str = ""
    reference: Optional[str] = None
