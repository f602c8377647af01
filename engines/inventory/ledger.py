"""
Bazaar Inventory Engine — Ledger
===================================
Reserve / release / fulfill / restore / adjust against one
inventory key at a time.

Every operation is a compare-and-swap loop:
    1. read the current snapshot
    2. compute the next snapshot (domain checks raise here)
    3. swap it in if the version is unchanged, else re-read and retry

Two concurrent reservations for the last unit therefore cannot both
succeed: the loser re-reads, sees available == 0, and fails with
InsufficientInventory.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from core.commands.base import require_non_negative_int, require_positive_int
from core.errors import (
    ConcurrencyConflict,
    InsufficientInventory,
    InsufficientReservation,
    NegativeInventory,
    NotFound,
    ValidationError,
)
from core.time import Clock, SystemClock
from engines.inventory.models import (
    InventoryKey,
    InventoryMovement,
    InventoryRecord,
    MovementType,
)
from engines.inventory.store import InventoryStore

logger = logging.getLogger("bazaar.inventory")

DEFAULT_MAX_CAS_ATTEMPTS = 100

# Step returns the next snapshot and the quantity actually applied,
# or None when the operation is a no-op for this snapshot.
Step = Callable[[InventoryRecord], Optional[Tuple[InventoryRecord, int]]]


class InventoryLedger:

    def __init__(
        self,
        store: InventoryStore,
        clock: Optional[Clock] = None,
        default_low_stock_threshold: int = 10,
        max_cas_attempts: int = DEFAULT_MAX_CAS_ATTEMPTS,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._default_threshold = default_low_stock_threshold
        self._max_cas_attempts = max_cas_attempts

    # ── queries ───────────────────────────────────────────────

    def snapshot(self, key: InventoryKey) -> InventoryRecord:
        record = self._store.get(key)
        if record is None:
            raise NotFound("Inventory", str(key))
        return record

    def available(self, key: InventoryKey) -> int:
        return self.snapshot(key).available

    def low_stock(self) -> List[InventoryRecord]:
        """Records at or below their threshold, emptiest first."""
        low = [r for r in self._store.all_records() if r.is_low_stock]
        return sorted(low, key=lambda r: (r.available, str(r.key)))

    def movements(self, key: InventoryKey) -> List[InventoryMovement]:
        return self._store.movements(key)

    # ── registration ──────────────────────────────────────────

    def register(
        self,
        key: InventoryKey,
        quantity: int,
        low_stock_threshold: Optional[int] = None,
    ) -> InventoryRecord:
        require_non_negative_int(quantity, "quantity")
        threshold = (
            self._default_threshold if low_stock_threshold is None
            else low_stock_threshold
        )
        require_non_negative_int(threshold, "low_stock_threshold")
        record = InventoryRecord(
            key=key, quantity=quantity, low_stock_threshold=threshold,
        )
        movement = self._movement(record, MovementType.REGISTER, quantity, "initial stock")
        if not self._store.create(record, movement):
            raise ValidationError(
                f"Inventory for {key} is already registered.", field="key",
            )
        logger.info("Registered %s with quantity %d", key, quantity)
        return record

    # ── mutations ─────────────────────────────────────────────

    def reserve(
        self, key: InventoryKey, qty: int, reference: Optional[str] = None,
    ) -> InventoryRecord:
        require_positive_int(qty, "quantity")

        def step(rec: InventoryRecord):
            if rec.available < qty:
                raise InsufficientInventory(str(key), rec.available, qty)
            return rec.evolve(reserved_quantity=rec.reserved_quantity + qty), qty

        return self._apply(key, MovementType.RESERVE, step, "reserve", reference)

    def release(
        self, key: InventoryKey, qty: int, reference: Optional[str] = None,
    ) -> InventoryRecord:
        """Floored at zero: releasing more than is reserved is not an error."""
        require_positive_int(qty, "quantity")

        def step(rec: InventoryRecord):
            released = min(qty, rec.reserved_quantity)
            if released == 0:
                return None
            if released < qty:
                logger.debug(
                    "Release of %d on %s floored to %d", qty, key, released,
                )
            return rec.evolve(reserved_quantity=rec.reserved_quantity - released), released

        return self._apply(key, MovementType.RELEASE, step, "release", reference)

    def fulfill(
        self, key: InventoryKey, qty: int, reference: Optional[str] = None,
    ) -> InventoryRecord:
        """Convert a reservation into a permanent stock reduction."""
        require_positive_int(qty, "quantity")

        def step(rec: InventoryRecord):
            if rec.reserved_quantity < qty:
                raise InsufficientReservation(str(key), rec.reserved_quantity, qty)
            return rec.evolve(
                quantity=rec.quantity - qty,
                reserved_quantity=rec.reserved_quantity - qty,
            ), qty

        return self._apply(key, MovementType.FULFILL, step, "fulfill", reference)

    def restore(
        self,
        key: InventoryKey,
        qty: int,
        reason: str = "return",
        reference: Optional[str] = None,
    ) -> InventoryRecord:
        require_positive_int(qty, "quantity")

        def step(rec: InventoryRecord):
            return rec.evolve(quantity=rec.quantity + qty), qty

        return self._apply(key, MovementType.RESTORE, step, reason, reference)

    def adjust(
        self,
        key: InventoryKey,
        delta: int,
        reason: str,
        reference: Optional[str] = None,
    ) -> InventoryRecord:
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("delta must be an integer.", field="delta")
        if not reason or not reason.strip():
            raise ValidationError("An adjustment reason is required.", field="reason")

        def step(rec: InventoryRecord):
            if delta == 0:
                return None
            new_quantity = rec.quantity + delta
            if new_quantity < 0:
                raise NegativeInventory(str(key), rec.quantity, delta)
            if new_quantity < rec.reserved_quantity:
                raise NegativeInventory(
                    str(key), rec.quantity, delta, reserved=rec.reserved_quantity,
                )
            return rec.evolve(quantity=new_quantity), delta

        return self._apply(key, MovementType.ADJUST, step, reason, reference)

    # ── internals ─────────────────────────────────────────────

    def _apply(
        self,
        key: InventoryKey,
        movement_type: MovementType,
        step: Step,
        reason: str,
        reference: Optional[str],
    ) -> InventoryRecord:
        for _ in range(self._max_cas_attempts):
            current = self.snapshot(key)
            outcome = step(current)
            if outcome is None:
                return current
            updated, applied = outcome
            movement = self._movement(updated, movement_type, applied, reason, reference)
            if self._store.swap(current, updated, movement):
                return updated
        logger.error(
            "%s on %s lost %d consecutive races",
            movement_type.value, key, self._max_cas_attempts,
        )
        raise ConcurrencyConflict(
            f"Inventory for {key} is under heavy contention; try again.",
            details={"key": str(key)},
        )

    def _movement(
        self,
        record: InventoryRecord,
        movement_type: MovementType,
        quantity: int,
        reason: str,
        reference: Optional[str] = None,
    ) -> InventoryMovement:
        return InventoryMovement(
            key=record.key,
            movement_type=movement_type,
            quantity=quantity,
            quantity_after=record.quantity,
            reserved_after=record.reserved_quantity,
            occurred_at=self._clock.now_utc(),
            reason=reason,
            reference=reference,
        )
