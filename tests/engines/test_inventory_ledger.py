"""
Bazaar — Inventory Ledger Tests
=================================
Reserve / release / fulfill / restore / adjust, the reservation
invariant, the movement audit log, and concurrent reservations.
"""

import threading
from datetime import datetime, timezone

import pytest

from core.errors import (
    InsufficientInventory,
    InsufficientReservation,
    NegativeInventory,
    NotFound,
    ValidationError,
)
from core.time import FixedClock
from engines.inventory import (
    InMemoryInventoryStore,
    InventoryKey,
    InventoryLedger,
    MovementType,
)

NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)
SHIRT = InventoryKey.product("prod-shirt")
SHIRT_RED_M = InventoryKey.variant("var-shirt-red-m")


def _ledger(**stock):
    ledger = InventoryLedger(InMemoryInventoryStore(), clock=FixedClock(NOW))
    for key, qty in stock.items():
        ledger.register(key, qty)
    return ledger


@pytest.fixture
def ledger():
    ledger = InventoryLedger(InMemoryInventoryStore(), clock=FixedClock(NOW))
    ledger.register(SHIRT, 10)
    ledger.register(SHIRT_RED_M, 3, low_stock_threshold=2)
    return ledger


# ══════════════════════════════════════════════════════════════
# KEYS
# ══════════════════════════════════════════════════════════════

class TestInventoryKey:
    def test_variant_line_uses_variant_stock(self):
        key = InventoryKey.for_line("prod-1", "var-1")
        assert key == InventoryKey.variant("var-1")

    def test_simple_line_uses_product_stock(self):
        assert InventoryKey.for_line("prod-1", None) == InventoryKey.product("prod-1")

    def test_str_form(self):
        assert str(SHIRT_RED_M) == "variant:var-shirt-red-m"

    def test_empty_ref_rejected(self):
        with pytest.raises(ValidationError):
            InventoryKey.product("")


# ══════════════════════════════════════════════════════════════
# RESERVE / RELEASE
# ══════════════════════════════════════════════════════════════

class TestReserve:
    def test_reserve_reduces_available(self, ledger):
        rec = ledger.reserve(SHIRT, 4)
        assert rec.reserved_quantity == 4
        assert rec.quantity == 10
        assert ledger.available(SHIRT) == 6

    def test_reserve_exact_available(self, ledger):
        ledger.reserve(SHIRT, 10)
        assert ledger.available(SHIRT) == 0

    def test_reserve_beyond_available_fails(self, ledger):
        ledger.reserve(SHIRT, 8)
        with pytest.raises(InsufficientInventory) as exc:
            ledger.reserve(SHIRT, 3)
        assert exc.value.available == 2
        assert exc.value.requested == 3
        assert ledger.snapshot(SHIRT).reserved_quantity == 8

    def test_reserve_unknown_key(self, ledger):
        with pytest.raises(NotFound):
            ledger.reserve(InventoryKey.product("nope"), 1)

    @pytest.mark.parametrize("qty", [0, -1, 1.5, True])
    def test_reserve_rejects_non_positive(self, ledger, qty):
        with pytest.raises(ValidationError):
            ledger.reserve(SHIRT, qty)

    def test_variant_stock_is_independent(self, ledger):
        ledger.reserve(SHIRT_RED_M, 3)
        assert ledger.available(SHIRT_RED_M) == 0
        assert ledger.available(SHIRT) == 10


class TestRelease:
    def test_reserve_then_release_round_trip(self, ledger):
        before = ledger.available(SHIRT)
        ledger.reserve(SHIRT, 5)
        ledger.release(SHIRT, 5)
        assert ledger.available(SHIRT) == before

    def test_release_floors_at_zero(self, ledger):
        ledger.reserve(SHIRT, 2)
        rec = ledger.release(SHIRT, 5)
        assert rec.reserved_quantity == 0
        assert rec.quantity == 10

    def test_duplicate_release_is_tolerated(self, ledger):
        ledger.reserve(SHIRT, 2)
        ledger.release(SHIRT, 2)
        rec = ledger.release(SHIRT, 2)
        assert rec.reserved_quantity == 0

    def test_floored_release_records_actual_quantity(self, ledger):
        ledger.reserve(SHIRT, 2)
        ledger.release(SHIRT, 5)
        last = ledger.movements(SHIRT)[-1]
        assert last.movement_type == MovementType.RELEASE
        assert last.quantity == 2


# ══════════════════════════════════════════════════════════════
# FULFILL / RESTORE / ADJUST
# ══════════════════════════════════════════════════════════════

class TestFulfill:
    def test_fulfill_converts_reservation(self, ledger):
        ledger.reserve(SHIRT, 4)
        rec = ledger.fulfill(SHIRT, 4)
        assert rec.quantity == 6
        assert rec.reserved_quantity == 0
        assert rec.available == 6

    def test_fulfill_more_than_reserved_fails_and_leaves_stock(self, ledger):
        ledger.reserve(SHIRT, 2)
        before = ledger.snapshot(SHIRT)
        with pytest.raises(InsufficientReservation):
            ledger.fulfill(SHIRT, 3)
        after = ledger.snapshot(SHIRT)
        assert (after.quantity, after.reserved_quantity) == (
            before.quantity, before.reserved_quantity,
        )

    def test_fulfill_without_reservation_fails(self, ledger):
        with pytest.raises(InsufficientReservation):
            ledger.fulfill(SHIRT, 1)


class TestRestore:
    def test_restore_adds_quantity_only(self, ledger):
        ledger.reserve(SHIRT, 3)
        rec = ledger.restore(SHIRT, 2, reason="refund", reference="ref-1")
        assert rec.quantity == 12
        assert rec.reserved_quantity == 3
        assert ledger.movements(SHIRT)[-1].reference == "ref-1"


class TestAdjust:
    def test_adjust_up_and_down(self, ledger):
        ledger.adjust(SHIRT, 5, "stock count")
        rec = ledger.adjust(SHIRT, -3, "damaged")
        assert rec.quantity == 12

    def test_adjust_below_zero_fails(self, ledger):
        with pytest.raises(NegativeInventory):
            ledger.adjust(SHIRT, -11, "shrinkage")
        assert ledger.snapshot(SHIRT).quantity == 10

    def test_adjust_below_reserved_fails(self, ledger):
        ledger.reserve(SHIRT, 8)
        with pytest.raises(NegativeInventory) as exc:
            ledger.adjust(SHIRT, -5, "shrinkage")
        assert exc.value.details["reserved"] == 8

    def test_adjust_requires_reason(self, ledger):
        with pytest.raises(ValidationError):
            ledger.adjust(SHIRT, 1, "")


# ══════════════════════════════════════════════════════════════
# QUERIES AND AUDIT LOG
# ══════════════════════════════════════════════════════════════

class TestQueries:
    def test_register_twice_fails(self, ledger):
        with pytest.raises(ValidationError):
            ledger.register(SHIRT, 1)

    def test_low_stock_uses_record_threshold(self, ledger):
        ledger.reserve(SHIRT_RED_M, 1)
        low = ledger.low_stock()
        keys = [r.key for r in low]
        assert SHIRT_RED_M in keys
        assert SHIRT in keys  # 10 available <= default threshold 10

    def test_low_stock_excludes_healthy_records(self):
        ledger = _ledger()
        ledger.register(SHIRT, 50)
        assert ledger.low_stock() == []

    def test_movement_log_is_ordered(self, ledger):
        ledger.reserve(SHIRT, 2, reference="order-1")
        ledger.fulfill(SHIRT, 2, reference="order-1")
        kinds = [m.movement_type for m in ledger.movements(SHIRT)]
        assert kinds == [
            MovementType.REGISTER, MovementType.RESERVE, MovementType.FULFILL,
        ]
        assert all(m.occurred_at == NOW for m in ledger.movements(SHIRT))

    def test_versions_increase(self, ledger):
        v0 = ledger.snapshot(SHIRT).version
        ledger.reserve(SHIRT, 1)
        ledger.release(SHIRT, 1)
        assert ledger.snapshot(SHIRT).version == v0 + 2


# ══════════════════════════════════════════════════════════════
# CONCURRENCY
# ══════════════════════════════════════════════════════════════

class TestConcurrentReservations:
    def test_last_unit_goes_to_exactly_one_caller(self):
        ledger = _ledger()
        ledger.register(SHIRT, 1)
        barrier = threading.Barrier(2)
        outcomes = []

        def attempt():
            barrier.wait()
            try:
                ledger.reserve(SHIRT, 1)
                outcomes.append("ok")
            except InsufficientInventory:
                outcomes.append("insufficient")

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["insufficient", "ok"]
        rec = ledger.snapshot(SHIRT)
        assert rec.reserved_quantity == 1

    def test_many_threads_never_over_reserve(self):
        ledger = _ledger()
        ledger.register(SHIRT, 25)
        successes = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                try:
                    ledger.reserve(SHIRT, 1)
                    with lock:
                        successes.append(1)
                except InsufficientInventory:
                    pass

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        rec = ledger.snapshot(SHIRT)
        assert len(successes) == 25
        assert rec.reserved_quantity == 25
        assert 0 <= rec.reserved_quantity <= rec.quantity
