"""
Bazaar — Sub-Order Splitter Tests
===================================
Per-seller partitioning, placeholder sellers, commission per
sub-order and the all-or-nothing batch.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.errors import NoValidSellers
from core.time import FixedClock
from engines.commission import (
    CommissionCalculator,
    CommissionRateBook,
    InMemoryCommissionRateStore,
    RateScope,
)
from engines.orders import (
    BasketLine,
    EscrowLedger,
    InMemoryEarningsStore,
    InMemorySubOrderStore,
    Order,
    OrderStatus,
    SubOrderSplitter,
)

NOW = datetime(2026, 5, 4, 10, 0, 0, tzinfo=timezone.utc)


class FlakySubOrderStore(InMemorySubOrderStore):
    """Fails on the n-th insert."""

    def __init__(self, fail_on: int):
        super().__init__()
        self._fail_on = fail_on
        self._inserts = 0

    def add(self, sub_order):
        self._inserts += 1
        if self._inserts == self._fail_on:
            raise RuntimeError("write failed")
        super().add(sub_order)


def _order(*lines):
    return Order(
        order_id="ord-1",
        basket=tuple(lines),
        subtotal_before_discount=sum(l.line_total for l in lines),
        amount=sum(l.line_total for l in lines),
        status=OrderStatus.PENDING_PAYMENT,
        created_at=NOW,
        updated_at=NOW,
        user_id="cust-1",
    )


def _line(product_id, seller_id, price, qty=1, category_id=None):
    return BasketLine(
        product_id=product_id, seller_id=seller_id, quantity=qty,
        unit_price=price, category_id=category_id,
    )


@pytest.fixture
def rates():
    return InMemoryCommissionRateStore()


@pytest.fixture
def earnings():
    return InMemoryEarningsStore()


def _splitter(sub_orders, earnings, rates):
    clock = FixedClock(NOW)
    escrow = EscrowLedger(earnings, clock=clock)
    return SubOrderSplitter(sub_orders, escrow, CommissionCalculator(rates), clock=clock)


# ══════════════════════════════════════════════════════════════
# PARTITIONING
# ══════════════════════════════════════════════════════════════

class TestPartitioning:
    def test_groups_lines_by_seller(self, earnings, rates):
        sub_orders = InMemorySubOrderStore()
        result = _splitter(sub_orders, earnings, rates).split(_order(
            _line("p-1", "seller-a", 1000, qty=2),
            _line("p-2", "seller-b", 500),
            _line("p-3", "seller-a", 300),
        ))
        by_seller = {s.seller_id: s for s in result.sub_orders}
        assert [l.product_id for l in by_seller["seller-a"].lines] == ["p-1", "p-3"]
        assert by_seller["seller-a"].subtotal == 2300
        assert by_seller["seller-b"].subtotal == 500
        assert len(sub_orders.list_for_order("ord-1")) == 2
        assert not result.is_partial

    def test_seller_rate_used_per_sub_order(self, earnings, rates):
        CommissionRateBook(rates).create_rate(RateScope.SELLER, "15", seller_id="seller-b")
        result = _splitter(InMemorySubOrderStore(), earnings, rates).split(_order(
            _line("p-1", "seller-a", 1000),
            _line("p-2", "seller-b", 1000),
        ))
        by_seller = {s.seller_id: s for s in result.sub_orders}
        assert by_seller["seller-a"].commission_rate == Decimal("10.00")
        assert by_seller["seller-b"].commission_rate == Decimal("15.00")
        assert by_seller["seller-b"].seller_payout == 850

    def test_placeholder_lines_dropped_with_warning(self, earnings, rates, caplog):
        result = _splitter(InMemorySubOrderStore(), earnings, rates).split(_order(
            _line("p-1", "seller-a", 1000),
            _line("p-2", "unknown", 500),
        ))
        assert [s.seller_id for s in result.sub_orders] == ["seller-a"]
        assert result.is_partial
        assert [l.product_id for l in result.discarded_lines] == ["p-2"]
        assert "Partial split" in caplog.text

    def test_no_valid_seller(self, earnings, rates):
        with pytest.raises(NoValidSellers):
            _splitter(InMemorySubOrderStore(), earnings, rates).split(_order(
                _line("p-1", None, 1000),
            ))

    def test_earnings_linked_to_sub_orders(self, earnings, rates):
        result = _splitter(InMemorySubOrderStore(), earnings, rates).split(_order(
            _line("p-1", "seller-a", 1000),
            _line("p-2", "seller-b", 500),
        ))
        links = {e.sub_order_id for e in result.earnings}
        assert links == {s.sub_order_id for s in result.sub_orders}


# ══════════════════════════════════════════════════════════════
# ALL OR NOTHING
# ══════════════════════════════════════════════════════════════

class TestAtomicBatch:
    def test_failure_removes_rows_already_written(self, earnings, rates):
        sub_orders = FlakySubOrderStore(fail_on=2)
        splitter = _splitter(sub_orders, earnings, rates)
        with pytest.raises(RuntimeError):
            splitter.split(_order(
                _line("p-1", "seller-a", 1000),
                _line("p-2", "seller-b", 500),
            ))
        assert sub_orders.list_for_order("ord-1") == []
        assert earnings.list_for_order("ord-1") == []

    def test_undo(self, earnings, rates):
        sub_orders = InMemorySubOrderStore()
        splitter = _splitter(sub_orders, earnings, rates)
        result = splitter.split(_order(
            _line("p-1", "seller-a", 1000),
            _line("p-2", "seller-b", 500),
        ))
        splitter.undo(result)
        assert sub_orders.list_for_order("ord-1") == []
        assert earnings.list_for_order("ord-1") == []

    def test_runs_inside_supplied_transaction(self, earnings, rates):
        entered = []

        class Recorder:
            def __enter__(self):
                entered.append("enter")

            def __exit__(self, *exc):
                entered.append("exit")
                return False

        clock = FixedClock(NOW)
        splitter = SubOrderSplitter(
            InMemorySubOrderStore(),
            EscrowLedger(earnings, clock=clock),
            CommissionCalculator(rates),
            clock=clock,
            atomic=Recorder,
        )
        splitter.split(_order(_line("p-1", "seller-a", 1000), _line("p-2", "seller-b", 1)))
        assert entered == ["enter", "exit"]
