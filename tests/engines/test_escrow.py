"""
Bazaar — Escrow Ledger Tests
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.config import MarketplaceRules
from core.errors import ValidationError
from core.time import FixedClock
from engines.orders import EarningsStatus, EscrowLedger, InMemoryEarningsStore

NOW = datetime(2026, 5, 4, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def escrow(clock):
    return EscrowLedger(InMemoryEarningsStore(), rules=MarketplaceRules(holding_period_days=7), clock=clock)


class TestCredit:
    def test_net_and_holding_period(self, escrow):
        row = escrow.credit("seller-a", "ord-1", gross_amount=4000, commission_amount=400)
        assert row.net_amount == 3600
        assert row.status == EarningsStatus.PENDING
        assert row.available_on == NOW + timedelta(days=7)

    def test_commission_above_gross_rejected(self, escrow):
        with pytest.raises(ValidationError):
            escrow.credit("seller-a", "ord-1", gross_amount=100, commission_amount=101)


class TestDebitRefund:
    def test_partial_debit(self, escrow):
        escrow.credit("seller-a", "ord-1", 4000, 400)
        row = escrow.debit_refund("seller-a", "ord-1", 1000)
        assert row.net_amount == 2600
        assert row.refunded_amount == 1000
        assert row.status == EarningsStatus.PENDING

    def test_floor_at_zero(self, escrow, caplog):
        escrow.credit("seller-a", "ord-1", 4000, 400)
        row = escrow.debit_refund("seller-a", "ord-1", 5000)
        assert row.net_amount == 0
        assert row.refunded_amount == 3600
        assert row.status == EarningsStatus.REFUNDED
        assert "floored at zero" in caplog.text

    def test_fully_refunded_row_not_debited_again(self, escrow):
        escrow.credit("seller-a", "ord-1", 1000, 100)
        escrow.debit_refund("seller-a", "ord-1", 900)
        assert escrow.debit_refund("seller-a", "ord-1", 100) is None

    def test_only_the_sellers_row(self, escrow):
        escrow.credit("seller-a", "ord-1", 1000, 100)
        escrow.credit("seller-b", "ord-1", 2000, 200)
        escrow.debit_refund("seller-b", "ord-1", 500)
        nets = {r.seller_id: r.net_amount for r in escrow.for_order("ord-1")}
        assert nets == {"seller-a": 900, "seller-b": 1300}


class TestRelease:
    def test_matured_rows_become_available(self, escrow, clock):
        escrow.credit("seller-a", "ord-1", 1000, 100)
        assert escrow.release_matured() == []
        clock.advance(timedelta(days=7))
        released = escrow.release_matured()
        assert [r.status for r in released] == [EarningsStatus.AVAILABLE]
        assert escrow.for_seller("seller-a")[0].status == EarningsStatus.AVAILABLE

    def test_available_rows_still_debitable(self, escrow, clock):
        escrow.credit("seller-a", "ord-1", 1000, 100)
        clock.advance(timedelta(days=8))
        escrow.release_matured()
        row = escrow.debit_refund("seller-a", "ord-1", 100)
        assert row.net_amount == 800
        assert row.status == EarningsStatus.AVAILABLE
