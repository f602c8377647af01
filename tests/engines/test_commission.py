"""
Bazaar — Commission Calculator Tests
======================================
Rate priority, rounding, configuration-time validation and
per-seller aggregation.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import pytest

from core.config import MarketplaceRules
from core.errors import InvalidRate, NotFound
from engines.commission import (
    CommissionCalculator,
    CommissionRate,
    CommissionRateBook,
    InMemoryCommissionRateStore,
    RateScope,
    calculate_commission,
    seller_payout,
)


@dataclass
class Line:
    seller_id: str
    line_total: int
    category_id: Optional[str] = None


@pytest.fixture
def store():
    return InMemoryCommissionRateStore()


@pytest.fixture
def book(store):
    return CommissionRateBook(store)


@pytest.fixture
def calc(store):
    return CommissionCalculator(store)


# ══════════════════════════════════════════════════════════════
# ARITHMETIC
# ══════════════════════════════════════════════════════════════

class TestArithmetic:
    def test_default_ten_percent(self):
        assert calculate_commission(4000, 10) == 400
        assert seller_payout(4000, 400) == 3600

    def test_rounds_half_up(self):
        assert calculate_commission(5, Decimal("10")) == 1     # 0.5 → 1
        assert calculate_commission(14, Decimal("10")) == 1    # 1.4 → 1
        assert calculate_commission(999, Decimal("12.5")) == 125  # 124.875

    def test_zero_and_full_rates(self):
        assert calculate_commission(1000, 0) == 0
        assert calculate_commission(1000, 100) == 1000

    @pytest.mark.parametrize("pct", [-1, 100.01, "abc", "NaN"])
    def test_invalid_percentage(self, pct):
        with pytest.raises(InvalidRate):
            calculate_commission(100, pct)


# ══════════════════════════════════════════════════════════════
# RATE CONFIGURATION
# ══════════════════════════════════════════════════════════════

class TestRateConfiguration:
    def test_out_of_range_rejected_at_configuration(self, book):
        with pytest.raises(InvalidRate):
            book.create_rate(RateScope.GLOBAL, 101)
        with pytest.raises(InvalidRate):
            CommissionRate(scope=RateScope.GLOBAL, percentage=-5)

    def test_seller_scope_requires_seller_id(self, book):
        with pytest.raises(InvalidRate, match="seller_id"):
            book.create_rate(RateScope.SELLER, 5)

    def test_category_scope_requires_category_id(self, book):
        with pytest.raises(InvalidRate, match="category_id"):
            book.create_rate("category", 5)

    def test_unknown_scope(self, book):
        with pytest.raises(InvalidRate):
            book.create_rate("region", 5)

    def test_new_active_rate_retires_previous(self, book):
        first = book.create_rate(RateScope.GLOBAL, 12)
        second = book.create_rate(RateScope.GLOBAL, 15)
        active = book.list_rates(scope=RateScope.GLOBAL, is_active=True)
        assert [r.rate_id for r in active] == [second.rate_id]
        assert first.rate_id in {r.rate_id for r in book.list_rates(is_active=False)}

    def test_update_validates_percentage(self, book):
        rate = book.create_rate(RateScope.GLOBAL, 12)
        with pytest.raises(InvalidRate):
            book.update_rate(rate.rate_id, percentage=250)

    def test_update_unknown_rate(self, book):
        with pytest.raises(NotFound):
            book.update_rate("missing", percentage=5)


# ══════════════════════════════════════════════════════════════
# RESOLUTION PRIORITY
# ══════════════════════════════════════════════════════════════

class TestResolveRate:
    def test_default_when_nothing_configured(self, calc):
        resolved = calc.resolve_rate("seller-a", "cat-1")
        assert resolved.percentage == Decimal("10")
        assert resolved.scope == "default"

    def test_configured_default(self, store):
        calc = CommissionCalculator(
            store, MarketplaceRules(default_commission_percent=Decimal("7.5")),
        )
        assert calc.resolve_rate().percentage == Decimal("7.5")

    def test_seller_beats_category_beats_global(self, book, calc):
        book.create_rate(RateScope.GLOBAL, 12)
        book.create_rate(RateScope.CATEGORY, 8, category_id="cat-1")
        book.create_rate(RateScope.SELLER, 5, seller_id="seller-a")

        assert calc.resolve_rate("seller-a", "cat-1").percentage == 5
        assert calc.resolve_rate("seller-b", "cat-1").percentage == 8
        assert calc.resolve_rate("seller-b", "cat-2").percentage == 12

    def test_inactive_rates_ignored(self, book, calc):
        rate = book.create_rate(RateScope.SELLER, 5, seller_id="seller-a")
        book.deactivate_rate(rate.rate_id)
        assert calc.resolve_rate("seller-a").scope == "default"


# ══════════════════════════════════════════════════════════════
# AGGREGATION
# ══════════════════════════════════════════════════════════════

class TestBySeller:
    def test_two_sellers_default_rate(self, calc):
        totals = calc.by_seller([
            Line("seller-a", 4000),
            Line("seller-b", 1500),
        ])
        assert totals["seller-a"].payout == 3600
        assert totals["seller-b"].payout == 1350
        assert list(totals) == ["seller-a", "seller-b"]

    def test_category_rates_within_one_seller(self, book, calc):
        book.create_rate(RateScope.CATEGORY, 20, category_id="cat-lux")
        totals = calc.by_seller([
            Line("seller-a", 1000, "cat-lux"),
            Line("seller-a", 1000, "cat-basic"),
        ])
        assert totals["seller-a"].commission == 200 + 100
        assert totals["seller-a"].effective_percentage == Decimal("15.00")
