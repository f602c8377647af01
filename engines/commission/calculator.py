"""
Bazaar Commission Engine — Calculator
========================================
Rate resolution: active seller rate > active category rate >
active global rate > configured default (10%).

    commission = round(amount * rate / 100)     (half up, minor units)
    payout     = amount - commission
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Optional

from core.config import MarketplaceRules, to_percent
from core.errors import ValidationError
from engines.commission.rates import CommissionRateStore, RateScope

DEFAULT_SCOPE = "default"


@dataclass(frozen=True)
class ResolvedRate:
    percentage: Decimal
    scope: str
    rate_id: Optional[str] = None


@dataclass(frozen=True)
class CommissionSplit:
    gross: int
    percentage: Decimal
    commission: int
    payout: int


@dataclass(frozen=True)
class SellerCommission:
    """Per-seller totals over a set of basket lines."""
    seller_id: str
    gross: int
    commission: int
    payout: int

    @property
    def effective_percentage(self) -> Decimal:
        if self.gross == 0:
            return Decimal("0")
        pct = Decimal(self.commission) * 100 / Decimal(self.gross)
        return pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def calculate_commission(amount: int, percentage) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationError("amount must be a non-negative integer.", field="amount")
    pct = to_percent(percentage)
    exact = Decimal(amount) * pct / Decimal(100)
    return int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def seller_payout(amount: int, commission: int) -> int:
    return amount - commission


class CommissionCalculator:

    def __init__(self, store: CommissionRateStore, rules: Optional[MarketplaceRules] = None):
        self._store = store
        self._rules = rules or MarketplaceRules()

    def resolve_rate(
        self,
        seller_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> ResolvedRate:
        if seller_id:
            rate = self._store.find_active(RateScope.SELLER, seller_id)
            if rate is not None:
                return ResolvedRate(rate.percentage, RateScope.SELLER.value, rate.rate_id)
        if category_id:
            rate = self._store.find_active(RateScope.CATEGORY, category_id)
            if rate is not None:
                return ResolvedRate(rate.percentage, RateScope.CATEGORY.value, rate.rate_id)
        rate = self._store.find_active(RateScope.GLOBAL, None)
        if rate is not None:
            return ResolvedRate(rate.percentage, RateScope.GLOBAL.value, rate.rate_id)
        return ResolvedRate(self._rules.default_commission_percent, DEFAULT_SCOPE)

    def split(
        self,
        amount: int,
        seller_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> CommissionSplit:
        pct = self.resolve_rate(seller_id, category_id).percentage
        commission = calculate_commission(amount, pct)
        return CommissionSplit(
            gross=amount,
            percentage=pct,
            commission=commission,
            payout=seller_payout(amount, commission),
        )

    def by_seller(self, lines: Iterable) -> Dict[str, SellerCommission]:
        """
        Aggregate per-line commission by seller, in first-seen order.

        Each line needs seller_id, category_id and line_total.
        The commission is computed per line (category rates can
        differ inside one seller's group) and summed.
        """
        totals: Dict[str, list] = OrderedDict()
        for line in lines:
            split = self.split(line.line_total, line.seller_id, line.category_id)
            bucket = totals.setdefault(line.seller_id, [0, 0])
            bucket[0] += split.gross
            bucket[1] += split.commission
        return OrderedDict(
            (seller_id, SellerCommission(
                seller_id=seller_id,
                gross=gross,
                commission=commission,
                payout=seller_payout(gross, commission),
            ))
            for seller_id, (gross, commission) in totals.items()
        )
