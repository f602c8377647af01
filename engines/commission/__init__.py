"""
Bazaar Commission Engine
==========================
Platform commission rates and seller payout arithmetic.
"""

from engines.commission.calculator import (
    CommissionCalculator,
    CommissionSplit,
    ResolvedRate,
    SellerCommission,
    calculate_commission,
    seller_payout,
)
from engines.commission.rates import (
    CommissionRate,
    CommissionRateBook,
    CommissionRateStore,
    InMemoryCommissionRateStore,
    RateScope,
)

__all__ = [
    "CommissionCalculator",
    "CommissionSplit",
    "ResolvedRate",
    "SellerCommission",
    "calculate_commission",
    "seller_payout",
    "CommissionRate",
    "CommissionRateBook",
    "CommissionRateStore",
    "InMemoryCommissionRateStore",
    "RateScope",
]
