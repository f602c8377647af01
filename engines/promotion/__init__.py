"""
Bazaar Promotion Engine
=========================
Promotional pricing, coupons and the discount resolver.
"""

from engines.promotion.models import Coupon, CouponUsage, DiscountType, Promotion
from engines.promotion.resolver import (
    CouponCheck,
    DiscountResolver,
    DiscountResult,
    LineDiscount,
    PricingLine,
    apply_stacking,
    best_promotion,
    coupon_amount,
)
from engines.promotion.store import (
    CouponStore,
    InMemoryCouponStore,
    InMemoryPromotionStore,
    PromotionStore,
)

__all__ = [
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "Promotion",
    "CouponCheck",
    "DiscountResolver",
    "DiscountResult",
    "LineDiscount",
    "PricingLine",
    "apply_stacking",
    "best_promotion",
    "coupon_amount",
    "CouponStore",
    "PromotionStore",
    "InMemoryCouponStore",
    "InMemoryPromotionStore",
]
