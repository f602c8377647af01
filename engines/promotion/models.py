"""
Bazaar Promotion Engine — Promotions and Coupons
===================================================
Promotion: a fixed promotional unit price for one product or one
variant, active inside a validity window.

Coupon: a code the customer types at checkout. Percentage, fixed
amount, or free shipping, with usage limits, a minimum purchase
and optional product/category applicability.

All money is int minor units. Coupon percentages are Decimal.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import FrozenSet, Optional

from core.commands.base import require_non_negative_int, require_positive_int
from core.errors import ValidationError
from core.time import ValidityWindow

COUPON_CODE_PATTERN = re.compile(r"^[A-Z0-9]+$")


def _window(start: Optional[datetime], end: Optional[datetime]) -> ValidityWindow:
    try:
        return ValidityWindow(start=start, end=end)
    except ValueError as exc:
        raise ValidationError(str(exc), field="end_date")


# ══════════════════════════════════════════════════════════════
# PROMOTION
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Promotion:
    """
    Exactly one of product_id / variant_id is set.
    """
    promotional_price: int
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True
    promotion_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if bool(self.product_id) == bool(self.variant_id):
            raise ValidationError(
                "A promotion targets exactly one product or one variant.",
                field="product_id",
            )
        require_non_negative_int(self.promotional_price, "promotional_price")
        _window(self.start_date, self.end_date)

    @property
    def window(self) -> ValidityWindow:
        return ValidityWindow(self.start_date, self.end_date)

    def is_live(self, now: datetime) -> bool:
        return self.is_active and self.window.contains(now)


# ══════════════════════════════════════════════════════════════
# COUPON
# ══════════════════════════════════════════════════════════════

class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_SHIPPING = "free_shipping"


@dataclass(frozen=True)
class Coupon:
    """
    Fields:
        code:                      Uppercase alphanumeric
        discount_type:             DiscountType
        discount_value:            Percent (Decimal) or minor units (int);
                                   ignored for FREE_SHIPPING
        usage_limit:               Total redemptions allowed (None = unlimited)
        usage_limit_per_customer:  Redemptions per customer
        times_used:                Redemptions so far
        min_purchase_amount:       Post-promotion subtotal threshold
        max_discount_amount:       Cap for percentage coupons (None = uncapped)
        allow_stacking:            Combine with promotional pricing
        applicable_product_ids:    Empty = any product
        applicable_category_ids:   Empty = any category
    """
    code: str
    discount_type: DiscountType
    discount_value: object = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True
    usage_limit: Optional[int] = None
    usage_limit_per_customer: int = 1
    times_used: int = 0
    min_purchase_amount: int = 0
    max_discount_amount: Optional[int] = None
    allow_stacking: bool = False
    applicable_product_ids: FrozenSet[str] = frozenset()
    applicable_category_ids: FrozenSet[str] = frozenset()
    coupon_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not isinstance(self.code, str) or not COUPON_CODE_PATTERN.match(self.code):
            raise ValidationError(
                "Coupon code must be uppercase letters and digits only.",
                field="code",
            )
        if not isinstance(self.discount_type, DiscountType):
            try:
                object.__setattr__(self, "discount_type", DiscountType(self.discount_type))
            except ValueError:
                raise ValidationError(
                    f"Unknown discount type {self.discount_type!r}.",
                    field="discount_type",
                )

        if self.discount_type == DiscountType.PERCENTAGE:
            try:
                pct = Decimal(str(self.discount_value))
            except (InvalidOperation, ValueError):
                raise ValidationError("Percentage must be a number.", field="discount_value")
            if not pct.is_finite() or pct <= 0 or pct > 100:
                raise ValidationError(
                    "Percentage discount must be greater than 0 and at most 100.",
                    field="discount_value",
                )
            object.__setattr__(self, "discount_value", pct)
        elif self.discount_type == DiscountType.FIXED_AMOUNT:
            require_positive_int(self.discount_value, "discount_value")

        _window(self.start_date, self.end_date)
        if self.usage_limit is not None:
            require_positive_int(self.usage_limit, "usage_limit")
        require_positive_int(self.usage_limit_per_customer, "usage_limit_per_customer")
        require_non_negative_int(self.times_used, "times_used")
        require_non_negative_int(self.min_purchase_amount, "min_purchase_amount")
        if self.max_discount_amount is not None:
            require_positive_int(self.max_discount_amount, "max_discount_amount")
        object.__setattr__(self, "applicable_product_ids", frozenset(self.applicable_product_ids))
        object.__setattr__(self, "applicable_category_ids", frozenset(self.applicable_category_ids))

    @property
    def window(self) -> ValidityWindow:
        return ValidityWindow(self.start_date, self.end_date)

    @property
    def has_scope(self) -> bool:
        return bool(self.applicable_product_ids or self.applicable_category_ids)

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.times_used >= self.usage_limit

    def matches(self, product_id: str, category_id: Optional[str]) -> bool:
        return (
            product_id in self.applicable_product_ids
            or (category_id is not None and category_id in self.applicable_category_ids)
        )


@dataclass(frozen=True)
class CouponUsage:
    coupon_id: str
    customer_id: str
    order_id: str
    discount_amount: int
    used_at: datetime
