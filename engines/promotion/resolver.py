"""
Bazaar Promotion Engine — Discount Resolver
==============================================
Turns cart lines plus an optional coupon code into a priced cart.

1. Per line: best live promotion (variant promotion wins over
   product promotion; lowest promotional price among overlapping ones).
2. Coupon validation, in order: exists, active, started, not ended,
   total usage, per-customer usage, minimum purchase on the
   post-promotion subtotal, applicability scope.
3. Coupon amount: percentage of the post-promotion subtotal (capped),
   fixed amount (never more than the subtotal), 0 for free shipping.
4. Stacking: combined when the coupon allows it, otherwise only the
   larger of promotional vs coupon discount applies.

A rejected coupon aborts the whole resolution with CouponInvalid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence, Tuple

from core.commands.rejection import ReasonCode, RejectionReason
from core.errors import CouponInvalid
from core.time import Clock, SystemClock
from engines.promotion.models import Coupon, CouponUsage, DiscountType, Promotion
from engines.promotion.store import CouponStore, PromotionStore

logger = logging.getLogger("bazaar.discounts")

POLICY = "coupon_validation"


# ══════════════════════════════════════════════════════════════
# INPUT / OUTPUT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PricingLine:
    product_id: str
    unit_price: int
    quantity: int
    variant_id: Optional[str] = None
    category_id: Optional[str] = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class LineDiscount:
    product_id: str
    variant_id: Optional[str]
    quantity: int
    original_price: int
    promotional_price: int
    promotional_discount: int
    promotion_id: Optional[str] = None

    @property
    def subtotal(self) -> int:
        return self.promotional_price * self.quantity


@dataclass(frozen=True)
class CouponCheck:
    coupon: Optional[Coupon]
    discount_amount: int = 0
    rejection: Optional[RejectionReason] = None

    @property
    def is_valid(self) -> bool:
        return self.rejection is None


@dataclass(frozen=True)
class DiscountResult:
    """
    original_subtotal:     sum(unit_price * quantity), before any discount
    promotional_discount:  promotional discount actually applied
    coupon_discount:       coupon discount actually applied
    free_shipping:         the coupon waives shipping
    """
    original_subtotal: int
    promotional_discount: int
    coupon_discount: int
    lines: Tuple[LineDiscount, ...]
    coupon: Optional[Coupon] = None
    stacking_applied: bool = False
    free_shipping: bool = False

    @property
    def total_discount(self) -> int:
        return self.promotional_discount + self.coupon_discount

    @property
    def final_total(self) -> int:
        return max(self.original_subtotal - self.total_discount, 0)

    @property
    def savings_percentage(self) -> int:
        if self.original_subtotal <= 0:
            return 0
        pct = Decimal(self.total_discount) * 100 / Decimal(self.original_subtotal)
        return int(pct.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def line_for(self, product_id: str, variant_id: Optional[str] = None) -> Optional[LineDiscount]:
        for line in self.lines:
            if line.product_id == product_id and line.variant_id == variant_id:
                return line
        return None


# ══════════════════════════════════════════════════════════════
# PURE HELPERS
# ══════════════════════════════════════════════════════════════

def best_promotion(promotions: Sequence[Promotion], now: datetime) -> Optional[Promotion]:
    live = [p for p in promotions if p.is_live(now)]
    if not live:
        return None
    return min(live, key=lambda p: (p.promotional_price, p.promotion_id))


def coupon_amount(coupon: Coupon, total: int) -> int:
    if coupon.discount_type == DiscountType.PERCENTAGE:
        exact = Decimal(total) * coupon.discount_value / Decimal(100)
        amount = int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))
        if coupon.max_discount_amount is not None:
            amount = min(amount, coupon.max_discount_amount)
        return min(amount, total)
    if coupon.discount_type == DiscountType.FIXED_AMOUNT:
        return min(int(coupon.discount_value), total)
    return 0


def apply_stacking(promotional: int, coupon: int, allow_stacking: bool) -> Tuple[int, int]:
    """Returns (promotional applied, coupon applied)."""
    if allow_stacking:
        return promotional, coupon
    if coupon > promotional:
        return 0, coupon
    return promotional, 0


# ══════════════════════════════════════════════════════════════
# RESOLVER
# ══════════════════════════════════════════════════════════════

class DiscountResolver:

    def __init__(
        self,
        promotions: PromotionStore,
        coupons: CouponStore,
        clock: Optional[Clock] = None,
    ):
        self._promotions = promotions
        self._coupons = coupons
        self._clock = clock or SystemClock()

    # ── promotions ────────────────────────────────────────────

    def price_line(self, line) -> LineDiscount:
        now = self._clock.now_utc()
        promo = None
        if line.variant_id:
            promo = best_promotion(self._promotions.for_variant(line.variant_id), now)
        if promo is None:
            promo = best_promotion(self._promotions.for_product(line.product_id), now)

        price = line.unit_price
        if promo is not None and promo.promotional_price < price:
            return LineDiscount(
                product_id=line.product_id,
                variant_id=line.variant_id,
                quantity=line.quantity,
                original_price=price,
                promotional_price=promo.promotional_price,
                promotional_discount=(price - promo.promotional_price) * line.quantity,
                promotion_id=promo.promotion_id,
            )
        return LineDiscount(
            product_id=line.product_id,
            variant_id=line.variant_id,
            quantity=line.quantity,
            original_price=price,
            promotional_price=price,
            promotional_discount=0,
        )

    # ── coupons ───────────────────────────────────────────────

    def check_coupon(
        self,
        code: str,
        customer_id: Optional[str],
        cart_total: int,
        lines: Sequence = (),
    ) -> CouponCheck:
        """Validate a coupon against a post-promotion total. Never raises."""
        normalized = (code or "").strip().upper()
        coupon = self._coupons.get_by_code(normalized)
        if coupon is None:
            return self._reject(None, ReasonCode.COUPON_NOT_FOUND, "Invalid coupon code.")

        now = self._clock.now_utc()
        if not coupon.is_active:
            return self._reject(coupon, ReasonCode.COUPON_INACTIVE, "Coupon is not active.")
        if not coupon.window.has_started(now):
            return self._reject(coupon, ReasonCode.COUPON_NOT_YET_VALID, "Coupon is not yet valid.")
        if coupon.window.has_ended(now):
            return self._reject(coupon, ReasonCode.COUPON_EXPIRED, "Coupon has expired.")
        if coupon.is_exhausted:
            return self._reject(
                coupon, ReasonCode.COUPON_USAGE_EXHAUSTED, "Coupon usage limit reached.",
            )
        if customer_id:
            used = self._coupons.customer_usage_count(coupon.coupon_id, customer_id)
            if used >= coupon.usage_limit_per_customer:
                return self._reject(
                    coupon,
                    ReasonCode.COUPON_CUSTOMER_LIMIT,
                    "You have already used this coupon the maximum number of times.",
                    used=used,
                )
        if cart_total < coupon.min_purchase_amount:
            return self._reject(
                coupon,
                ReasonCode.COUPON_MIN_PURCHASE,
                f"Minimum purchase amount of {coupon.min_purchase_amount} required.",
                min_purchase_amount=coupon.min_purchase_amount,
                cart_total=cart_total,
            )
        if coupon.has_scope and lines:
            if not any(coupon.matches(l.product_id, getattr(l, "category_id", None)) for l in lines):
                return self._reject(
                    coupon,
                    ReasonCode.COUPON_NOT_APPLICABLE,
                    "Coupon not applicable to items in your cart.",
                )

        return CouponCheck(coupon=coupon, discount_amount=coupon_amount(coupon, cart_total))

    def record_usage(
        self,
        coupon: Coupon,
        customer_id: str,
        order_id: str,
        discount_amount: int,
    ) -> CouponUsage:
        usage = CouponUsage(
            coupon_id=coupon.coupon_id,
            customer_id=customer_id,
            order_id=order_id,
            discount_amount=discount_amount,
            used_at=self._clock.now_utc(),
        )
        if not self._coupons.record_usage(usage):
            raise CouponInvalid(
                ReasonCode.COUPON_USAGE_EXHAUSTED,
                "Coupon usage limit reached.",
                code=coupon.code,
            )
        return usage

    def release_usage(self, coupon_id: str, order_id: str) -> bool:
        return self._coupons.remove_usage(coupon_id, order_id)

    # ── full resolution ───────────────────────────────────────

    def resolve(
        self,
        lines: Sequence,
        customer_id: Optional[str] = None,
        coupon_code: Optional[str] = None,
    ) -> DiscountResult:
        priced: List[LineDiscount] = [self.price_line(line) for line in lines]
        original_subtotal = sum(l.original_price * l.quantity for l in priced)
        promotional = sum(l.promotional_discount for l in priced)

        coupon = None
        coupon_discount = 0
        if coupon_code:
            check = self.check_coupon(
                coupon_code, customer_id, original_subtotal - promotional, lines,
            )
            if not check.is_valid:
                reason = check.rejection
                logger.info(
                    "Coupon %s rejected for %s: %s",
                    coupon_code, customer_id, reason.code,
                )
                raise CouponInvalid(reason.code, reason.message, **reason.details)
            coupon = check.coupon
            coupon_discount = check.discount_amount

        allow_stacking = bool(coupon and coupon.allow_stacking)
        promo_applied, coupon_applied = apply_stacking(
            promotional, coupon_discount, allow_stacking,
        )
        return DiscountResult(
            original_subtotal=original_subtotal,
            promotional_discount=promo_applied,
            coupon_discount=coupon_applied,
            lines=tuple(priced),
            coupon=coupon,
            stacking_applied=allow_stacking,
            free_shipping=bool(coupon and coupon.discount_type == DiscountType.FREE_SHIPPING),
        )

    def _reject(self, coupon, code: str, message: str, **details) -> CouponCheck:
        if coupon is not None:
            details.setdefault("code", coupon.code)
        return CouponCheck(
            coupon=coupon,
            rejection=RejectionReason(
                code=code, message=message, policy_name=POLICY, details=details,
            ),
        )
