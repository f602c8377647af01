"""
Bazaar Promotion Engine — Stores
===================================
Coupon redemption is the only write on the checkout path here.
record_usage re-checks both usage limits inside the store's own
atomic section, so two customers racing for the last redemption
cannot both win even if both passed validation.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from engines.promotion.models import Coupon, CouponUsage, Promotion


class PromotionStore(Protocol):

    def save(self, promotion: Promotion) -> None:
        ...  # pragma: no cover

    def for_product(self, product_id: str) -> List[Promotion]:
        ...  # pragma: no cover

    def for_variant(self, variant_id: str) -> List[Promotion]:
        ...  # pragma: no cover


class CouponStore(Protocol):

    def save(self, coupon: Coupon) -> None:
        ...  # pragma: no cover

    def get_by_code(self, code: str) -> Optional[Coupon]:
        ...  # pragma: no cover

    def customer_usage_count(self, coupon_id: str, customer_id: str) -> int:
        ...  # pragma: no cover

    def record_usage(self, usage: CouponUsage) -> bool:
        """
        Append usage and increment times_used atomically.
        False (and nothing written) if either limit is already reached.
        """
        ...  # pragma: no cover

    def remove_usage(self, coupon_id: str, order_id: str) -> bool:
        """Undo a usage recorded for an order that was never completed."""
        ...  # pragma: no cover

    def usages(self, coupon_id: str) -> List[CouponUsage]:
        ...  # pragma: no cover


class InMemoryPromotionStore:

    def __init__(self) -> None:
        self._promotions: Dict[str, Promotion] = {}
        self._lock = threading.Lock()

    def save(self, promotion: Promotion) -> None:
        with self._lock:
            self._promotions[promotion.promotion_id] = promotion

    def for_product(self, product_id: str) -> List[Promotion]:
        with self._lock:
            return [p for p in self._promotions.values() if p.product_id == product_id]

    def for_variant(self, variant_id: str) -> List[Promotion]:
        with self._lock:
            return [p for p in self._promotions.values() if p.variant_id == variant_id]


class InMemoryCouponStore:

    def __init__(self) -> None:
        self._coupons: Dict[str, Coupon] = {}
        self._usages: Dict[str, List[CouponUsage]] = {}
        self._lock = threading.Lock()

    def save(self, coupon: Coupon) -> None:
        with self._lock:
            for code, existing in list(self._coupons.items()):
                if existing.coupon_id == coupon.coupon_id and code != coupon.code:
                    del self._coupons[code]
            self._coupons[coupon.code] = coupon

    def get_by_code(self, code: str) -> Optional[Coupon]:
        with self._lock:
            return self._coupons.get(code)

    def customer_usage_count(self, coupon_id: str, customer_id: str) -> int:
        with self._lock:
            return sum(
                1 for u in self._usages.get(coupon_id, [])
                if u.customer_id == customer_id
            )

    def record_usage(self, usage: CouponUsage) -> bool:
        with self._lock:
            coupon = self._by_id(usage.coupon_id)
            if coupon is None or coupon.is_exhausted:
                return False
            used = sum(
                1 for u in self._usages.get(usage.coupon_id, [])
                if u.customer_id == usage.customer_id
            )
            if used >= coupon.usage_limit_per_customer:
                return False
            self._usages.setdefault(usage.coupon_id, []).append(usage)
            self._coupons[coupon.code] = replace(coupon, times_used=coupon.times_used + 1)
            return True

    def remove_usage(self, coupon_id: str, order_id: str) -> bool:
        with self._lock:
            entries = self._usages.get(coupon_id, [])
            kept = [u for u in entries if u.order_id != order_id]
            if len(kept) == len(entries):
                return False
            self._usages[coupon_id] = kept
            coupon = self._by_id(coupon_id)
            if coupon is not None:
                removed = len(entries) - len(kept)
                self._coupons[coupon.code] = replace(
                    coupon, times_used=max(0, coupon.times_used - removed),
                )
            return True

    def usages(self, coupon_id: str) -> List[CouponUsage]:
        with self._lock:
            return list(self._usages.get(coupon_id, []))

    def _by_id(self, coupon_id: str) -> Optional[Coupon]:
        for coupon in self._coupons.values():
            if coupon.coupon_id == coupon_id:
                return coupon
        return None
