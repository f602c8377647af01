"""
Bazaar Orders Engine — Escrow Ledger
=======================================
Seller earnings rows: credited when an order is placed, held for
the holding period, released to `available` once matured, and
debited when a refund for that seller's items settles.

Net amounts never go below zero. A row whose net reaches zero
through refunds is marked `refunded`.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from core.config import MarketplaceRules
from core.errors import ConcurrencyConflict, ValidationError
from core.time import Clock, SystemClock
from engines.orders.models import (
    DEBITABLE_EARNINGS,
    EarningsStatus,
    SellerEarnings,
)
from engines.orders.store import EarningsStore

logger = logging.getLogger("bazaar.settlement")

MAX_CAS_ATTEMPTS = 20


class EscrowLedger:

    def __init__(
        self,
        store: EarningsStore,
        rules: Optional[MarketplaceRules] = None,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._rules = rules or MarketplaceRules()
        self._clock = clock or SystemClock()

    def credit(
        self,
        seller_id: str,
        order_id: str,
        gross_amount: int,
        commission_amount: int,
        sub_order_id: Optional[str] = None,
    ) -> SellerEarnings:
        if commission_amount > gross_amount:
            raise ValidationError(
                "Commission cannot exceed the gross amount.", field="commission_amount",
            )
        now = self._clock.now_utc()
        earnings = SellerEarnings(
            earnings_id=str(uuid.uuid4()),
            seller_id=seller_id,
            order_id=order_id,
            sub_order_id=sub_order_id,
            gross_amount=gross_amount,
            commission_amount=commission_amount,
            net_amount=gross_amount - commission_amount,
            available_on=now + timedelta(days=self._rules.holding_period_days),
            created_at=now,
        )
        self._store.add(earnings)
        return earnings

    def remove(self, earnings_id: str) -> bool:
        """Compensation only: drop a row whose order never completed."""
        return self._store.delete(earnings_id)

    def for_order(self, order_id: str) -> List[SellerEarnings]:
        return self._store.list_for_order(order_id)

    def for_seller(self, seller_id: str) -> List[SellerEarnings]:
        return self._store.list_for_seller(seller_id)

    def debit_refund(
        self, seller_id: str, order_id: str, amount: int,
    ) -> Optional[SellerEarnings]:
        """
        Deduct a settled refund from the seller's most recent open
        earnings row for this order. Returns None if the seller has
        no debitable row left (already fully refunded or paid out).
        """
        for _ in range(MAX_CAS_ATTEMPTS):
            candidates = [
                e for e in self._store.list_for_order(order_id)
                if e.seller_id == seller_id and e.status in DEBITABLE_EARNINGS
            ]
            if not candidates:
                logger.warning(
                    "No open earnings for seller %s on order %s; refund of %d not debited",
                    seller_id, order_id, amount,
                )
                return None
            current = candidates[-1]
            net = max(0, current.net_amount - amount)
            debited = current.net_amount - net
            updated = current.evolve(
                net_amount=net,
                refunded_amount=current.refunded_amount + debited,
                status=EarningsStatus.REFUNDED if net == 0 else current.status,
            )
            if self._store.compare_and_set(current, updated):
                if debited < amount:
                    logger.warning(
                        "Refund of %d exceeds seller %s net on order %s; floored at zero",
                        amount, seller_id, order_id,
                    )
                return updated
        raise ConcurrencyConflict(
            f"Earnings for seller {seller_id} on order {order_id} kept changing.",
            details={"seller_id": seller_id, "order_id": order_id},
        )

    def release_matured(self, now: Optional[datetime] = None) -> List[SellerEarnings]:
        """Move pending rows past their holding period to available."""
        now = now or self._clock.now_utc()
        released = []
        for row in self._store.list_by_status(EarningsStatus.PENDING):
            if row.available_on > now:
                continue
            updated = row.evolve(status=EarningsStatus.AVAILABLE)
            if self._store.compare_and_set(row, updated):
                released.append(updated)
            else:
                logger.debug("Earnings %s changed during release; skipped", row.earnings_id)
        if released:
            logger.info("Released %d matured earnings row(s)", len(released))
        return released
