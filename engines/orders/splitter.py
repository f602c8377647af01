"""
Bazaar Orders Engine — Sub-Order Splitter
============================================
Partitions a multi-seller order into one SubOrder per seller and
credits one escrow row per seller.

Rules:
- Lines with a missing or placeholder seller id are dropped with a
  partial-split warning; if no seller survives, NoValidSellers.
- All sub-order and earnings rows of one parent order are created
  as one unit. The batch runs inside the store's transaction when
  one is supplied, and every row written is also pushed on a
  compensation stack, so a store without transactions still ends
  with either all rows or none.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Callable, ContextManager, Dict, List, Optional, Tuple

from core.config import MarketplaceRules
from core.errors import NoValidSellers
from core.resilience import CompensationStack
from core.time import Clock, SystemClock
from engines.commission import CommissionCalculator
from engines.orders.escrow import EscrowLedger
from engines.orders.models import BasketLine, Order, SellerEarnings, SubOrder
from engines.orders.store import SubOrderStore

logger = logging.getLogger("bazaar.split")


@dataclass(frozen=True)
class SplitResult:
    sub_orders: Tuple[SubOrder, ...]
    earnings: Tuple[SellerEarnings, ...]
    discarded_lines: Tuple[BasketLine, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.discarded_lines)


def group_by_seller(
    lines, rules: MarketplaceRules,
) -> Tuple["OrderedDict[str, List[BasketLine]]", List[BasketLine]]:
    """(seller_id → lines in basket order, discarded lines)."""
    groups: Dict[str, List[BasketLine]] = OrderedDict()
    discarded: List[BasketLine] = []
    for line in lines:
        if rules.is_placeholder_seller(line.seller_id):
            discarded.append(line)
            continue
        groups.setdefault(line.seller_id, []).append(line)
    return groups, discarded


class SubOrderSplitter:

    def __init__(
        self,
        sub_orders: SubOrderStore,
        escrow: EscrowLedger,
        commission: CommissionCalculator,
        rules: Optional[MarketplaceRules] = None,
        clock: Optional[Clock] = None,
        atomic: Callable[[], ContextManager] = nullcontext,
    ):
        self._sub_orders = sub_orders
        self._escrow = escrow
        self._commission = commission
        self._rules = rules or MarketplaceRules()
        self._clock = clock or SystemClock()
        self._atomic = atomic

    def split(self, order: Order) -> SplitResult:
        groups, discarded = group_by_seller(order.basket, self._rules)
        if discarded:
            logger.warning(
                "Partial split for order %s: %d line(s) without a valid seller dropped (%s)",
                order.order_id,
                len(discarded),
                ", ".join(line.product_id for line in discarded),
            )
        if not groups:
            raise NoValidSellers(
                f"Order {order.order_id} has no line with a valid seller.",
                details={"order_id": order.order_id},
            )

        now = self._clock.now_utc()
        sub_orders: List[SubOrder] = []
        earnings: List[SellerEarnings] = []

        with CompensationStack(f"split:{order.order_id}") as comp:
            with self._atomic():
                for seller_id, lines in groups.items():
                    totals = self._commission.by_seller(lines)[seller_id]
                    sub = SubOrder(
                        sub_order_id=str(uuid.uuid4()),
                        parent_order_id=order.order_id,
                        seller_id=seller_id,
                        lines=tuple(lines),
                        subtotal=totals.gross,
                        commission_rate=totals.effective_percentage,
                        commission_amount=totals.commission,
                        seller_payout=totals.payout,
                        created_at=now,
                        updated_at=now,
                    )
                    self._sub_orders.add(sub)
                    comp.push(
                        f"delete sub-order {sub.sub_order_id}",
                        lambda sid=sub.sub_order_id: self._sub_orders.delete(sid),
                    )
                    sub_orders.append(sub)

                    row = self._escrow.credit(
                        seller_id=seller_id,
                        order_id=order.order_id,
                        gross_amount=totals.gross,
                        commission_amount=totals.commission,
                        sub_order_id=sub.sub_order_id,
                    )
                    comp.push(
                        f"delete earnings {row.earnings_id}",
                        lambda eid=row.earnings_id: self._escrow.remove(eid),
                    )
                    earnings.append(row)
            comp.commit()

        logger.info(
            "Order %s split into %d sub-order(s)", order.order_id, len(sub_orders),
        )
        return SplitResult(
            sub_orders=tuple(sub_orders),
            earnings=tuple(earnings),
            discarded_lines=tuple(discarded),
        )

    def undo(self, result: SplitResult) -> None:
        """Remove every row of a split whose parent order is being rolled back."""
        for row in result.earnings:
            self._escrow.remove(row.earnings_id)
        for sub in result.sub_orders:
            self._sub_orders.delete(sub.sub_order_id)
