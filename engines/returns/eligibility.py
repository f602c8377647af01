"""
Bazaar Returns Engine — Eligibility
======================================
Decides whether one line of a delivered order may be refunded or
replaced. Checks run in a fixed order and stop at the first
failure:

 1. order exists                      ORDER_NOT_FOUND
 2. caller owns the order             NOT_ORDER_OWNER
 3. order was delivered               ORDER_NOT_DELIVERED
 4. within the processing window      OUTSIDE_PROCESSING_WINDOW
 5. product is part of the order      PRODUCT_NOT_IN_ORDER
 6. product still exists              PRODUCT_NOT_FOUND
 7. category allows this kind         CATEGORY_NOT_REFUNDABLE /
                                      CATEGORY_NOT_REPLACEABLE
 8. product is not final sale         PRODUCT_NOT_REFUNDABLE /
                                      PRODUCT_NOT_REPLACEABLE
 9. no active request of this kind    DUPLICATE_REQUEST
10. no active request of the other    PRODUCT_ALREADY_REPLACED /
    kind                              PRODUCT_ALREADY_REFUNDED

The result is returned, never raised, so callers can show the
precise reason. Nothing here touches the gateway.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from core.commands.rejection import ReasonCode, RejectionReason
from core.config import MarketplaceRules
from core.time import Clock, SystemClock, days_elapsed
from engines.orders.catalog import Catalog
from engines.orders.models import BasketLine, Order, OrderStatus
from engines.orders.store import OrderStore
from engines.returns.models import RequestKind
from engines.returns.store import RequestStore

POLICY = "returns.eligibility"

DELIVERED_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.PARTIALLY_REFUNDED})


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: Optional[RejectionReason] = None
    order: Optional[Order] = None
    line: Optional[BasketLine] = None
    days_since_delivery: Optional[int] = None
    days_remaining: Optional[int] = None
    refund_amount: int = 0

    @property
    def code(self) -> Optional[str]:
        return self.reason.code if self.reason else None

    def to_dict(self) -> dict:
        data = {
            "eligible": self.eligible,
            "code": self.code,
            "days_since_delivery": self.days_since_delivery,
            "days_remaining": self.days_remaining,
            "refund_amount": self.refund_amount,
        }
        if self.reason is not None:
            data["reason"] = self.reason.to_dict()
        return data


def refund_amount_for(order: Order, line: BasketLine) -> int:
    """
    charged unit price * quantity + the line's share of shipping
    (shipping * line quantity / total quantity, half up).
    """
    shipping_share = 0
    if order.shipping_cost and order.total_quantity:
        exact = Decimal(order.shipping_cost) * line.quantity / Decimal(order.total_quantity)
        shipping_share = int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return line.charged_unit_price * line.quantity + shipping_share


class EligibilityEngine:

    def __init__(
        self,
        orders: OrderStore,
        catalog: Catalog,
        refunds: RequestStore,
        replacements: RequestStore,
        rules: Optional[MarketplaceRules] = None,
        clock: Optional[Clock] = None,
    ):
        self._orders = orders
        self._catalog = catalog
        self._refunds = refunds
        self._replacements = replacements
        self._rules = rules or MarketplaceRules()
        self._clock = clock or SystemClock()

    def check(
        self,
        kind: RequestKind,
        order_id: str,
        product_id: str,
        customer_id: Optional[str] = None,
        variant_id: Optional[str] = None,
    ) -> EligibilityResult:
        kind = RequestKind(kind)
        refund = kind == RequestKind.REFUND

        order = self._orders.get(order_id)
        if order is None:
            return _reject(ReasonCode.ORDER_NOT_FOUND, "Order not found.", order_id=order_id)

        if customer_id is not None and not order.owned_by(customer_id):
            return _reject(ReasonCode.NOT_ORDER_OWNER, "This order does not belong to you.")

        if order.status not in DELIVERED_STATUSES or order.delivered_at is None:
            return _reject(
                ReasonCode.ORDER_NOT_DELIVERED,
                f"Order must be delivered before requesting a {kind}.",
                order=order,
                current_status=str(order.status),
                required_status=str(OrderStatus.DELIVERED),
            )

        window = self._rules.processing_window_days
        days = int(days_elapsed(order.delivered_at, self._clock.now_utc()))
        if days > window:
            return _reject(
                ReasonCode.OUTSIDE_PROCESSING_WINDOW,
                f"The {kind} window has expired ({window} days from delivery).",
                order=order,
                days_since_delivery=days,
                max_days=window,
                delivered_at=order.delivered_at.isoformat(),
            )
        days_remaining = max(0, window - days)

        line = order.find_line(product_id, variant_id)
        if line is None:
            return _reject(
                ReasonCode.PRODUCT_NOT_IN_ORDER,
                "This product is not part of the order.",
                order=order,
                product_id=product_id,
            )

        product = self._catalog.get_product(product_id)
        if product is None:
            return _reject(ReasonCode.PRODUCT_NOT_FOUND, "Product not found.", order=order)

        category = (
            self._catalog.get_category(product.category_id)
            if product.category_id else None
        )
        if category is not None:
            allowed = category.is_refundable if refund else category.is_replaceable
            if not allowed:
                return _reject(
                    ReasonCode.CATEGORY_NOT_REFUNDABLE if refund
                    else ReasonCode.CATEGORY_NOT_REPLACEABLE,
                    f"This product category is not eligible for {kind}.",
                    order=order,
                    category_id=category.category_id,
                )

        if not product.is_returnable:
            return _reject(
                ReasonCode.PRODUCT_NOT_REFUNDABLE if refund
                else ReasonCode.PRODUCT_NOT_REPLACEABLE,
                f"This product is final sale and cannot be {'refunded' if refund else 'replaced'}.",
                order=order,
            )

        same, other = (
            (self._refunds, self._replacements) if refund
            else (self._replacements, self._refunds)
        )
        existing = same.find_active(order_id, product_id)
        if existing is not None:
            return _reject(
                ReasonCode.DUPLICATE_REQUEST,
                f"A {kind} request already exists for this product.",
                order=order,
                existing_request_id=existing.request_id,
                existing_request_status=str(existing.status),
            )
        crossing = other.find_active(order_id, product_id)
        if crossing is not None:
            return _reject(
                ReasonCode.PRODUCT_ALREADY_REPLACED if refund
                else ReasonCode.PRODUCT_ALREADY_REFUNDED,
                "This product has already been replaced and cannot be refunded." if refund
                else "This product has already been refunded and cannot be replaced.",
                order=order,
                existing_request_id=crossing.request_id,
                existing_request_status=str(crossing.status),
            )

        return EligibilityResult(
            eligible=True,
            order=order,
            line=line,
            days_since_delivery=days,
            days_remaining=days_remaining,
            refund_amount=refund_amount_for(order, line) if refund else 0,
        )


def _reject(code: str, message: str, order: Optional[Order] = None, **details) -> EligibilityResult:
    return EligibilityResult(
        eligible=False,
        order=order,
        reason=RejectionReason(
            code=code, message=message, policy_name=POLICY, details=details,
        ),
        days_since_delivery=details.get("days_since_delivery"),
    )
