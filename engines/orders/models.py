"""
Bazaar Orders Engine — Aggregates
====================================
Order, SubOrder and SellerEarnings snapshots.

All three are frozen. A change is expressed as a new snapshot with
version + 1 and written through the store's compare_and_set, so
two writers racing on the same row cannot silently overwrite each
other.

Money is int minor units throughout.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

from core.errors import ValidationError
from core.primitives.workflow import StateTransition
from engines.inventory.models import InventoryKey


# ══════════════════════════════════════════════════════════════
# STATUSES
# ══════════════════════════════════════════════════════════════

class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    CONFIRMED = "confirmed"
    PACKED = "packed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"

    def __str__(self) -> str:
        return self.value


class FulfillmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class PayoutStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    COMPLETED = "completed"

    def __str__(self) -> str:
        return self.value


class EarningsStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    AVAILABLE = "available"
    REFUNDED = "refunded"

    def __str__(self) -> str:
        return self.value


DEBITABLE_EARNINGS = frozenset({
    EarningsStatus.PENDING,
    EarningsStatus.PROCESSING,
    EarningsStatus.AVAILABLE,
})


# ══════════════════════════════════════════════════════════════
# BASKET LINE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BasketLine:
    """
    unit_price is the catalog price (variant price overrides product
    price). promotional_price is set only when a promotion was
    actually applied to the order.
    """
    product_id: str
    seller_id: Optional[str]
    quantity: int
    unit_price: int
    variant_id: Optional[str] = None
    category_id: Optional[str] = None
    title: str = ""
    promotional_price: Optional[int] = None
    promotion_id: Optional[str] = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    @property
    def charged_unit_price(self) -> int:
        if self.promotional_price is not None:
            return self.promotional_price
        return self.unit_price

    @property
    def promotional_discount(self) -> int:
        return (self.unit_price - self.charged_unit_price) * self.quantity

    @property
    def inventory_key(self) -> InventoryKey:
        return InventoryKey.for_line(self.product_id, self.variant_id)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "seller_id": self.seller_id,
            "category_id": self.category_id,
            "title": self.title,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "promotional_price": self.promotional_price,
            "promotion_id": self.promotion_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> BasketLine:
        return cls(
            product_id=data["product_id"],
            variant_id=data.get("variant_id"),
            seller_id=data.get("seller_id"),
            category_id=data.get("category_id"),
            title=data.get("title", ""),
            quantity=data["quantity"],
            unit_price=data["unit_price"],
            promotional_price=data.get("promotional_price"),
            promotion_id=data.get("promotion_id"),
        )


# ══════════════════════════════════════════════════════════════
# ORDER
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Order:
    """
    Parent order.

    Exactly one of user_id / guest_email is set.

    amount = subtotal_before_discount - promotional_discount
             - coupon_discount + shipping_cost

    refunded_amount counts completed refunds; refund_pending_amount
    counts refunds handed to the gateway but not yet settled. Their
    sum never exceeds amount.
    """
    order_id: str
    basket: Tuple[BasketLine, ...]
    subtotal_before_discount: int
    amount: int
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    user_id: Optional[str] = None
    guest_email: Optional[str] = None
    shipping_address: Dict[str, str] = field(default_factory=dict)
    shipping_cost: int = 0
    coupon_id: Optional[str] = None
    coupon_code: Optional[str] = None
    coupon_discount: int = 0
    promotional_discount: int = 0
    commission_amount: int = 0
    seller_payout_amount: int = 0
    seller_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    fulfilled_at: Optional[datetime] = None
    fulfilled_by: Optional[str] = None
    delivered_at: Optional[datetime] = None
    refunded_amount: int = 0
    refund_pending_amount: int = 0
    replacement_request_ids: Tuple[str, ...] = ()
    history: Tuple[StateTransition, ...] = ()
    version: int = 0

    def __post_init__(self):
        if bool(self.user_id) == bool(self.guest_email):
            raise ValidationError(
                "An order belongs to exactly one of a user or a guest email.",
                field="user_id",
            )
        if not self.basket:
            raise ValidationError("An order needs at least one basket line.", field="basket")
        if self.amount < 0:
            raise ValidationError("Order amount cannot be negative.", field="amount")
        if self.refunded_amount + self.refund_pending_amount > self.amount:
            raise ValidationError(
                "Refunds cannot exceed the order amount.", field="refunded_amount",
            )

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.basket)

    @property
    def total_discount(self) -> int:
        return self.promotional_discount + self.coupon_discount

    @property
    def refundable_balance(self) -> int:
        return self.amount - self.refunded_amount - self.refund_pending_amount

    @property
    def seller_ids(self) -> Tuple[Optional[str], ...]:
        seen = []
        for line in self.basket:
            if line.seller_id not in seen:
                seen.append(line.seller_id)
        return tuple(seen)

    def owned_by(self, user_id: str) -> bool:
        return self.user_id is not None and self.user_id == user_id

    def find_line(self, product_id: str, variant_id: Optional[str] = None) -> Optional[BasketLine]:
        for line in self.basket:
            if line.product_id != product_id:
                continue
            if variant_id is None or line.variant_id == variant_id:
                return line
        return None

    def evolve(self, **changes) -> Order:
        return replace(self, version=self.version + 1, **changes)


# ══════════════════════════════════════════════════════════════
# SUB-ORDER
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SubOrder:
    sub_order_id: str
    parent_order_id: str
    seller_id: str
    lines: Tuple[BasketLine, ...]
    subtotal: int
    commission_rate: Decimal
    commission_amount: int
    seller_payout: int
    created_at: datetime
    updated_at: datetime
    fulfillment_status: FulfillmentStatus = FulfillmentStatus.PENDING
    payout_status: PayoutStatus = PayoutStatus.PENDING
    fulfilled_at: Optional[datetime] = None
    history: Tuple[StateTransition, ...] = ()
    version: int = 0

    def evolve(self, **changes) -> SubOrder:
        return replace(self, version=self.version + 1, **changes)


# ══════════════════════════════════════════════════════════════
# SELLER EARNINGS (escrow row)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SellerEarnings:
    earnings_id: str
    seller_id: str
    order_id: str
    gross_amount: int
    commission_amount: int
    net_amount: int
    available_on: datetime
    created_at: datetime
    sub_order_id: Optional[str] = None
    status: EarningsStatus = EarningsStatus.PENDING
    refunded_amount: int = 0
    version: int = 0

    def __post_init__(self):
        if self.net_amount < 0:
            raise ValidationError("net_amount cannot be negative.", field="net_amount")

    def evolve(self, **changes) -> SellerEarnings:
        return replace(self, version=self.version + 1, **changes)
