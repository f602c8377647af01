"""
Bazaar Returns Engine — Request Aggregates
=============================================
Refund and replacement requests for one delivered order line.

Lifecycles:
    refund:       pending → processing → completed | failed
                  pending → rejected
    replacement:  pending → approved → shipped → completed
                  pending → rejected

A request is "active" until it is rejected or failed. At most one
active request of each kind exists per (order, product).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from core.errors import ValidationError
from core.primitives.workflow import StateTransition, build_workflow


# ══════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════

class RequestKind(str, Enum):
    REFUND = "refund"
    REPLACEMENT = "replacement"

    def __str__(self) -> str:
        return self.value


class RefundReason(str, Enum):
    NOT_AS_DESCRIBED = "not_as_described"
    QUALITY_ISSUE = "quality_issue"
    CHANGED_MIND = "changed_mind"
    FOUND_BETTER_PRICE = "found_better_price"
    OTHER = "other"


class ReplacementReason(str, Enum):
    DEFECTIVE_PRODUCT = "defective_product"
    WRONG_ITEM = "wrong_item"
    DAMAGED_SHIPPING = "damaged_shipping"
    MISSING_PARTS = "missing_parts"
    OTHER = "other"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


class ReplacementStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


REFUND_WORKFLOW = build_workflow(
    "refund_request",
    RefundStatus.PENDING,
    {
        RefundStatus.PENDING: (RefundStatus.PROCESSING, RefundStatus.REJECTED),
        RefundStatus.PROCESSING: (RefundStatus.COMPLETED, RefundStatus.FAILED),
        RefundStatus.COMPLETED: (),
        RefundStatus.FAILED: (),
        RefundStatus.REJECTED: (),
    },
)

REPLACEMENT_WORKFLOW = build_workflow(
    "replacement_request",
    ReplacementStatus.PENDING,
    {
        ReplacementStatus.PENDING: (ReplacementStatus.APPROVED, ReplacementStatus.REJECTED),
        ReplacementStatus.APPROVED: (ReplacementStatus.SHIPPED,),
        ReplacementStatus.SHIPPED: (ReplacementStatus.COMPLETED,),
        ReplacementStatus.COMPLETED: (),
        ReplacementStatus.REJECTED: (),
    },
)

INACTIVE_STATUSES = frozenset({"rejected", "failed"})


# ══════════════════════════════════════════════════════════════
# REQUESTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class _ReturnRequest:
    request_id: str
    order_id: str
    product_id: str
    customer_id: str
    seller_id: Optional[str]
    quantity: int
    description: str
    created_at: datetime
    updated_at: datetime
    variant_id: Optional[str] = None
    evidence_urls: Tuple[str, ...] = ()
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    history: Tuple[StateTransition, ...] = ()
    version: int = 0

    kind = None

    @property
    def is_active(self) -> bool:
        return str(self.status) not in INACTIVE_STATUSES

    def evolve(self, **changes):
        return replace(self, version=self.version + 1, **changes)


@dataclass(frozen=True)
class RefundRequest(_ReturnRequest):
    reason: RefundReason = RefundReason.OTHER
    status: RefundStatus = RefundStatus.PENDING
    refund_amount: int = 0
    gateway_refund_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    kind = RequestKind.REFUND

    def __post_init__(self):
        if self.refund_amount < 0:
            raise ValidationError("refund_amount cannot be negative.", field="refund_amount")


@dataclass(frozen=True)
class ReplacementRequest(_ReturnRequest):
    reason: ReplacementReason = ReplacementReason.OTHER
    status: ReplacementStatus = ReplacementStatus.PENDING
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    kind = RequestKind.REPLACEMENT

    @property
    def holds_stock(self) -> bool:
        """Stock reserved for the replacement and not yet shipped."""
        return self.status == ReplacementStatus.APPROVED
