"""
Bazaar Returns Engine
=======================
Refund and replacement requests for delivered order lines.
"""

from engines.returns.commands import CreateRefundRequest, CreateReplacementRequest
from engines.returns.eligibility import (
    EligibilityEngine,
    EligibilityResult,
    refund_amount_for,
)
from engines.returns.models import (
    REFUND_WORKFLOW,
    REPLACEMENT_WORKFLOW,
    RefundReason,
    RefundRequest,
    RefundStatus,
    ReplacementReason,
    ReplacementRequest,
    ReplacementStatus,
    RequestKind,
)
from engines.returns.replacement import ReplacementService
from engines.returns.settlement import RefundService
from engines.returns.store import (
    InMemoryRefundStore,
    InMemoryReplacementStore,
    InMemoryRequestStore,
    RequestStore,
)

__all__ = [
    "CreateRefundRequest",
    "CreateReplacementRequest",
    "EligibilityEngine",
    "EligibilityResult",
    "refund_amount_for",
    "REFUND_WORKFLOW",
    "REPLACEMENT_WORKFLOW",
    "RefundReason",
    "RefundRequest",
    "RefundStatus",
    "ReplacementReason",
    "ReplacementRequest",
    "ReplacementStatus",
    "RequestKind",
    "ReplacementService",
    "RefundService",
    "InMemoryRefundStore",
    "InMemoryReplacementStore",
    "InMemoryRequestStore",
    "RequestStore",
]
