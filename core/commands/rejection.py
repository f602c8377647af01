"""
Bazaar Command Layer — Rejection Model
=========================================
Structured reasons why a request was refused.

A RejectionReason is returned, not raised: eligibility checks and
coupon validation produce one so the API layer can show a precise
message (days since delivery, duplicate request id) alongside a
stable machine code.

Every rejection must be:
- Deterministic (same input → same rejection)
- Machine-readable (code)
- Human-readable (message)
- Attributable (policy_name)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


# ══════════════════════════════════════════════════════════════
# REJECTION REASON (frozen explanation structure)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RejectionReason:
    """
    Structured reason for refusing a request.

    Fields:
        code:        Machine-readable code (see ReasonCode).
        message:     Human-readable explanation.
        policy_name: Name of the check that refused the request.
        details:     Structured context (days, ids, amounts).
    """

    code: str
    message: str
    policy_name: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("code must be a non-empty string.")

        if not self.message or not isinstance(self.message, str):
            raise ValueError("message must be a non-empty string.")

        if not self.policy_name or not isinstance(self.policy_name, str):
            raise ValueError("policy_name must be a non-empty string.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "policy_name": self.policy_name,
            "details": dict(self.details),
        }


# ══════════════════════════════════════════════════════════════
# STANDARD REJECTION CODES
# ══════════════════════════════════════════════════════════════

class ReasonCode:
    """
    Known rejection codes.

    Convention: SCREAMING_SNAKE_CASE.
    """

    # ── Eligibility ───────────────────────────────────────────
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    NOT_ORDER_OWNER = "NOT_ORDER_OWNER"
    ORDER_NOT_DELIVERED = "ORDER_NOT_DELIVERED"
    OUTSIDE_PROCESSING_WINDOW = "OUTSIDE_PROCESSING_WINDOW"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    PRODUCT_NOT_IN_ORDER = "PRODUCT_NOT_IN_ORDER"
    CATEGORY_NOT_REFUNDABLE = "CATEGORY_NOT_REFUNDABLE"
    CATEGORY_NOT_REPLACEABLE = "CATEGORY_NOT_REPLACEABLE"
    PRODUCT_NOT_REFUNDABLE = "PRODUCT_NOT_REFUNDABLE"
    PRODUCT_NOT_REPLACEABLE = "PRODUCT_NOT_REPLACEABLE"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    PRODUCT_ALREADY_REPLACED = "PRODUCT_ALREADY_REPLACED"
    PRODUCT_ALREADY_REFUNDED = "PRODUCT_ALREADY_REFUNDED"

    # ── Coupons ───────────────────────────────────────────────
    COUPON_NOT_FOUND = "COUPON_NOT_FOUND"
    COUPON_INACTIVE = "COUPON_INACTIVE"
    COUPON_NOT_YET_VALID = "COUPON_NOT_YET_VALID"
    COUPON_EXPIRED = "COUPON_EXPIRED"
    COUPON_USAGE_EXHAUSTED = "COUPON_USAGE_EXHAUSTED"
    COUPON_CUSTOMER_LIMIT = "COUPON_CUSTOMER_LIMIT"
    COUPON_MIN_PURCHASE = "COUPON_MIN_PURCHASE"
    COUPON_NOT_APPLICABLE = "COUPON_NOT_APPLICABLE"
