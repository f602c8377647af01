"""
Bazaar Core — Error Taxonomy
==============================
Every failure that leaves the order core carries a stable machine
code so the API layer can map it to a status code without parsing
free text.

Rules:
- code is SCREAMING_SNAKE_CASE and never changes once published
- message is human-readable and safe to show to the caller
- details carries structured context (quantities, ids, days)
- store-level exceptions are never wrapped verbatim
"""

from __future__ import annotations

from typing import Any, Optional


class BazaarError(Exception):
    """Base error for every failure raised by the order core."""

    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        if code is not None:
            self.code = code
        self.message = message
        self.details = dict(details or {})
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


# ══════════════════════════════════════════════════════════════
# INPUT
# ══════════════════════════════════════════════════════════════

class ValidationError(BazaarError):
    """Malformed input rejected at the boundary."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if field is not None:
            details["field"] = field
        self.field = field
        super().__init__(message, details=details, **kwargs)


class Forbidden(BazaarError):
    """Authenticated caller lacks the role or ownership for this action."""

    code = "FORBIDDEN"


class NotFound(BazaarError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} '{entity_id}' not found.",
            details={"entity": entity, "id": str(entity_id)},
        )


# ══════════════════════════════════════════════════════════════
# INVENTORY
# ══════════════════════════════════════════════════════════════

class InsufficientInventory(BazaarError):
    code = "INSUFFICIENT_INVENTORY"

    def __init__(self, key: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient inventory for {key}: "
            f"{available} available, {requested} requested.",
            details={"key": key, "available": available, "requested": requested},
        )


class InsufficientReservation(BazaarError):
    code = "INSUFFICIENT_RESERVATION"

    def __init__(self, key: str, reserved: int, requested: int):
        self.reserved = reserved
        self.requested = requested
        super().__init__(
            f"Insufficient reserved inventory for {key}: "
            f"{reserved} reserved, {requested} requested.",
            details={"key": key, "reserved": reserved, "requested": requested},
        )


class NegativeInventory(BazaarError):
    code = "NEGATIVE_INVENTORY"

    def __init__(self, key: str, quantity: int, delta: int, reserved: int = 0):
        floor = "zero" if not reserved else f"the {reserved} reserved"
        super().__init__(
            f"Adjustment of {delta} would drive {key} below {floor} "
            f"(current quantity {quantity}).",
            details={
                "key": key,
                "quantity": quantity,
                "delta": delta,
                "reserved": reserved,
            },
        )


class ConcurrencyConflict(BazaarError):
    """Optimistic update lost too many races in a row."""

    code = "CONCURRENCY_CONFLICT"


# ══════════════════════════════════════════════════════════════
# ORDERS
# ══════════════════════════════════════════════════════════════

class InvalidTransition(BazaarError):
    code = "INVALID_TRANSITION"

    def __init__(self, workflow: str, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"{workflow}: transition '{from_state}' → '{to_state}' "
            f"is not allowed.",
            details={
                "workflow": workflow,
                "from": from_state,
                "to": to_state,
            },
        )


class CouponInvalid(BazaarError):
    code = "COUPON_INVALID"

    def __init__(self, reason_code: str, message: str, **details):
        self.reason_code = reason_code
        details["reason"] = reason_code
        super().__init__(message, details=details)


class InvalidRate(BazaarError):
    code = "INVALID_RATE"


class NoValidSellers(BazaarError):
    code = "NO_VALID_SELLERS"


# ══════════════════════════════════════════════════════════════
# REFUNDS / REPLACEMENTS
# ══════════════════════════════════════════════════════════════

class AlreadyProcessed(BazaarError):
    code = "ALREADY_PROCESSED"

    def __init__(self, request_id: str, status: str):
        self.status = status
        super().__init__(
            f"Request '{request_id}' was already processed (status: {status}).",
            details={"request_id": request_id, "status": status},
        )


class DuplicateRequest(BazaarError):
    code = "DUPLICATE_REQUEST"

    def __init__(self, order_id: str, product_id: str, existing_id: Optional[str]):
        self.existing_id = existing_id
        super().__init__(
            f"An active request already exists for product '{product_id}' "
            f"in order '{order_id}'.",
            details={
                "order_id": order_id,
                "product_id": product_id,
                "existing_request_id": existing_id,
            },
        )


class NotEligible(BazaarError):
    """Raised when a request is created for an ineligible order line."""

    code = "NOT_ELIGIBLE"

    def __init__(self, reason_code: str, message: str, details: Optional[dict] = None):
        self.reason_code = reason_code
        merged = dict(details or {})
        merged["reason"] = reason_code
        super().__init__(message, details=merged)


class RefundLimitExceeded(BazaarError):
    code = "REFUND_LIMIT_EXCEEDED"

    def __init__(self, order_id: str, requested: int, remaining: int):
        super().__init__(
            f"Refund of {requested} exceeds the refundable balance "
            f"{remaining} for order '{order_id}'.",
            details={
                "order_id": order_id,
                "requested": requested,
                "remaining": remaining,
            },
        )


# ══════════════════════════════════════════════════════════════
# PAYMENT GATEWAY
# ══════════════════════════════════════════════════════════════

class GatewayError(BazaarError):
    """
    Payment gateway failure.

    retryable=True  → transient (connection, timeout, 5xx)
    retryable=False → definitive rejection, never retried
    """

    code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        status_code: Optional[int] = None,
    ):
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(
            message,
            details={"retryable": retryable, "status_code": status_code},
        )
