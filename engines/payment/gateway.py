"""
Bazaar Payment Engine — Gateway Boundary
===========================================
The order core talks to the card processor through this protocol
only. Implementations translate their transport failures into
GatewayError(retryable=...):

    retryable=True   connection reset, timeout, HTTP 5xx, rate limit
    retryable=False  invalid reference, card declined, HTTP 4xx

Every call carries a bounded timeout. Mutating calls carry an
idempotency key so a retried call never charges or refunds twice.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from core.config import MarketplaceRules
from core.errors import GatewayError
from core.resilience import RetryPolicy


class IntentStatus:
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    status: str
    amount: int
    currency: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayRefund:
    id: str
    status: str
    amount: int = 0


class PaymentGateway(Protocol):

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: str,
        timeout: float,
    ) -> PaymentIntent:
        ...  # pragma: no cover

    def retrieve_payment_intent(self, intent_id: str, timeout: float) -> PaymentIntent:
        ...  # pragma: no cover

    def cancel_payment_intent(self, intent_id: str, timeout: float) -> PaymentIntent:
        ...  # pragma: no cover

    def create_refund(
        self,
        payment_reference: str,
        amount: int,
        reason: str,
        idempotency_key: str,
        timeout: float,
    ) -> GatewayRefund:
        ...  # pragma: no cover


def gateway_retry_policy(rules: MarketplaceRules) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=rules.gateway_max_attempts,
        backoff_initial=rules.gateway_backoff_initial,
        backoff_factor=rules.gateway_backoff_factor,
        backoff_max=rules.gateway_backoff_max,
    )


# ══════════════════════════════════════════════════════════════
# IN-PROCESS GATEWAY (tests, local wiring)
# ══════════════════════════════════════════════════════════════

class FakeGateway:
    """
    Deterministic in-process gateway.

    Honors idempotency keys the way a real processor does: a repeated
    key returns the first result instead of creating a second object.
    Failures are scripted with fail_next(); each queued error is
    raised by the next call to the named operation.
    """

    def __init__(self) -> None:
        self.intents: Dict[str, PaymentIntent] = {}
        self.refunds: Dict[str, GatewayRefund] = {}
        self.calls: List[str] = []
        self._idempotent: Dict[str, object] = {}
        self._failures: Dict[str, List[BaseException]] = {}
        self._lock = threading.Lock()

    def fail_next(self, operation: str, *errors: BaseException) -> None:
        with self._lock:
            self._failures.setdefault(operation, []).extend(errors)

    def succeed(self, intent_id: str, amount: Optional[int] = None) -> PaymentIntent:
        """Simulate the customer completing payment."""
        with self._lock:
            intent = self.intents[intent_id]
            updated = PaymentIntent(
                id=intent.id,
                client_secret=intent.client_secret,
                status=IntentStatus.SUCCEEDED,
                amount=intent.amount if amount is None else amount,
                currency=intent.currency,
                metadata=dict(intent.metadata),
            )
            self.intents[intent_id] = updated
            return updated

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    def create_payment_intent(self, amount, currency, metadata, idempotency_key, timeout):
        with self._lock:
            self._enter("create_payment_intent")
            if idempotency_key in self._idempotent:
                return self._idempotent[idempotency_key]
            intent_id = f"pi_{uuid.uuid4().hex[:16]}"
            intent = PaymentIntent(
                id=intent_id,
                client_secret=f"{intent_id}_secret",
                status=IntentStatus.REQUIRES_PAYMENT_METHOD,
                amount=amount,
                currency=currency,
                metadata=dict(metadata),
            )
            self.intents[intent_id] = intent
            self._idempotent[idempotency_key] = intent
            return intent

    def retrieve_payment_intent(self, intent_id, timeout):
        with self._lock:
            self._enter("retrieve_payment_intent")
            intent = self.intents.get(intent_id)
            if intent is None:
                raise GatewayError(
                    f"No such payment intent: {intent_id}", retryable=False, status_code=404,
                )
            return intent

    def cancel_payment_intent(self, intent_id, timeout):
        with self._lock:
            self._enter("cancel_payment_intent")
            intent = self.intents.get(intent_id)
            if intent is None:
                raise GatewayError(
                    f"No such payment intent: {intent_id}", retryable=False, status_code=404,
                )
            cancelled = PaymentIntent(
                id=intent.id,
                client_secret=intent.client_secret,
                status=IntentStatus.CANCELED,
                amount=intent.amount,
                currency=intent.currency,
                metadata=dict(intent.metadata),
            )
            self.intents[intent_id] = cancelled
            return cancelled

    def create_refund(self, payment_reference, amount, reason, idempotency_key, timeout):
        with self._lock:
            self._enter("create_refund")
            if idempotency_key in self._idempotent:
                return self._idempotent[idempotency_key]
            if payment_reference not in self.intents:
                raise GatewayError(
                    f"No such payment: {payment_reference}", retryable=False, status_code=400,
                )
            refund = GatewayRefund(
                id=f"re_{uuid.uuid4().hex[:16]}", status="succeeded", amount=amount,
            )
            self.refunds[refund.id] = refund
            self._idempotent[idempotency_key] = refund
            return refund
