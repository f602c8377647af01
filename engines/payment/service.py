"""
Bazaar Payment Engine — Payment Service
==========================================
Creates, confirms and cancels the payment intent of an order.

The charged amount always comes from the persisted order, never
from the caller. An order only moves to `paid` when the gateway
reports the intent succeeded for exactly that amount and that
order id.

Guest orders are driven by staff or by a context whose guest_email
matches the order. A payment that succeeds after its order was
cancelled is refunded at confirmation.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from core.commands.base import RequestContext
from core.config import MarketplaceRules
from core.errors import (
    ConcurrencyConflict,
    Forbidden,
    GatewayError,
    InvalidTransition,
    ValidationError,
)
from core.primitives.actor import Actor
from core.resilience import RetryPolicy, call_with_retry
from engines.orders.models import Order, OrderStatus
from engines.orders.status import OrderStatusMachine
from engines.orders.store import OrderStore
from engines.payment.gateway import (
    IntentStatus,
    PaymentGateway,
    PaymentIntent,
    gateway_retry_policy,
)

logger = logging.getLogger("bazaar.payment")

MAX_CAS_ATTEMPTS = 20


class PaymentService:

    def __init__(
        self,
        gateway: PaymentGateway,
        orders: OrderStore,
        status: OrderStatusMachine,
        rules: Optional[MarketplaceRules] = None,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._gateway = gateway
        self._orders = orders
        self._status = status
        self._rules = rules or MarketplaceRules()
        self._retry = retry or gateway_retry_policy(self._rules)
        self._sleep = sleep

    def create_payment_intent(self, ctx: RequestContext, order_id: str) -> PaymentIntent:
        order = self._status.get(order_id)
        self._check_payer(ctx, order)
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise ValidationError(
                f"Order {order_id} is not awaiting payment (status: {order.status}).",
                field="order_id", code="ORDER_NOT_PAYABLE",
            )

        metadata = {"order_id": order.order_id}
        if order.user_id:
            metadata["user_id"] = order.user_id
        intent = self._call(
            "create_payment_intent",
            lambda: self._gateway.create_payment_intent(
                amount=order.amount,
                currency=self._rules.currency,
                metadata=metadata,
                idempotency_key=f"order_{order.order_id}_intent",
                timeout=self._rules.gateway_timeout_seconds,
            ),
        )
        self._store_intent(order_id, intent.id)
        logger.info("Payment intent %s created for order %s", intent.id, order_id)
        return intent

    def confirm_payment(self, ctx: RequestContext, order_id: str) -> Order:
        order = self._status.get(order_id)
        self._check_payer(ctx, order)
        if not order.payment_intent_id:
            raise ValidationError(
                f"Order {order_id} has no payment intent.",
                field="order_id", code="PAYMENT_NOT_STARTED",
            )
        intent = self._call(
            "retrieve_payment_intent",
            lambda: self._gateway.retrieve_payment_intent(
                order.payment_intent_id, timeout=self._rules.gateway_timeout_seconds,
            ),
        )
        if intent.status != IntentStatus.SUCCEEDED:
            raise ValidationError(
                f"Payment for order {order_id} has not completed (status: {intent.status}).",
                field="payment_intent_id", code="PAYMENT_NOT_COMPLETED",
            )
        if intent.amount != order.amount or intent.metadata.get("order_id") != order.order_id:
            logger.error(
                "Payment intent %s does not match order %s (amount %d vs %d)",
                intent.id, order_id, intent.amount, order.amount,
            )
            raise ValidationError(
                "Payment does not match the order.",
                field="payment_intent_id", code="PAYMENT_AMOUNT_MISMATCH",
            )
        try:
            return self._status.transition(
                _system_context(ctx), order_id, OrderStatus.PAID, reason=f"payment {intent.id}",
            )
        except InvalidTransition:
            current = self._status.get(order_id)
            if current.status != OrderStatus.CANCELLED:
                raise
            self._refund_orphaned_capture(current, intent)
            raise ValidationError(
                f"Order {order_id} was cancelled before payment completed; "
                f"the payment has been refunded.",
                field="order_id", code="ORDER_CANCELLED_PAYMENT_REFUNDED",
            )

    def cancel_payment(self, ctx: RequestContext, order_id: str) -> Order:
        order = self._status.get(order_id)
        self._check_payer(ctx, order)
        if not ctx.actor.is_staff and order.status != OrderStatus.PENDING_PAYMENT:
            raise Forbidden("Only orders awaiting payment can be cancelled by the payer.")
        if order.payment_intent_id:
            self._call(
                "cancel_payment_intent",
                lambda: self._gateway.cancel_payment_intent(
                    order.payment_intent_id, timeout=self._rules.gateway_timeout_seconds,
                ),
            )
        return self._status.transition(
            _system_context(ctx), order_id, OrderStatus.CANCELLED, reason="payment cancelled",
        )

    # ── helpers ───────────────────────────────────────────────

    def _check_payer(self, ctx: RequestContext, order: Order) -> None:
        if ctx.actor.is_staff:
            return
        if ctx.actor.is_customer and order.owned_by(ctx.actor_id):
            return
        if order.guest_email and _same_email(ctx.guest_email, order.guest_email):
            return
        raise Forbidden("You can only pay for your own orders.")

    def _call(self, label: str, fn):
        try:
            return call_with_retry(fn, self._retry, sleep=self._sleep, label=label)
        except GatewayError:
            logger.exception("Gateway %s failed", label)
            raise

    def _refund_orphaned_capture(self, order: Order, intent: PaymentIntent) -> None:
        logger.error(
            "Payment %s captured %d for cancelled order %s; refunding",
            intent.id, intent.amount, order.order_id,
        )
        refund = self._call(
            "create_refund",
            lambda: self._gateway.create_refund(
                payment_reference=intent.id,
                amount=intent.amount,
                reason="order_cancelled",
                idempotency_key=f"order_{order.order_id}_cancelled_capture",
                timeout=self._rules.gateway_timeout_seconds,
            ),
        )
        logger.info("Captured payment %s refunded as %s", intent.id, refund.id)

    def _store_intent(self, order_id: str, intent_id: str) -> None:
        for _ in range(MAX_CAS_ATTEMPTS):
            current = self._status.get(order_id)
            if current.payment_intent_id == intent_id:
                return
            if self._orders.compare_and_set(current, current.evolve(payment_intent_id=intent_id)):
                return
        raise ConcurrencyConflict(
            f"Order {order_id} kept changing while recording the payment intent.",
            details={"order_id": order_id, "intent_id": intent_id},
        )


def _same_email(claimed: Optional[str], expected: str) -> bool:
    return bool(claimed) and claimed.strip().lower() == expected.strip().lower()


def _system_context(ctx: RequestContext) -> RequestContext:
    """Payment outcomes are applied by the payment component, not the payer."""
    return RequestContext(
        actor=Actor.system("payment"),
        correlation_id=ctx.correlation_id,
        issued_at=ctx.issued_at,
    )
