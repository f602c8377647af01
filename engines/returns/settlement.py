"""
Bazaar Returns Engine — Refund Settlement
============================================
Files refund requests and settles approved ones through the
payment gateway.

approve():
1. request must be pending (else AlreadyProcessed)
2. hold the amount against the order's refundable balance;
   RefundLimitExceeded here means the gateway is never called
3. pending → processing (a concurrent approval loses the CAS)
4. gateway refund with idempotency key refund_<request_id>,
   retried only on transient errors, bounded attempts and timeout
5a. any failure of the gateway call, including an interrupt:
    processing → failed, hold released, re-raise
5b. success: processing → completed, order refund settled
    (refunded / partially_refunded), seller earnings debited,
    stock restored when configured, decision emitted
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from core.commands.base import RequestContext
from core.config import MarketplaceRules
from core.errors import GatewayError, RefundLimitExceeded, ValidationError
from core.events import REFUND_DECIDED, REFUND_REQUESTED, NotificationDispatcher
from core.resilience import RetryPolicy, call_with_retry
from core.time import Clock
from engines.inventory import InventoryKey, InventoryLedger
from engines.orders.escrow import EscrowLedger
from engines.orders.status import OrderStatusMachine
from engines.payment.gateway import PaymentGateway, gateway_retry_policy
from engines.returns.base import ReturnsService
from engines.returns.commands import CreateRefundRequest
from engines.returns.eligibility import EligibilityEngine, EligibilityResult
from engines.returns.models import (
    REFUND_WORKFLOW,
    RefundRequest,
    RefundStatus,
    RequestKind,
)
from engines.returns.store import RequestStore

logger = logging.getLogger("bazaar.settlement")


class RefundService(ReturnsService):
    kind = RequestKind.REFUND
    workflow = REFUND_WORKFLOW
    entity = "RefundRequest"
    request_cls = RefundRequest
    rejected_status = RefundStatus.REJECTED
    requested_event = REFUND_REQUESTED
    decided_event = REFUND_DECIDED

    def __init__(
        self,
        eligibility: EligibilityEngine,
        requests: RequestStore,
        status: OrderStatusMachine,
        escrow: EscrowLedger,
        ledger: InventoryLedger,
        gateway: PaymentGateway,
        notifier: Optional[NotificationDispatcher] = None,
        rules: Optional[MarketplaceRules] = None,
        clock: Optional[Clock] = None,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(eligibility, requests, notifier=notifier, rules=rules, clock=clock)
        self._status = status
        self._escrow = escrow
        self._ledger = ledger
        self._gateway = gateway
        self._retry = retry or gateway_retry_policy(self._rules)
        self._sleep = sleep

    def create_request(self, ctx: RequestContext, command: CreateRefundRequest) -> RefundRequest:
        return self._file(ctx, command)

    def _extra_fields(self, result: EligibilityResult) -> dict:
        balance = result.order.refundable_balance
        if balance <= 0:
            raise RefundLimitExceeded(result.order.order_id, result.refund_amount, balance)
        amount = result.refund_amount
        if amount > balance:
            logger.info(
                "Refund for order %s capped at the refundable balance (%d of %d)",
                result.order.order_id, balance, amount,
            )
            amount = balance
        return {"refund_amount": amount}

    def reject(self, ctx: RequestContext, request_id: str, reason: str) -> RefundRequest:
        return self._reject(ctx, request_id, reason)

    def approve(self, ctx: RequestContext, request_id: str) -> RefundRequest:
        request = self._pending(ctx, request_id)
        order = self._status.get(request.order_id)
        if not order.payment_intent_id:
            raise ValidationError(
                f"Order {order.order_id} has no payment to refund.",
                field="order_id", code="PAYMENT_REFERENCE_MISSING",
            )

        amount = request.refund_amount
        self._status.reserve_refund(order.order_id, amount)
        try:
            processing = self._advance(
                ctx, request, RefundStatus.PROCESSING,
                reviewed_by=ctx.actor_id,
                reviewed_at=self._clock.now_utc(),
            )
        except BaseException:
            self._status.release_refund(order.order_id, amount)
            raise

        try:
            refund = call_with_retry(
                lambda: self._gateway.create_refund(
                    payment_reference=order.payment_intent_id,
                    amount=amount,
                    reason=request.reason.value,
                    idempotency_key=f"refund_{request_id}",
                    timeout=self._rules.gateway_timeout_seconds,
                ),
                self._retry,
                sleep=self._sleep,
                label=f"refund {request_id}",
            )
        except BaseException as exc:
            failure = _failure_reason(exc)
            try:
                failed = self._advance(
                    ctx, processing, RefundStatus.FAILED, reason=failure,
                    failure_reason=failure,
                    processed_at=self._clock.now_utc(),
                )
            finally:
                self._status.release_refund(order.order_id, amount)
            logger.error("Refund %s failed at the gateway: %s", request_id, failure)
            self._emit(REFUND_DECIDED, ctx, failed, processing.status)
            raise

        completed = self._advance(
            ctx, processing, RefundStatus.COMPLETED,
            gateway_refund_id=refund.id,
            processed_at=self._clock.now_utc(),
        )
        self._status.settle_refund(ctx, order.order_id, amount)
        if request.seller_id:
            self._escrow.debit_refund(request.seller_id, order.order_id, amount)
        if self._rules.restock_on_refund:
            self._restock(completed)

        logger.info(
            "Refund %s completed: %d on order %s (gateway %s)",
            request_id, amount, order.order_id, refund.id,
        )
        self._emit(REFUND_DECIDED, ctx, completed, processing.status)
        return completed

    def _restock(self, request: RefundRequest) -> None:
        key = InventoryKey.for_line(request.product_id, request.variant_id)
        try:
            self._ledger.restore(
                key, request.quantity, reason="refund", reference=request.request_id,
            )
        except Exception:
            logger.exception(
                "Refund %s settled but restocking %s failed", request.request_id, key,
            )


def _failure_reason(exc: BaseException) -> str:
    if isinstance(exc, GatewayError):
        return exc.message
    return str(exc) or type(exc).__name__
