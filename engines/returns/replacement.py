"""
Bazaar Returns Engine — Replacements
=======================================
approve:      reserve replacement stock, pending → approved, link
              the request to the order
mark_shipped: fulfill the reservation, approved → shipped
complete:     shipped → completed
reject:       pending → rejected, reason mandatory
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from core.commands.base import RequestContext, require_text
from core.config import MarketplaceRules
from core.events import (
    REPLACEMENT_DECIDED,
    REPLACEMENT_REQUESTED,
    REPLACEMENT_SHIPPED,
    NotificationDispatcher,
)
from core.resilience import CompensationStack
from core.time import Clock
from engines.inventory import InventoryKey, InventoryLedger
from engines.orders.status import OrderStatusMachine
from engines.returns.base import ReturnsService
from engines.returns.commands import CreateReplacementRequest
from engines.returns.eligibility import EligibilityEngine
from engines.returns.models import (
    REPLACEMENT_WORKFLOW,
    ReplacementRequest,
    ReplacementStatus,
    RequestKind,
)
from engines.returns.store import RequestStore

logger = logging.getLogger("bazaar.returns")


class ReplacementService(ReturnsService):
    kind = RequestKind.REPLACEMENT
    workflow = REPLACEMENT_WORKFLOW
    entity = "ReplacementRequest"
    request_cls = ReplacementRequest
    rejected_status = ReplacementStatus.REJECTED
    requested_event = REPLACEMENT_REQUESTED
    decided_event = REPLACEMENT_DECIDED

    def __init__(
        self,
        eligibility: EligibilityEngine,
        requests: RequestStore,
        status: OrderStatusMachine,
        ledger: InventoryLedger,
        notifier: Optional[NotificationDispatcher] = None,
        rules: Optional[MarketplaceRules] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(eligibility, requests, notifier=notifier, rules=rules, clock=clock)
        self._status = status
        self._ledger = ledger

    def create_request(
        self, ctx: RequestContext, command: CreateReplacementRequest,
    ) -> ReplacementRequest:
        return self._file(ctx, command)

    def reject(self, ctx: RequestContext, request_id: str, reason: str) -> ReplacementRequest:
        return self._reject(ctx, request_id, reason)

    def approve(self, ctx: RequestContext, request_id: str) -> ReplacementRequest:
        request = self._pending(ctx, request_id)
        key = _key(request)

        with CompensationStack(f"approve_replacement:{request_id}") as comp:
            self._ledger.reserve(key, request.quantity, reference=request_id)
            comp.push(
                f"release {key}",
                lambda: self._ledger.release(key, request.quantity, reference=request_id),
            )
            approved = self._advance(
                ctx, request, ReplacementStatus.APPROVED,
                reviewed_by=ctx.actor_id,
                reviewed_at=self._clock.now_utc(),
            )
            comp.push(
                f"revert {request_id} to pending",
                lambda: self._requests.compare_and_set(
                    approved, replace(request, version=approved.version + 1),
                ),
            )
            self._status.link_replacement(request.order_id, request_id)
            comp.commit()

        logger.info(
            "Replacement %s approved by %s; %d of %s reserved",
            request_id, ctx.actor_id, request.quantity, key,
        )
        self._emit(REPLACEMENT_DECIDED, ctx, approved, request.status)
        return approved

    def mark_shipped(
        self, ctx: RequestContext, request_id: str, tracking_number: str,
    ) -> ReplacementRequest:
        require_text(tracking_number, "tracking_number", max_length=100)
        request = self.get(request_id)
        self._authorize_review(ctx, request)
        self.workflow.require_transition(request.status, ReplacementStatus.SHIPPED)
        key = _key(request)

        with CompensationStack(f"ship_replacement:{request_id}") as comp:
            self._ledger.fulfill(key, request.quantity, reference=request_id)
            comp.push(
                f"unfulfill {key}",
                lambda: self._unfulfill(key, request.quantity, request_id),
            )
            shipped = self._advance(
                ctx, request, ReplacementStatus.SHIPPED,
                tracking_number=tracking_number,
                shipped_at=self._clock.now_utc(),
            )
            comp.commit()

        logger.info("Replacement %s shipped (%s)", request_id, tracking_number)
        self._emit(REPLACEMENT_SHIPPED, ctx, shipped, request.status)
        return shipped

    def complete(self, ctx: RequestContext, request_id: str) -> ReplacementRequest:
        request = self.get(request_id)
        self._authorize_review(ctx, request)
        completed = self._advance(
            ctx, request, ReplacementStatus.COMPLETED,
            completed_at=self._clock.now_utc(),
        )
        logger.info("Replacement %s completed", request_id)
        self._emit(REPLACEMENT_DECIDED, ctx, completed, request.status)
        return completed

    def _unfulfill(self, key: InventoryKey, qty: int, reference: str) -> None:
        self._ledger.restore(key, qty, reason="replacement rollback", reference=reference)
        self._ledger.reserve(key, qty, reference=reference)


def _key(request: ReplacementRequest) -> InventoryKey:
    return InventoryKey.for_line(request.product_id, request.variant_id)
