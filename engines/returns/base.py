"""
Bazaar Returns Engine — Shared Request Handling
==================================================
What refund and replacement services have in common: filing a
request after an eligibility check, reviewer authorization, and
compare-and-set status moves that turn a lost race into
AlreadyProcessed.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from core.commands.base import RequestContext, require_text
from core.commands.rejection import ReasonCode
from core.config import MarketplaceRules
from core.errors import (
    AlreadyProcessed,
    DuplicateRequest,
    Forbidden,
    NotEligible,
    NotFound,
    ValidationError,
)
from core.events import NotificationDispatcher, NotificationEvent
from core.primitives.workflow import StateTransition, WorkflowDefinition
from core.time import Clock, SystemClock
from engines.returns.eligibility import EligibilityEngine, EligibilityResult
from engines.returns.models import RequestKind
from engines.returns.store import RequestStore

logger = logging.getLogger("bazaar.returns")


class ReturnsService:
    kind: RequestKind
    workflow: WorkflowDefinition
    entity: str
    request_cls: type
    rejected_status: str
    requested_event: str
    decided_event: str

    def __init__(
        self,
        eligibility: EligibilityEngine,
        requests: RequestStore,
        notifier: Optional[NotificationDispatcher] = None,
        rules: Optional[MarketplaceRules] = None,
        clock: Optional[Clock] = None,
    ):
        self._eligibility = eligibility
        self._requests = requests
        self._notifier = notifier or NotificationDispatcher()
        self._rules = rules or MarketplaceRules()
        self._clock = clock or SystemClock()

    # ── queries ───────────────────────────────────────────────

    def check_eligibility(
        self,
        ctx: RequestContext,
        order_id: str,
        product_id: str,
        variant_id: Optional[str] = None,
    ) -> EligibilityResult:
        customer_id = ctx.actor_id if ctx.actor.is_customer else None
        return self._eligibility.check(
            self.kind, order_id, product_id,
            customer_id=customer_id, variant_id=variant_id,
        )

    def get(self, request_id: str):
        request = self._requests.get(request_id)
        if request is None:
            raise NotFound(self.entity, request_id)
        return request

    def list_for_order(self, order_id: str) -> List:
        return self._requests.list_for_order(order_id)

    # ── filing ────────────────────────────────────────────────

    def _file(self, ctx: RequestContext, command):
        if not ctx.actor.is_customer:
            raise Forbidden(f"Only customers can file {self.kind} requests.")
        if len(command.evidence_urls) > self._rules.max_evidence_urls:
            raise ValidationError(
                f"At most {self._rules.max_evidence_urls} evidence URLs are allowed.",
                field="evidence_urls",
            )

        result = self._eligibility.check(
            self.kind,
            command.order_id,
            command.product_id,
            customer_id=ctx.actor_id,
            variant_id=command.variant_id,
        )
        if not result.eligible:
            reason = result.reason
            if reason.code == ReasonCode.DUPLICATE_REQUEST:
                raise DuplicateRequest(
                    command.order_id,
                    command.product_id,
                    reason.details.get("existing_request_id"),
                )
            raise NotEligible(reason.code, reason.message, reason.details)

        now = self._clock.now_utc()
        request = self.request_cls(
            request_id=str(uuid.uuid4()),
            order_id=command.order_id,
            product_id=command.product_id,
            variant_id=result.line.variant_id,
            customer_id=ctx.actor_id,
            seller_id=result.line.seller_id,
            quantity=result.line.quantity,
            reason=command.reason,
            description=command.description,
            evidence_urls=command.evidence_urls,
            created_at=now,
            updated_at=now,
            **self._extra_fields(result),
        )
        self._requests.add(request)

        logger.info(
            "%s request %s filed for order %s product %s",
            self.kind, request.request_id, request.order_id, request.product_id,
        )
        self._emit(self.requested_event, ctx, request, None)
        return request

    def _extra_fields(self, result: EligibilityResult) -> dict:
        return {}

    # ── review ────────────────────────────────────────────────

    def _authorize_review(self, ctx: RequestContext, request) -> None:
        if ctx.actor.is_staff:
            return
        if ctx.actor.is_seller and request.seller_id == ctx.actor_id:
            return
        raise Forbidden(f"You cannot review this {self.kind} request.")

    def _pending(self, ctx: RequestContext, request_id: str):
        request = self.get(request_id)
        self._authorize_review(ctx, request)
        if request.status != self.workflow.initial_state:
            raise AlreadyProcessed(request_id, str(request.status))
        return request

    def _advance(self, ctx: RequestContext, request, new_status, reason: str = "", **changes):
        """CAS the request to new_status; a lost race is AlreadyProcessed."""
        self.workflow.require_transition(request.status, new_status)
        now = self._clock.now_utc()
        updated = request.evolve(
            status=new_status,
            updated_at=now,
            history=request.history + (StateTransition(
                from_state=str(request.status),
                to_state=str(new_status),
                actor=ctx.actor,
                transitioned_at=now,
                reason=reason,
            ),),
            **changes,
        )
        if not self._requests.compare_and_set(request, updated):
            latest = self._requests.get(request.request_id)
            raise AlreadyProcessed(
                request.request_id, str(latest.status if latest else request.status),
            )
        return updated

    def _reject(self, ctx: RequestContext, request_id: str, reason: str):
        require_text(reason, "reason", max_length=1000)
        request = self._pending(ctx, request_id)
        rejected = self._advance(
            ctx, request, self.rejected_status, reason=reason,
            rejection_reason=reason,
            reviewed_by=ctx.actor_id,
            reviewed_at=self._clock.now_utc(),
        )
        logger.info("%s request %s rejected by %s", self.kind, request_id, ctx.actor_id)
        self._emit(self.decided_event, ctx, rejected, request.status)
        return rejected

    def _emit(self, event_type: str, ctx: RequestContext, request, old_status) -> None:
        self._notifier.emit(NotificationEvent(
            event_type=event_type,
            subject_id=request.request_id,
            actor_id=ctx.actor_id,
            occurred_at=request.updated_at,
            old_status=str(old_status) if old_status is not None else None,
            new_status=str(request.status),
            payload={
                "order_id": request.order_id,
                "product_id": request.product_id,
                "customer_id": request.customer_id,
                "seller_id": request.seller_id,
            },
        ))
