"""
Bazaar Orders Engine — Status State Machine
==============================================
Order, sub-order fulfillment and payout lifecycles as transition
tables, plus the privileged refund bookkeeping used by settlement.

Transition flow:
1. Load the order, check the caller may drive this transition
2. Validate the edge against ORDER_WORKFLOW
3. Claim the new status with compare_and_set (a concurrent writer
   forces a re-read and re-validation)
4. Run inventory side effects; on failure undo them and put the
   previous snapshot back
5. Emit the status notification

Side effects:
    → paid                          fulfill every line
    pending_payment → cancelled     release every line, cascade to
                                    open sub-orders
    → shipped / delivered           stamp fulfilled_at / fulfilled_by
                                    (delivered also stamps delivered_at)

refunded / partially_refunded are reachable only through
settle_refund(), never through transition().
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import replace
from typing import Callable, ContextManager, List, Optional

from core.commands.base import RequestContext, require_positive_int
from core.errors import (
    ConcurrencyConflict,
    Forbidden,
    NotFound,
    RefundLimitExceeded,
)
from core.events import (
    ORDER_STATUS_CHANGED,
    SUB_ORDER_STATUS_CHANGED,
    NotificationDispatcher,
    NotificationEvent,
)
from core.primitives.actor import Actor
from core.primitives.workflow import StateTransition, build_workflow
from core.resilience import CompensationStack
from core.time import Clock, SystemClock
from engines.inventory import InventoryLedger
from engines.orders.models import (
    FulfillmentStatus,
    Order,
    OrderStatus,
    PayoutStatus,
    SubOrder,
)
from engines.orders.store import OrderStore, SubOrderStore

logger = logging.getLogger("bazaar.status")


# ══════════════════════════════════════════════════════════════
# TRANSITION TABLES
# ══════════════════════════════════════════════════════════════

ORDER_WORKFLOW = build_workflow(
    "order",
    OrderStatus.PENDING_PAYMENT,
    {
        OrderStatus.PENDING_PAYMENT: (OrderStatus.PAID, OrderStatus.CANCELLED),
        OrderStatus.PAID: (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
        OrderStatus.CONFIRMED: (OrderStatus.PACKED, OrderStatus.CANCELLED),
        OrderStatus.PACKED: (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
        OrderStatus.SHIPPED: (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
        OrderStatus.DELIVERED: (),
        OrderStatus.CANCELLED: (),
    },
    extra_terminal=(OrderStatus.REFUNDED, OrderStatus.PARTIALLY_REFUNDED),
)

SUB_ORDER_WORKFLOW = build_workflow(
    "sub_order",
    FulfillmentStatus.PENDING,
    {
        FulfillmentStatus.PENDING: (FulfillmentStatus.PROCESSING, FulfillmentStatus.CANCELLED),
        FulfillmentStatus.PROCESSING: (FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED),
        FulfillmentStatus.SHIPPED: (FulfillmentStatus.DELIVERED, FulfillmentStatus.CANCELLED),
        FulfillmentStatus.DELIVERED: (),
        FulfillmentStatus.CANCELLED: (),
    },
)

PAYOUT_WORKFLOW = build_workflow(
    "payout",
    PayoutStatus.PENDING,
    {
        PayoutStatus.PENDING: (PayoutStatus.READY,),
        PayoutStatus.READY: (PayoutStatus.PROCESSING,),
        PayoutStatus.PROCESSING: (PayoutStatus.COMPLETED,),
        PayoutStatus.COMPLETED: (),
    },
)

SELLER_ORDER_TARGETS = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.PACKED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
})

MAX_CAS_ATTEMPTS = 20


# ══════════════════════════════════════════════════════════════
# STATE MACHINE
# ══════════════════════════════════════════════════════════════

class OrderStatusMachine:

    def __init__(
        self,
        orders: OrderStore,
        sub_orders: SubOrderStore,
        ledger: InventoryLedger,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        atomic: Callable[[], ContextManager] = nullcontext,
    ):
        self._orders = orders
        self._sub_orders = sub_orders
        self._ledger = ledger
        self._notifier = notifier or NotificationDispatcher()
        self._clock = clock or SystemClock()
        self._atomic = atomic

    def get(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    # ── order status ──────────────────────────────────────────

    def transition(
        self,
        ctx: RequestContext,
        order_id: str,
        new_status: OrderStatus,
        reason: str = "",
    ) -> Order:
        new_status = OrderStatus(new_status)
        for _ in range(MAX_CAS_ATTEMPTS):
            current = self.get(order_id)
            self._authorize(ctx.actor, current, new_status)
            ORDER_WORKFLOW.require_transition(current.status, new_status)
            claimed = self._claim(current, new_status, ctx.actor, reason)
            if self._orders.compare_and_set(current, claimed):
                break
            logger.debug("Order %s changed during transition; re-reading", order_id)
        else:
            raise ConcurrencyConflict(
                f"Order {order_id} kept changing; try again.",
                details={"order_id": order_id},
            )

        try:
            self._apply_side_effects(current, claimed)
        except BaseException:
            self._restore(claimed, current)
            raise

        logger.info(
            "Order %s: %s → %s by %s",
            order_id, current.status, new_status, ctx.actor_id,
        )
        self._notifier.emit(NotificationEvent(
            event_type=ORDER_STATUS_CHANGED,
            subject_id=order_id,
            actor_id=ctx.actor_id,
            occurred_at=claimed.updated_at,
            old_status=str(current.status),
            new_status=str(new_status),
            payload={"reason": reason},
        ))
        return claimed

    def _authorize(self, actor: Actor, order: Order, new_status: OrderStatus) -> None:
        if actor.is_staff:
            return
        if actor.is_customer:
            if not order.owned_by(actor.actor_id):
                raise Forbidden("You can only change your own orders.")
            if new_status != OrderStatus.CANCELLED or order.status != OrderStatus.PENDING_PAYMENT:
                raise Forbidden("Customers may only cancel orders awaiting payment.")
            return
        if actor.is_seller:
            if order.seller_id != actor.actor_id:
                raise Forbidden(
                    "Sellers drive multi-seller orders through their sub-orders."
                )
            if new_status not in SELLER_ORDER_TARGETS:
                raise Forbidden(f"Sellers cannot move an order to {new_status}.")
            return
        raise Forbidden("Caller cannot change order status.")

    def _claim(
        self, order: Order, new_status: OrderStatus, actor: Actor, reason: str,
    ) -> Order:
        now = self._clock.now_utc()
        changes = {
            "status": new_status,
            "updated_at": now,
            "history": order.history + (StateTransition(
                from_state=str(order.status),
                to_state=str(new_status),
                actor=actor,
                transitioned_at=now,
                reason=reason,
            ),),
        }
        if new_status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            changes["fulfilled_at"] = now
            changes["fulfilled_by"] = actor.actor_id
        if new_status == OrderStatus.DELIVERED:
            changes["delivered_at"] = now
        return order.evolve(**changes)

    def _apply_side_effects(self, previous: Order, claimed: Order) -> None:
        with CompensationStack(f"transition:{claimed.order_id}") as comp:
            with self._atomic():
                if claimed.status == OrderStatus.PAID:
                    self._fulfill_lines(claimed, comp)
                elif claimed.status == OrderStatus.CANCELLED:
                    if previous.status == OrderStatus.PENDING_PAYMENT:
                        self._release_lines(claimed, comp)
                    self._cascade_cancel(claimed, comp)
            comp.commit()

    def _fulfill_lines(self, order: Order, comp: CompensationStack) -> None:
        for line in order.basket:
            key, qty = line.inventory_key, line.quantity
            self._ledger.fulfill(key, qty, reference=order.order_id)
            comp.push(
                f"unfulfill {key}",
                lambda key=key, qty=qty: self._unfulfill(key, qty, order.order_id),
            )

    def _unfulfill(self, key, qty: int, reference: str) -> None:
        self._ledger.restore(key, qty, reason="payment rollback", reference=reference)
        self._ledger.reserve(key, qty, reference=reference)

    def _release_lines(self, order: Order, comp: CompensationStack) -> None:
        for line in order.basket:
            key, qty = line.inventory_key, line.quantity
            self._ledger.release(key, qty, reference=order.order_id)
            comp.push(
                f"re-reserve {key}",
                lambda key=key, qty=qty: self._ledger.reserve(
                    key, qty, reference=order.order_id,
                ),
            )

    def _cascade_cancel(self, order: Order, comp: CompensationStack) -> None:
        now = self._clock.now_utc()
        actor = Actor.system("orders")
        for sub in self._sub_orders.list_for_order(order.order_id):
            if SUB_ORDER_WORKFLOW.is_terminal(sub.fulfillment_status):
                continue
            cancelled = sub.evolve(
                fulfillment_status=FulfillmentStatus.CANCELLED,
                updated_at=now,
                history=sub.history + (StateTransition(
                    from_state=str(sub.fulfillment_status),
                    to_state=str(FulfillmentStatus.CANCELLED),
                    actor=actor,
                    transitioned_at=now,
                    reason="parent order cancelled",
                ),),
            )
            if not self._sub_orders.compare_and_set(sub, cancelled):
                raise ConcurrencyConflict(
                    f"Sub-order {sub.sub_order_id} changed during cancellation.",
                    details={"sub_order_id": sub.sub_order_id},
                )
            comp.push(
                f"restore sub-order {sub.sub_order_id}",
                lambda sub=sub, cancelled=cancelled: self._sub_orders.compare_and_set(
                    cancelled, replace(sub, version=cancelled.version + 1),
                ),
            )

    def _restore(self, claimed: Order, previous: Order) -> None:
        rollback = replace(previous, version=claimed.version + 1)
        if self._orders.compare_and_set(claimed, rollback):
            logger.warning(
                "Order %s: side effects failed, status restored to %s",
                previous.order_id, previous.status,
            )
        else:
            logger.error(
                "Order %s: side effects failed and the status could not be restored",
                previous.order_id,
            )

    # ── sub-order lifecycle ───────────────────────────────────

    def get_sub_order(self, sub_order_id: str) -> SubOrder:
        sub = self._sub_orders.get(sub_order_id)
        if sub is None:
            raise NotFound("SubOrder", sub_order_id)
        return sub

    def sub_orders_for(self, order_id: str) -> List[SubOrder]:
        return self._sub_orders.list_for_order(order_id)

    def transition_sub_order(
        self,
        ctx: RequestContext,
        sub_order_id: str,
        new_status: FulfillmentStatus,
        reason: str = "",
    ) -> SubOrder:
        new_status = FulfillmentStatus(new_status)
        for _ in range(MAX_CAS_ATTEMPTS):
            current = self.get_sub_order(sub_order_id)
            self._authorize_sub_order(ctx.actor, current)
            SUB_ORDER_WORKFLOW.require_transition(current.fulfillment_status, new_status)
            now = self._clock.now_utc()
            changes = {
                "fulfillment_status": new_status,
                "updated_at": now,
                "history": current.history + (StateTransition(
                    from_state=str(current.fulfillment_status),
                    to_state=str(new_status),
                    actor=ctx.actor,
                    transitioned_at=now,
                    reason=reason,
                ),),
            }
            if new_status in (FulfillmentStatus.SHIPPED, FulfillmentStatus.DELIVERED):
                changes["fulfilled_at"] = now
            updated = current.evolve(**changes)
            if self._sub_orders.compare_and_set(current, updated):
                break
        else:
            raise ConcurrencyConflict(
                f"Sub-order {sub_order_id} kept changing; try again.",
                details={"sub_order_id": sub_order_id},
            )

        logger.info(
            "Sub-order %s (order %s): %s → %s",
            sub_order_id, current.parent_order_id, current.fulfillment_status, new_status,
        )
        self._notifier.emit(NotificationEvent(
            event_type=SUB_ORDER_STATUS_CHANGED,
            subject_id=sub_order_id,
            actor_id=ctx.actor_id,
            occurred_at=updated.updated_at,
            old_status=str(current.fulfillment_status),
            new_status=str(new_status),
            payload={"order_id": current.parent_order_id, "seller_id": current.seller_id},
        ))
        return updated

    def update_payout_status(
        self, ctx: RequestContext, sub_order_id: str, new_status: PayoutStatus,
    ) -> SubOrder:
        if not ctx.actor.is_staff:
            raise Forbidden("Only staff can change payout status.")
        new_status = PayoutStatus(new_status)
        for _ in range(MAX_CAS_ATTEMPTS):
            current = self.get_sub_order(sub_order_id)
            PAYOUT_WORKFLOW.require_transition(current.payout_status, new_status)
            updated = current.evolve(
                payout_status=new_status, updated_at=self._clock.now_utc(),
            )
            if self._sub_orders.compare_and_set(current, updated):
                return updated
        raise ConcurrencyConflict(
            f"Sub-order {sub_order_id} kept changing; try again.",
            details={"sub_order_id": sub_order_id},
        )

    def _authorize_sub_order(self, actor: Actor, sub: SubOrder) -> None:
        if actor.is_staff:
            return
        if actor.is_seller and sub.seller_id == actor.actor_id:
            return
        raise Forbidden("Only the owning seller or staff can update this sub-order.")

    # ── refund bookkeeping (settlement only) ──────────────────

    def reserve_refund(self, order_id: str, amount: int) -> Order:
        """Hold `amount` against the refundable balance before any gateway call."""
        require_positive_int(amount, "amount")

        def step(order: Order) -> Order:
            if amount > order.refundable_balance:
                raise RefundLimitExceeded(order_id, amount, order.refundable_balance)
            return order.evolve(
                refund_pending_amount=order.refund_pending_amount + amount,
                updated_at=self._clock.now_utc(),
            )

        return self._update(order_id, step)

    def release_refund(self, order_id: str, amount: int) -> Order:
        """Give a held amount back after the gateway refused the refund."""

        def step(order: Order) -> Order:
            return order.evolve(
                refund_pending_amount=max(0, order.refund_pending_amount - amount),
                updated_at=self._clock.now_utc(),
            )

        return self._update(order_id, step)

    def settle_refund(self, ctx: RequestContext, order_id: str, amount: int) -> Order:
        """
        Move a held amount to refunded and derive the order status:
        refunded once cumulative refunds reach the order amount,
        partially_refunded before that.
        """
        before: List[Order] = []

        def step(order: Order) -> Order:
            before[:] = [order]
            held = min(amount, order.refund_pending_amount)
            refunded = order.refunded_amount + amount
            status = (
                OrderStatus.REFUNDED if refunded >= order.amount
                else OrderStatus.PARTIALLY_REFUNDED
            )
            now = self._clock.now_utc()
            history = order.history
            if status != order.status:
                history = history + (StateTransition(
                    from_state=str(order.status),
                    to_state=str(status),
                    actor=ctx.actor,
                    transitioned_at=now,
                    reason=f"refund of {amount} settled",
                ),)
            return order.evolve(
                refunded_amount=refunded,
                refund_pending_amount=order.refund_pending_amount - held,
                status=status,
                updated_at=now,
                history=history,
            )

        updated = self._update(order_id, step)
        previous = before[0]
        if previous.status != updated.status:
            logger.info(
                "Order %s: %s → %s after refund settlement",
                order_id, previous.status, updated.status,
            )
            self._notifier.emit(NotificationEvent(
                event_type=ORDER_STATUS_CHANGED,
                subject_id=order_id,
                actor_id=ctx.actor_id,
                occurred_at=updated.updated_at,
                old_status=str(previous.status),
                new_status=str(updated.status),
                payload={"refunded_amount": updated.refunded_amount},
            ))
        return updated

    def link_replacement(self, order_id: str, request_id: str) -> Order:
        def step(order: Order) -> Order:
            if request_id in order.replacement_request_ids:
                return order
            return order.evolve(
                replacement_request_ids=order.replacement_request_ids + (request_id,),
                updated_at=self._clock.now_utc(),
            )

        return self._update(order_id, step)

    def unlink_replacement(self, order_id: str, request_id: str) -> Order:
        def step(order: Order) -> Order:
            if request_id not in order.replacement_request_ids:
                return order
            return order.evolve(
                replacement_request_ids=tuple(
                    r for r in order.replacement_request_ids if r != request_id
                ),
                updated_at=self._clock.now_utc(),
            )

        return self._update(order_id, step)

    def _update(self, order_id: str, step: Callable[[Order], Order]) -> Order:
        for _ in range(MAX_CAS_ATTEMPTS):
            current = self.get(order_id)
            updated = step(current)
            if updated is current:
                return current
            if self._orders.compare_and_set(current, updated):
                return updated
        raise ConcurrencyConflict(
            f"Order {order_id} kept changing; try again.",
            details={"order_id": order_id},
        )
