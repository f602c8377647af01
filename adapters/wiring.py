"""
Bazaar Adapter Wiring
=======================
Assembles the engines over a chosen set of stores.

build_components() takes every store explicitly and is shared by
the in-memory and Django wirings; only the stores and the atomic
factory differ between them.
"""

from __future__ import annotations

import time
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Callable, ContextManager, Optional

from core.config import MarketplaceRules
from core.events import NotificationDispatcher
from core.time import Clock, SystemClock
from engines.commission import (
    CommissionCalculator,
    CommissionRateBook,
    CommissionRateStore,
    InMemoryCommissionRateStore,
)
from engines.inventory import InMemoryInventoryStore, InventoryLedger, InventoryStore
from engines.orders import (
    Catalog,
    EscrowLedger,
    InMemoryCartStore,
    InMemoryCatalog,
    InMemoryEarningsStore,
    InMemoryOrderStore,
    InMemorySubOrderStore,
    OrderBuilder,
    OrderStatusMachine,
    SubOrderSplitter,
)
from engines.orders.store import CartStore, EarningsStore, OrderStore, SubOrderStore
from engines.payment import FakeGateway, PaymentGateway, PaymentService
from engines.promotion import (
    CouponStore,
    DiscountResolver,
    InMemoryCouponStore,
    InMemoryPromotionStore,
    PromotionStore,
)
from engines.returns import (
    EligibilityEngine,
    InMemoryRefundStore,
    InMemoryReplacementStore,
    RefundService,
    ReplacementService,
    RequestStore,
)


@dataclass
class Components:
    rules: MarketplaceRules
    clock: Clock
    notifier: NotificationDispatcher
    catalog: Catalog
    gateway: PaymentGateway

    inventory_store: InventoryStore
    rate_store: CommissionRateStore
    promotion_store: PromotionStore
    coupon_store: CouponStore
    orders: OrderStore
    sub_orders: SubOrderStore
    earnings: EarningsStore
    refund_requests: RequestStore
    replacement_requests: RequestStore
    carts: Optional[CartStore]

    ledger: InventoryLedger
    rate_book: CommissionRateBook
    commission: CommissionCalculator
    resolver: DiscountResolver
    escrow: EscrowLedger
    splitter: SubOrderSplitter
    status: OrderStatusMachine
    builder: OrderBuilder
    payments: PaymentService
    eligibility: EligibilityEngine
    refunds: RefundService
    replacements: ReplacementService


def build_components(
    *,
    catalog: Catalog,
    gateway: PaymentGateway,
    inventory_store: InventoryStore,
    rate_store: CommissionRateStore,
    promotion_store: PromotionStore,
    coupon_store: CouponStore,
    orders: OrderStore,
    sub_orders: SubOrderStore,
    earnings: EarningsStore,
    refund_requests: RequestStore,
    replacement_requests: RequestStore,
    carts: Optional[CartStore] = None,
    rules: Optional[MarketplaceRules] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[NotificationDispatcher] = None,
    atomic: Callable[[], ContextManager] = nullcontext,
    sleep: Callable[[float], None] = time.sleep,
) -> Components:
    rules = rules or MarketplaceRules()
    clock = clock or SystemClock()
    notifier = notifier or NotificationDispatcher()

    ledger = InventoryLedger(
        inventory_store, clock=clock, default_low_stock_threshold=rules.low_stock_threshold,
    )
    commission = CommissionCalculator(rate_store, rules)
    resolver = DiscountResolver(promotion_store, coupon_store, clock=clock)
    escrow = EscrowLedger(earnings, rules=rules, clock=clock)
    splitter = SubOrderSplitter(
        sub_orders, escrow, commission, rules=rules, clock=clock, atomic=atomic,
    )
    status = OrderStatusMachine(
        orders, sub_orders, ledger, notifier=notifier, clock=clock, atomic=atomic,
    )
    builder = OrderBuilder(
        catalog, ledger, resolver, commission, orders, splitter, escrow,
        carts=carts, notifier=notifier, rules=rules, clock=clock, atomic=atomic,
    )
    payments = PaymentService(gateway, orders, status, rules=rules, sleep=sleep)
    eligibility = EligibilityEngine(
        orders, catalog, refund_requests, replacement_requests, rules=rules, clock=clock,
    )
    refunds = RefundService(
        eligibility, refund_requests, status, escrow, ledger, gateway,
        notifier=notifier, rules=rules, clock=clock, sleep=sleep,
    )
    replacements = ReplacementService(
        eligibility, replacement_requests, status, ledger,
        notifier=notifier, rules=rules, clock=clock,
    )

    return Components(
        rules=rules,
        clock=clock,
        notifier=notifier,
        catalog=catalog,
        gateway=gateway,
        inventory_store=inventory_store,
        rate_store=rate_store,
        promotion_store=promotion_store,
        coupon_store=coupon_store,
        orders=orders,
        sub_orders=sub_orders,
        earnings=earnings,
        refund_requests=refund_requests,
        replacement_requests=replacement_requests,
        carts=carts,
        ledger=ledger,
        rate_book=CommissionRateBook(rate_store),
        commission=commission,
        resolver=resolver,
        escrow=escrow,
        splitter=splitter,
        status=status,
        builder=builder,
        payments=payments,
        eligibility=eligibility,
        refunds=refunds,
        replacements=replacements,
    )


def build_in_memory_components(
    gateway: Optional[PaymentGateway] = None,
    clock: Optional[Clock] = None,
    rules: Optional[MarketplaceRules] = None,
    notifier: Optional[NotificationDispatcher] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Components:
    """Everything in process memory. Used by tests and local runs."""
    return build_components(
        catalog=InMemoryCatalog(),
        gateway=gateway or FakeGateway(),
        inventory_store=InMemoryInventoryStore(),
        rate_store=InMemoryCommissionRateStore(),
        promotion_store=InMemoryPromotionStore(),
        coupon_store=InMemoryCouponStore(),
        orders=InMemoryOrderStore(),
        sub_orders=InMemorySubOrderStore(),
        earnings=InMemoryEarningsStore(),
        refund_requests=InMemoryRefundStore(),
        replacement_requests=InMemoryReplacementStore(),
        carts=InMemoryCartStore(),
        rules=rules,
        clock=clock,
        notifier=notifier,
        sleep=sleep,
    )
