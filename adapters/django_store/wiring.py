"""
Bazaar Django Store — Wiring
===============================
Engines over the ORM repositories, with transaction.atomic as the
unit-of-work factory so each saga's writes commit together.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from django.db import transaction

from adapters.django_store.repositories import (
    DjangoCommissionRateStore,
    DjangoCouponStore,
    DjangoEarningsStore,
    DjangoInventoryStore,
    DjangoOrderStore,
    DjangoPromotionStore,
    DjangoRefundStore,
    DjangoReplacementStore,
    DjangoSubOrderStore,
)
from adapters.wiring import Components, build_components
from core.config import MarketplaceRules, load_rules
from core.events import NotificationDispatcher
from core.time import Clock
from engines.orders import Catalog
from engines.orders.store import CartStore
from engines.payment import PaymentGateway


def build_django_components(
    catalog: Catalog,
    gateway: PaymentGateway,
    carts: Optional[CartStore] = None,
    rules: Optional[MarketplaceRules] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[NotificationDispatcher] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Components:
    return build_components(
        catalog=catalog,
        gateway=gateway,
        inventory_store=DjangoInventoryStore(),
        rate_store=DjangoCommissionRateStore(),
        promotion_store=DjangoPromotionStore(),
        coupon_store=DjangoCouponStore(),
        orders=DjangoOrderStore(),
        sub_orders=DjangoSubOrderStore(),
        earnings=DjangoEarningsStore(),
        refund_requests=DjangoRefundStore(),
        replacement_requests=DjangoReplacementStore(),
        carts=carts,
        rules=rules or load_rules(),
        clock=clock,
        notifier=notifier,
        atomic=transaction.atomic,
        sleep=sleep,
    )
