"""
Shared fixtures: an in-memory marketplace on a fixed clock with a
scripted payment gateway.
"""

from datetime import datetime, timezone

import pytest

from adapters.wiring import build_in_memory_components
from core.commands.base import RequestContext
from core.primitives.actor import Actor
from core.time import FixedClock
from engines.inventory import InventoryKey
from engines.orders import (
    CartItemRequest,
    CategoryInfo,
    OrderStatus,
    PlaceOrderRequest,
    ProductInfo,
    ShippingAddress,
    VariantInfo,
)
from engines.payment import FakeGateway

NOW = datetime(2026, 5, 4, 10, 0, 0, tzinfo=timezone.utc)

ADDRESS = ShippingAddress(
    full_name="Ada Buyer",
    line1="1 Market Street",
    city="Springfield",
    postal_code="12345",
    country="US",
)


def customer(user_id="cust-1"):
    return RequestContext(actor=Actor.customer(user_id))


def seller(seller_id):
    return RequestContext(actor=Actor.seller(seller_id))


def admin(user_id="admin-1"):
    return RequestContext(actor=Actor.admin(user_id))


def guest(email, session_id="guest-session-1"):
    return RequestContext(actor=Actor.customer(session_id), guest_email=email)


class Marketplace:
    """Thin driver over the wired components for test setup."""

    customer = staticmethod(customer)
    seller = staticmethod(seller)
    admin = staticmethod(admin)
    guest = staticmethod(guest)

    def __init__(self, components, clock, gateway):
        self.c = components
        self.clock = clock
        self.gateway = gateway

    def product(self, product_id, seller_id, price, stock=10, category_id=None, **flags):
        self.c.catalog.add_product(ProductInfo(
            product_id=product_id,
            seller_id=seller_id,
            price=price,
            category_id=category_id,
            title=product_id,
            **flags,
        ))
        if stock is not None:
            self.c.ledger.register(InventoryKey.product(product_id), stock)

    def variant(self, variant_id, product_id, price=None, stock=10, **flags):
        self.c.catalog.add_variant(VariantInfo(
            variant_id=variant_id, product_id=product_id, price=price, **flags,
        ))
        self.c.ledger.register(InventoryKey.variant(variant_id), stock)

    def category(self, category_id, **flags):
        self.c.catalog.add_category(CategoryInfo(category_id=category_id, **flags))

    def place(self, ctx, *items, coupon_code=None, shipping_cost=0, guest_email=None):
        request = PlaceOrderRequest(
            items=tuple(
                CartItemRequest(product_id=i[0], quantity=i[1], variant_id=i[2] if len(i) > 2 else None)
                for i in items
            ),
            shipping_address=ADDRESS,
            coupon_code=coupon_code,
            guest_email=guest_email,
            shipping_cost=shipping_cost,
        )
        return self.c.builder.place_order(ctx, request)

    def pay(self, ctx, order_id):
        intent = self.c.payments.create_payment_intent(ctx, order_id)
        self.gateway.succeed(intent.id)
        return self.c.payments.confirm_payment(ctx, order_id)

    def deliver(self, order_id):
        staff = admin()
        for status in (
            OrderStatus.CONFIRMED,
            OrderStatus.PACKED,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ):
            order = self.c.status.transition(staff, order_id, status)
        return order

    def delivered_order(self, ctx, *items, **kwargs):
        placed = self.place(ctx, *items, **kwargs)
        self.pay(ctx, placed.order.order_id)
        return self.deliver(placed.order.order_id)

    def available(self, product_id, variant_id=None):
        return self.c.ledger.available(InventoryKey.for_line(product_id, variant_id))


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def components(clock, gateway, sleeps):
    return build_in_memory_components(gateway=gateway, clock=clock, sleep=sleeps.append)


@pytest.fixture
def market(components, clock, gateway):
    return Marketplace(components, clock, gateway)


@pytest.fixture
def events(components):
    """Every notification emitted during the test, in order."""
    seen = []
    components.notifier.registry.register_subscriber("*", seen.append, "test-recorder")
    return seen
