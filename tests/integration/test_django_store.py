"""
Bazaar — Django Store Integration Tests
=========================================
The ORM repositories behind the same engines the in-memory tests
drive: conditional-update CAS, coupon counters, the one-active-
request constraint and the JSON snapshot round trip.
"""

from datetime import timedelta

import pytest

from adapters.django_store.codec import from_snapshot, to_snapshot
from adapters.django_store.models import InventoryMovementRow, OrderRow, RefundRequestRow
from adapters.django_store.repositories import (
    DjangoCouponStore,
    DjangoInventoryStore,
    DjangoOrderStore,
    DjangoRefundStore,
    DjangoSubOrderStore,
)
from adapters.django_store.wiring import build_django_components
from core.config import MarketplaceRules
from core.errors import DuplicateRequest, InsufficientInventory, ValidationError
from engines.inventory import InventoryKey
from engines.orders import InMemoryCartStore, InMemoryCatalog, OrderStatus, SubOrder
from engines.promotion import Coupon, CouponUsage, DiscountType
from engines.returns import CreateRefundRequest, RefundStatus

pytestmark = pytest.mark.django_db(transaction=True)


@pytest.fixture
def components(clock, gateway, sleeps):
    return build_django_components(
        InMemoryCatalog(),
        gateway,
        carts=InMemoryCartStore(),
        rules=MarketplaceRules(),
        clock=clock,
        sleep=sleeps.append,
    )


# ══════════════════════════════════════════════════════════════
# INVENTORY
# ══════════════════════════════════════════════════════════════

class TestInventoryRows:
    def test_register_once(self, components):
        key = InventoryKey.product("p-mug")
        components.ledger.register(key, 5)
        with pytest.raises(ValidationError):
            components.ledger.register(key, 5)

    def test_reserve_and_movements(self, components):
        key = InventoryKey.product("p-mug")
        components.ledger.register(key, 5)
        components.ledger.reserve(key, 3, reference="ord-1")
        with pytest.raises(InsufficientInventory):
            components.ledger.reserve(key, 3)

        record = DjangoInventoryStore().get(key)
        assert record.quantity == 5
        assert record.reserved_quantity == 3
        assert record.version == 1
        assert InventoryMovementRow.objects.filter(ref_id="p-mug").count() == 2

    def test_stale_swap_rejected(self, components):
        store = DjangoInventoryStore()
        key = InventoryKey.product("p-mug")
        components.ledger.register(key, 5)
        stale = store.get(key)
        components.ledger.reserve(key, 1)

        movements = store.movements(key)
        assert not store.swap(stale, stale.evolve(reserved_quantity=4), movements[-1])
        assert store.get(key).reserved_quantity == 1
        assert len(store.movements(key)) == 2


# ══════════════════════════════════════════════════════════════
# COUPONS
# ══════════════════════════════════════════════════════════════

class TestCouponRows:
    def _usage(self, coupon, customer_id, order_id, clock):
        return CouponUsage(
            coupon_id=coupon.coupon_id,
            customer_id=customer_id,
            order_id=order_id,
            discount_amount=500,
            used_at=clock.now_utc(),
        )

    def test_global_limit(self, clock):
        store = DjangoCouponStore()
        store.save(Coupon(
            code="ONCE", discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=500, usage_limit=1,
        ))
        coupon = store.get_by_code("ONCE")
        assert store.record_usage(self._usage(coupon, "cust-1", "ord-1", clock))
        assert not store.record_usage(self._usage(coupon, "cust-2", "ord-2", clock))
        assert store.get_by_code("ONCE").times_used == 1

    def test_per_customer_limit_and_removal(self, clock):
        store = DjangoCouponStore()
        store.save(Coupon(
            code="TWICE", discount_type=DiscountType.PERCENTAGE, discount_value="15",
            usage_limit_per_customer=1,
        ))
        coupon = store.get_by_code("TWICE")
        assert store.record_usage(self._usage(coupon, "cust-1", "ord-1", clock))
        assert not store.record_usage(self._usage(coupon, "cust-1", "ord-2", clock))
        assert store.customer_usage_count(coupon.coupon_id, "cust-1") == 1

        assert store.remove_usage(coupon.coupon_id, "ord-1")
        assert store.get_by_code("TWICE").times_used == 0
        assert store.usages(coupon.coupon_id) == []


# ══════════════════════════════════════════════════════════════
# ORDERS THROUGH THE ENGINES
# ══════════════════════════════════════════════════════════════

class TestOrderFlow:
    @pytest.fixture
    def placed(self, market):
        market.product("p-mug", "seller-a", 2000)
        market.product("p-tea", "seller-b", 1500)
        return market.place(market.customer(), ("p-mug", 2), ("p-tea", 1), shipping_cost=300)

    def test_order_snapshot_round_trip(self, placed):
        stored = DjangoOrderStore().get(placed.order.order_id)
        assert stored == placed.order
        row = OrderRow.objects.get(pk=placed.order.order_id)
        assert row.status == "pending_payment"
        assert row.amount == 5800

    def test_sub_orders_persisted(self, placed):
        subs = DjangoSubOrderStore().list_for_order(placed.order.order_id)
        assert {s.seller_id for s in subs} == {"seller-a", "seller-b"}
        assert sum(s.subtotal for s in subs) == 5500
        for sub in subs:
            assert from_snapshot(SubOrder, to_snapshot(sub)) == sub

    def test_stale_order_update_rejected(self, placed):
        store = DjangoOrderStore()
        current = store.get(placed.order.order_id)
        moved = current.evolve(status=OrderStatus.CANCELLED)
        assert store.compare_and_set(current, moved)
        assert not store.compare_and_set(current, current.evolve(status=OrderStatus.PAID))
        assert store.get(placed.order.order_id).status == OrderStatus.CANCELLED

    def test_list_for_user_newest_first(self, market, placed, clock):
        clock.advance(timedelta(minutes=5))
        second = market.place(market.customer(), ("p-mug", 1))
        ids = [o.order_id for o in DjangoOrderStore().list_for_user("cust-1")]
        assert ids == [second.order.order_id, placed.order.order_id]

    def test_refund_end_to_end(self, market, placed, components):
        order_id = placed.order.order_id
        market.pay(market.customer(), order_id)
        market.deliver(order_id)

        request = components.refunds.create_request(market.customer(), CreateRefundRequest(
            order_id=order_id, product_id="p-tea",
            reason="not_as_described", description="Wrong blend",
        ))
        assert request.refund_amount == 1500 + 100
        done = components.refunds.approve(market.seller("seller-b"), request.request_id)
        assert done.status == RefundStatus.COMPLETED

        order = DjangoOrderStore().get(order_id)
        assert order.status == OrderStatus.PARTIALLY_REFUNDED
        assert order.refunded_amount == 1600
        assert RefundRequestRow.objects.get(pk=request.request_id).is_active
        assert market.available("p-tea") == 10


# ══════════════════════════════════════════════════════════════
# RETURN REQUEST CONSTRAINT
# ══════════════════════════════════════════════════════════════

class TestRequestConstraint:
    def test_second_active_request_is_duplicate(self, market, components):
        market.product("p-mug", "seller-a", 2000)
        order = market.delivered_order(market.customer(), ("p-mug", 1))
        request = components.refunds.create_request(market.customer(), CreateRefundRequest(
            order_id=order.order_id, product_id="p-mug",
            reason="quality_issue", description="Crack",
        ))

        clone = from_snapshot(type(request), dict(to_snapshot(request), request_id="other-id"))
        with pytest.raises(DuplicateRequest) as exc:
            DjangoRefundStore().add(clone)
        assert exc.value.existing_id == request.request_id

    def test_rejected_request_frees_the_slot(self, market, components):
        market.product("p-mug", "seller-a", 2000)
        order = market.delivered_order(market.customer(), ("p-mug", 1))
        command = CreateRefundRequest(
            order_id=order.order_id, product_id="p-mug",
            reason="quality_issue", description="Crack",
        )
        first = components.refunds.create_request(market.customer(), command)
        components.refunds.reject(market.admin(), first.request_id, "No evidence")

        second = components.refunds.create_request(market.customer(), command)
        assert second.request_id != first.request_id
        assert RefundRequestRow.objects.filter(order_id=order.order_id).count() == 2
