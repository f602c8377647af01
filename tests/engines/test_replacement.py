"""
Bazaar — Replacement Tests
"""

import pytest

from core.errors import Forbidden, InsufficientInventory, InvalidTransition, ValidationError
from core.events import REPLACEMENT_SHIPPED
from engines.inventory import InventoryKey
from engines.returns import CreateReplacementRequest, ReplacementStatus


@pytest.fixture
def delivered(market):
    market.product("p-mug", "seller-a", 2000, stock=5)
    return market.delivered_order(market.customer(), ("p-mug", 2))


@pytest.fixture
def request_id(market, delivered, components):
    request = components.replacements.create_request(market.customer(), CreateReplacementRequest(
        order_id=delivered.order_id,
        product_id="p-mug",
        reason="damaged_shipping",
        description="Both mugs arrived cracked",
        evidence_urls=("https://img.example.com/cracked.jpg",),
    ))
    return request.request_id


class TestApprove:
    def test_reserves_stock_and_links_order(self, market, delivered, request_id, components):
        approved = components.replacements.approve(market.admin(), request_id)
        assert approved.status == ReplacementStatus.APPROVED
        assert approved.holds_stock
        assert market.available("p-mug") == 1
        order = components.status.get(delivered.order_id)
        assert order.replacement_request_ids == (request_id,)

    def test_insufficient_stock_leaves_request_pending(self, market, delivered, request_id, components):
        components.ledger.reserve(InventoryKey.product("p-mug"), 2)
        with pytest.raises(InsufficientInventory):
            components.replacements.approve(market.admin(), request_id)
        assert components.replacements.get(request_id).status == ReplacementStatus.PENDING

    def test_link_failure_unwinds(self, market, delivered, request_id, components, monkeypatch):
        def broken(order_id, rid):
            raise RuntimeError("order store down")

        monkeypatch.setattr(components.status, "link_replacement", broken)
        with pytest.raises(RuntimeError):
            components.replacements.approve(market.admin(), request_id)

        assert market.available("p-mug") == 3
        assert components.replacements.get(request_id).status == ReplacementStatus.PENDING

    def test_other_seller_forbidden(self, market, request_id, components):
        with pytest.raises(Forbidden):
            components.replacements.approve(market.seller("seller-b"), request_id)


class TestShipAndComplete:
    def test_full_lifecycle(self, market, request_id, components, events, clock):
        seller = market.seller("seller-a")
        components.replacements.approve(seller, request_id)
        shipped = components.replacements.mark_shipped(seller, request_id, "TRACK-123")

        assert shipped.status == ReplacementStatus.SHIPPED
        assert shipped.tracking_number == "TRACK-123"
        assert shipped.shipped_at == clock.now_utc()
        record = components.ledger.snapshot(InventoryKey.product("p-mug"))
        assert record.quantity == 1
        assert record.reserved_quantity == 0
        assert events[-1].event_type == REPLACEMENT_SHIPPED

        completed = components.replacements.complete(seller, request_id)
        assert completed.status == ReplacementStatus.COMPLETED
        assert [h.to_state for h in completed.history] == ["approved", "shipped", "completed"]

    def test_cannot_ship_before_approval(self, market, request_id, components):
        with pytest.raises(InvalidTransition):
            components.replacements.mark_shipped(market.admin(), request_id, "TRACK-1")

    def test_tracking_number_required(self, market, request_id, components):
        components.replacements.approve(market.admin(), request_id)
        with pytest.raises(ValidationError):
            components.replacements.mark_shipped(market.admin(), request_id, "")


class TestReject:
    def test_reject_keeps_stock(self, market, request_id, components):
        rejected = components.replacements.reject(market.admin(), request_id, "Damage not visible")
        assert rejected.status == ReplacementStatus.REJECTED
        assert rejected.reviewed_by == "admin-1"
        assert market.available("p-mug") == 3
