"""
Bazaar — Payment Service Tests
================================
Intent creation with idempotency, confirmation checks, cancellation
and the bounded retry around gateway calls.
"""

import pytest

from core.errors import Forbidden, GatewayError, InvalidTransition, ValidationError
from engines.orders import OrderStatus


@pytest.fixture
def order(market):
    market.product("p-mug", "seller-a", 2000)
    return market.place(market.customer(), ("p-mug", 2)).order


class TestCreateIntent:
    def test_intent_matches_order(self, market, order, components, gateway):
        intent = components.payments.create_payment_intent(market.customer(), order.order_id)
        assert intent.amount == 4000
        assert intent.currency == "USD"
        assert intent.metadata == {"order_id": order.order_id, "user_id": "cust-1"}
        assert components.status.get(order.order_id).payment_intent_id == intent.id

    def test_repeated_call_reuses_intent(self, market, order, components, gateway):
        first = components.payments.create_payment_intent(market.customer(), order.order_id)
        second = components.payments.create_payment_intent(market.customer(), order.order_id)
        assert first.id == second.id
        assert len(gateway.intents) == 1

    def test_only_pending_orders_are_payable(self, market, order, components):
        market.pay(market.customer(), order.order_id)
        with pytest.raises(ValidationError) as exc:
            components.payments.create_payment_intent(market.customer(), order.order_id)
        assert exc.value.code == "ORDER_NOT_PAYABLE"

    def test_other_customer_rejected(self, market, order, components):
        with pytest.raises(Forbidden):
            components.payments.create_payment_intent(market.customer("cust-2"), order.order_id)

    def test_transient_failure_retried(self, market, order, components, gateway, sleeps):
        gateway.fail_next(
            "create_payment_intent",
            GatewayError("connection reset", retryable=True),
        )
        intent = components.payments.create_payment_intent(market.customer(), order.order_id)
        assert intent.amount == 4000
        assert gateway.calls.count("create_payment_intent") == 2
        assert sleeps == [1.0]

    def test_definitive_failure_not_retried(self, market, order, components, gateway, sleeps):
        gateway.fail_next(
            "create_payment_intent",
            GatewayError("card declined", retryable=False, status_code=402),
        )
        with pytest.raises(GatewayError):
            components.payments.create_payment_intent(market.customer(), order.order_id)
        assert gateway.calls.count("create_payment_intent") == 1
        assert sleeps == []
        assert components.status.get(order.order_id).payment_intent_id is None

    def test_retry_budget_bounded(self, market, order, components, gateway, sleeps):
        gateway.fail_next(
            "create_payment_intent",
            *[GatewayError("timeout", retryable=True) for _ in range(5)],
        )
        with pytest.raises(GatewayError):
            components.payments.create_payment_intent(market.customer(), order.order_id)
        assert gateway.calls.count("create_payment_intent") == 3
        assert sleeps == [1.0, 2.0]


class TestConfirm:
    def test_confirm_marks_paid(self, market, order, components):
        paid = market.pay(market.customer(), order.order_id)
        assert paid.status == OrderStatus.PAID
        assert paid.history[-1].actor.actor_id == "system:payment"

    def test_not_started(self, market, order, components):
        with pytest.raises(ValidationError) as exc:
            components.payments.confirm_payment(market.customer(), order.order_id)
        assert exc.value.code == "PAYMENT_NOT_STARTED"

    def test_not_completed(self, market, order, components):
        components.payments.create_payment_intent(market.customer(), order.order_id)
        with pytest.raises(ValidationError) as exc:
            components.payments.confirm_payment(market.customer(), order.order_id)
        assert exc.value.code == "PAYMENT_NOT_COMPLETED"
        assert components.status.get(order.order_id).status == OrderStatus.PENDING_PAYMENT

    def test_amount_mismatch(self, market, order, components, gateway):
        intent = components.payments.create_payment_intent(market.customer(), order.order_id)
        gateway.succeed(intent.id, amount=100)
        with pytest.raises(ValidationError) as exc:
            components.payments.confirm_payment(market.customer(), order.order_id)
        assert exc.value.code == "PAYMENT_AMOUNT_MISMATCH"

    def test_paid_twice_is_not_refunded(self, market, order, components, gateway):
        market.pay(market.customer(), order.order_id)
        with pytest.raises(InvalidTransition):
            components.payments.confirm_payment(market.customer(), order.order_id)
        assert gateway.refunds == {}

    def test_capture_on_cancelled_order_refunded(self, market, order, components, gateway):
        intent = components.payments.create_payment_intent(market.customer(), order.order_id)
        components.status.transition(market.admin(), order.order_id, OrderStatus.CANCELLED)
        gateway.succeed(intent.id)

        with pytest.raises(ValidationError) as exc:
            components.payments.confirm_payment(market.customer(), order.order_id)
        assert exc.value.code == "ORDER_CANCELLED_PAYMENT_REFUNDED"
        assert [r.amount for r in gateway.refunds.values()] == [4000]
        assert components.status.get(order.order_id).status == OrderStatus.CANCELLED


class TestCancel:
    def test_cancel_releases_stock_and_intent(self, market, order, components, gateway):
        intent = components.payments.create_payment_intent(market.customer(), order.order_id)
        cancelled = components.payments.cancel_payment(market.customer(), order.order_id)
        assert cancelled.status == OrderStatus.CANCELLED
        assert gateway.intents[intent.id].status == "canceled"
        assert market.available("p-mug") == 10

    def test_cancel_without_intent(self, market, order, components, gateway):
        components.payments.cancel_payment(market.customer(), order.order_id)
        assert "cancel_payment_intent" not in gateway.calls

    def test_payer_cannot_cancel_paid_order(self, market, order, components):
        market.pay(market.customer(), order.order_id)
        with pytest.raises(Forbidden):
            components.payments.cancel_payment(market.customer(), order.order_id)


class TestGuestOrders:
    @pytest.fixture
    def guest_order(self, market):
        market.product("p-tea", "seller-b", 1500)
        return market.place(market.seller("x"), ("p-tea", 1), guest_email="g@example.com").order

    def test_guest_session_pays(self, market, guest_order, components):
        paid = market.pay(market.guest("G@example.com"), guest_order.order_id)
        assert paid.status == OrderStatus.PAID
        assert paid.history[-1].actor.actor_id == "system:payment"

    def test_intent_has_no_user(self, market, guest_order, components):
        intent = components.payments.create_payment_intent(
            market.guest("g@example.com"), guest_order.order_id,
        )
        assert "user_id" not in intent.metadata

    @pytest.mark.parametrize("role, identity", [
        ("customer", "stranger-42"),
        ("seller", "seller-b"),
        ("guest", "someone-else@example.com"),
    ])
    def test_strangers_forbidden(self, market, guest_order, components, gateway, role, identity):
        ctx = getattr(market, role)(identity)
        with pytest.raises(Forbidden):
            components.payments.create_payment_intent(ctx, guest_order.order_id)
        with pytest.raises(Forbidden):
            components.payments.cancel_payment(ctx, guest_order.order_id)
        assert gateway.calls == []
        assert components.status.get(guest_order.order_id).status == OrderStatus.PENDING_PAYMENT
        assert market.available("p-tea") == 9

    def test_staff_may_cancel(self, market, guest_order, components):
        cancelled = components.payments.cancel_payment(market.admin(), guest_order.order_id)
        assert cancelled.status == OrderStatus.CANCELLED
