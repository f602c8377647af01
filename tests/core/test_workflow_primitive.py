"""
Tests for core.primitives — Workflow definitions and actors.
"""

import pytest
from datetime import datetime, timezone

from core.commands.base import RequestContext
from core.errors import InvalidTransition, ValidationError
from core.primitives.actor import Actor, ActorRole
from core.primitives.workflow import StateTransition, WorkflowDefinition, build_workflow


@pytest.fixture
def ticket():
    return build_workflow(
        "ticket",
        "open",
        {"open": ("working", "closed"), "working": ("closed",), "closed": ()},
        extra_terminal=("archived",),
    )


# ── WorkflowDefinition Tests ─────────────────────────────────

class TestWorkflowDefinition:
    def test_edges(self, ticket):
        assert ticket.is_valid_transition("open", "working")
        assert not ticket.is_valid_transition("closed", "open")
        assert not ticket.is_valid_transition("nowhere", "open")

    def test_terminal_states_derived(self, ticket):
        assert ticket.terminal_states == frozenset({"closed", "archived"})
        assert ticket.allowed_next_states("archived") == frozenset()

    def test_require_transition(self, ticket):
        ticket.require_transition("working", "closed")
        with pytest.raises(InvalidTransition) as exc:
            ticket.require_transition("closed", "working")
        assert exc.value.from_state == "closed"
        assert exc.value.to_state == "working"

    def test_str_enum_states(self):
        from enum import Enum

        class Light(str, Enum):
            RED = "red"
            GREEN = "green"

        flow = build_workflow("light", Light.RED, {Light.RED: (Light.GREEN,), Light.GREEN: ()})
        assert flow.is_valid_transition(Light.RED, Light.GREEN)
        assert flow.is_valid_transition("red", "green")

    def test_initial_state_must_exist(self):
        with pytest.raises(ValueError):
            WorkflowDefinition(
                name="bad", initial_state="x", terminal_states=frozenset(), transitions={},
            )

    def test_terminal_with_edges_rejected(self):
        with pytest.raises(ValueError):
            WorkflowDefinition(
                name="bad",
                initial_state="a",
                terminal_states=frozenset({"a"}),
                transitions={"a": frozenset({"b"})},
            )


# ── StateTransition Tests ────────────────────────────────────

class TestStateTransition:
    def test_to_dict(self):
        at = datetime(2026, 5, 4, tzinfo=timezone.utc)
        record = StateTransition("paid", "confirmed", Actor.admin("admin-1"), at, reason="ok")
        assert record.to_dict() == {
            "from_state": "paid",
            "to_state": "confirmed",
            "actor": {"actor_id": "admin-1", "role": "admin"},
            "transitioned_at": at.isoformat(),
            "reason": "ok",
        }


# ── Actor Tests ──────────────────────────────────────────────

class TestActor:
    def test_roles(self):
        assert Actor.customer("c").is_customer
        assert Actor.seller("s").is_seller
        assert Actor.admin("a").is_staff
        assert not Actor.seller("s").is_staff

    def test_system_actor_is_staff(self):
        actor = Actor.system("payment")
        assert actor.actor_id == "system:payment"
        assert actor.role == ActorRole.SYSTEM
        assert actor.is_staff

    def test_round_trip_dict(self):
        actor = Actor(actor_id="m-1", role=ActorRole.MANAGER)
        assert Actor.from_dict(actor.to_dict()) == actor

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            Actor(actor_id="", role=ActorRole.CUSTOMER)


# ── RequestContext Tests ─────────────────────────────────────

class TestRequestContext:
    def test_guest_email_optional(self):
        ctx = RequestContext(actor=Actor.customer("c"))
        assert ctx.guest_email is None

    def test_blank_guest_email_rejected(self):
        with pytest.raises(ValidationError):
            RequestContext(actor=Actor.customer("c"), guest_email="  ")
