"""
Bazaar Workflow Primitive — Transition Tables as Data
========================================================
Every lifecycle in the order core (order status, sub-order
fulfillment, refund and replacement requests) is a closed set of
states plus an explicit transition table. Engines never encode a
transition as an if/else chain; they ask the definition.

RULES:
- Invalid transitions are REJECTED with InvalidTransition
- Terminal states have no outgoing edges
- Definitions are immutable
- Every applied transition leaves a StateTransition record

This file contains NO persistence logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet

from core.errors import InvalidTransition
from core.primitives.actor import Actor


# ══════════════════════════════════════════════════════════════
# TRANSITION RECORD
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StateTransition:
    """An immutable audit record of one applied transition."""
    from_state: str
    to_state: str
    actor: Actor
    transitioned_at: datetime
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "from_state": self.from_state,
            "to_state": self.to_state,
            "actor": self.actor.to_dict(),
            "transitioned_at": self.transitioned_at.isoformat(),
            "reason": self.reason,
        }


# ══════════════════════════════════════════════════════════════
# WORKFLOW DEFINITION (state machine schema)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WorkflowDefinition:
    """
    Defines the valid states and transitions for a lifecycle.

    Fields:
        name:            Identifier used in errors and logs
        initial_state:   Starting state for all new instances
        terminal_states: States from which no ordinary transition leaves
        transitions:     {from_state → frozenset(allowed_to_states)}

    States are plain strings so that str-valued Enum members
    (``class OrderStatus(str, Enum)``) can be passed directly.
    """
    name: str
    initial_state: str
    terminal_states: FrozenSet[str]
    transitions: Dict[str, FrozenSet[str]]

    def __post_init__(self):
        if not self.name:
            raise ValueError("Workflow name must be non-empty.")
        if self.initial_state not in self.transitions:
            raise ValueError(
                f"initial_state '{self.initial_state}' not in transitions."
            )
        for state in self.terminal_states:
            if self.transitions.get(state):
                raise ValueError(
                    f"Terminal state '{state}' must not have outgoing transitions."
                )

    def is_valid_transition(self, from_state: str, to_state: str) -> bool:
        allowed = self.transitions.get(str(from_state), frozenset())
        return str(to_state) in allowed

    def is_terminal(self, state: str) -> bool:
        return str(state) in self.terminal_states

    def allowed_next_states(self, from_state: str) -> FrozenSet[str]:
        return self.transitions.get(str(from_state), frozenset())

    def require_transition(self, from_state: str, to_state: str) -> None:
        """Raise InvalidTransition unless from_state → to_state is an edge."""
        if not self.is_valid_transition(from_state, to_state):
            raise InvalidTransition(self.name, str(from_state), str(to_state))


def build_workflow(
    name: str,
    initial_state: str,
    edges: Dict[str, tuple],
    extra_terminal: tuple = (),
) -> WorkflowDefinition:
    """
    Build a definition from a plain {state: (targets...)} mapping.

    States with no targets are terminal. `extra_terminal` names
    states that exist in the lifecycle but are only ever entered
    through a privileged path outside this table.
    """
    transitions: Dict[str, FrozenSet[str]] = {
        str(src): frozenset(str(t) for t in targets)
        for src, targets in edges.items()
    }
    for state in extra_terminal:
        transitions.setdefault(str(state), frozenset())
    terminal = frozenset(s for s, targets in transitions.items() if not targets)
    return WorkflowDefinition(
        name=name,
        initial_state=str(initial_state),
        terminal_states=terminal,
        transitions=transitions,
    )
