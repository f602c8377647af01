"""
Bazaar Core Primitives — Shared Building Blocks
==================================================
Pure Python, immutable, no Django dependency.
"""

from core.primitives.actor import STAFF_ROLES, Actor, ActorRole
from core.primitives.workflow import (
    StateTransition,
    WorkflowDefinition,
    build_workflow,
)

__all__ = [
    "Actor",
    "ActorRole",
    "STAFF_ROLES",
    "StateTransition",
    "WorkflowDefinition",
    "build_workflow",
]
