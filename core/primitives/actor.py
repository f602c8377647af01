"""
Bazaar Actor Primitive — Who Is Acting
=========================================
The HTTP/auth layer authenticates the caller and attaches an Actor
to every request. The order core trusts that identity and only
checks roles and ownership.

Roles:
    CUSTOMER — places orders, files refund/replacement requests
    SELLER   — fulfills sub-orders, reviews requests for own items
    MANAGER  — reviews requests, drives order status
    ADMIN    — everything a manager can do, plus rate management
    SYSTEM   — scheduled jobs (escrow release, payment webhooks)

This file contains NO persistence logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from core.errors import ValidationError


# ══════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════

class ActorRole(Enum):
    CUSTOMER = "customer"
    SELLER = "seller"
    MANAGER = "manager"
    ADMIN = "admin"
    SYSTEM = "system"


STAFF_ROLES = frozenset({ActorRole.MANAGER, ActorRole.ADMIN, ActorRole.SYSTEM})


# ══════════════════════════════════════════════════════════════
# ACTOR DEFINITION
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Actor:
    """
    Authenticated caller identity.

    Fields:
        actor_id:   User id (or component name for SYSTEM actors)
        role:       ActorRole
    """
    actor_id: str
    role: ActorRole

    def __post_init__(self):
        if not isinstance(self.role, ActorRole):
            raise ValidationError("role must be ActorRole enum.", field="role")
        if not self.actor_id or not isinstance(self.actor_id, str):
            raise ValidationError(
                "actor_id must be a non-empty string.", field="actor_id"
            )

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_customer(self) -> bool:
        return self.role == ActorRole.CUSTOMER

    @property
    def is_seller(self) -> bool:
        return self.role == ActorRole.SELLER

    def to_dict(self) -> dict:
        return {"actor_id": self.actor_id, "role": self.role.value}

    @classmethod
    def from_dict(cls, data: dict) -> Actor:
        return cls(actor_id=data["actor_id"], role=ActorRole(data["role"]))

    @classmethod
    def customer(cls, user_id: str) -> Actor:
        return cls(actor_id=user_id, role=ActorRole.CUSTOMER)

    @classmethod
    def seller(cls, seller_id: str) -> Actor:
        return cls(actor_id=seller_id, role=ActorRole.SELLER)

    @classmethod
    def admin(cls, user_id: str) -> Actor:
        return cls(actor_id=user_id, role=ActorRole.ADMIN)

    @classmethod
    def system(cls, component: str) -> Actor:
        """Factory for scheduled jobs and gateway webhooks."""
        return cls(actor_id=f"system:{component}", role=ActorRole.SYSTEM)
