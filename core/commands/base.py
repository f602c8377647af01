"""
Bazaar Command Layer — Request Context
=========================================
Every operation in the order core receives a RequestContext.

The context is supplied by the HTTP/auth layer after the caller
has been authenticated. It carries identity and tracing data only;
the business intent travels in the operation's own request
dataclass.

Rules:
- Immutable once created (frozen dataclass)
- No business logic inside
- No DB interaction
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from core.errors import ValidationError
from core.primitives.actor import Actor


# ══════════════════════════════════════════════════════════════
# REQUEST CONTEXT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RequestContext:
    """
    Authenticated request scope.

    Fields:
        actor:          Authenticated caller.
        correlation_id: Groups log lines and notifications of one request.
        issued_at:      When the request reached the core (optional).
        guest_email:    Address proven by a guest checkout session; lets
                        the caller act on the guest order placed with it.
    """

    actor: Actor
    correlation_id: uuid.UUID = field(default_factory=uuid.uuid4)
    issued_at: Optional[datetime] = None
    guest_email: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.actor, Actor):
            raise ValidationError("actor must be Actor.", field="actor")
        if not isinstance(self.correlation_id, uuid.UUID):
            raise ValidationError(
                "correlation_id must be UUID.", field="correlation_id"
            )
        if self.guest_email is not None:
            require_text(self.guest_email, "guest_email", max_length=254)

    @property
    def actor_id(self) -> str:
        return self.actor.actor_id


# ══════════════════════════════════════════════════════════════
# FIELD VALIDATION HELPERS (used by request dataclasses)
# ══════════════════════════════════════════════════════════════

def require_text(value, field_name: str, max_length: Optional[int] = None) -> None:
    if not value or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string.", field=field_name)
    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"{field_name} must be at most {max_length} characters.",
            field=field_name,
        )


def require_positive_int(value, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(
            f"{field_name} must be a positive integer.", field=field_name
        )


def require_non_negative_int(value, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(
            f"{field_name} must be a non-negative integer.", field=field_name
        )
