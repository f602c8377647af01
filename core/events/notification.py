"""
Bazaar Notifications — Event Envelope
========================================
A NotificationEvent is produced by an engine AFTER its state change
has been committed. It is a fact about the past, handed to
subscribers (email, in-app, audit) that the core never waits on.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


# ══════════════════════════════════════════════════════════════
# EVENT TYPES
# ══════════════════════════════════════════════════════════════

ORDER_CREATED = "orders.order.created"
ORDER_STATUS_CHANGED = "orders.status.changed"
SUB_ORDER_STATUS_CHANGED = "orders.sub_order.status.changed"
REFUND_REQUESTED = "returns.refund.requested"
REFUND_DECIDED = "returns.refund.decided"
REPLACEMENT_REQUESTED = "returns.replacement.requested"
REPLACEMENT_DECIDED = "returns.replacement.decided"
REPLACEMENT_SHIPPED = "returns.replacement.shipped"


# ══════════════════════════════════════════════════════════════
# ENVELOPE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NotificationEvent:
    """
    Fields:
        event_type:  component.subject.action
        subject_id:  Order id or request id the event is about
        actor_id:    Who caused the change
        occurred_at: When the change was committed
        old_status:  Previous status (status events only)
        new_status:  New status (status events only)
        payload:     Extra context for subscribers
    """

    event_type: str
    subject_id: str
    actor_id: str
    occurred_at: datetime
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)

    def to_dict(self) -> dict:
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "subject_id": self.subject_id,
            "actor_id": self.actor_id,
            "occurred_at": self.occurred_at.isoformat(),
            "old_status": self.old_status,
            "new_status": self.new_status,
            "payload": dict(self.payload),
        }
