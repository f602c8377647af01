"""
Bazaar Notifications — Public API
===================================
State changes are committed first, then heard.
"""

from core.events.dispatcher import NotificationDispatcher, dispatch
from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
)
from core.events.notification import (
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    REFUND_DECIDED,
    REFUND_REQUESTED,
    REPLACEMENT_DECIDED,
    REPLACEMENT_REQUESTED,
    REPLACEMENT_SHIPPED,
    SUB_ORDER_STATUS_CHANGED,
    NotificationEvent,
)
from core.events.registry import WILDCARD, SubscriberRegistry

__all__ = [
    "dispatch",
    "NotificationDispatcher",
    "NotificationEvent",
    "SubscriberRegistry",
    "WILDCARD",
    "EventBusError",
    "InvalidEventTypeFormat",
    "DuplicateSubscriberError",
    "ORDER_CREATED",
    "ORDER_STATUS_CHANGED",
    "SUB_ORDER_STATUS_CHANGED",
    "REFUND_REQUESTED",
    "REFUND_DECIDED",
    "REPLACEMENT_REQUESTED",
    "REPLACEMENT_DECIDED",
    "REPLACEMENT_SHIPPED",
]
