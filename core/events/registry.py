"""
Bazaar Notifications — Subscriber Registry
=============================================
Controls which handlers hear which notification events.

Rules:
- Event types follow component.subject.action format
- Multiple subscribers per event type allowed
- Duplicate handler for the same event type forbidden
- "*" subscribes a handler to every event type
- In-memory only, thread-safe
"""

import logging
from threading import Lock
from typing import Callable

from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
)

logger = logging.getLogger("bazaar.events")

WILDCARD = "*"


class SubscriberRegistry:
    """
    In-memory registry of notification subscribers.

    Each entry maps an event_type to a list of
    (handler, subscriber_name) tuples.
    """

    def __init__(self):
        self._subscribers: dict[str, list[tuple[Callable, str]]] = {}
        self._lock = Lock()

    @staticmethod
    def _validate_event_type_format(event_type: str) -> None:
        if event_type == WILDCARD:
            return
        if not event_type or not isinstance(event_type, str):
            raise InvalidEventTypeFormat(event_type or "")

        parts = event_type.strip().split(".")
        if len(parts) < 3 or not all(parts):
            raise InvalidEventTypeFormat(event_type)

    def register_subscriber(
        self,
        event_type: str,
        handler: Callable,
        subscriber_name: str,
    ) -> None:
        """
        Register a handler for an event type (or "*" for all).

        Raises:
            InvalidEventTypeFormat:   Bad event type format
            DuplicateSubscriberError: Handler already registered
        """
        self._validate_event_type_format(event_type)

        if not callable(handler):
            raise EventBusError(
                f"Handler must be callable, got {type(handler)}."
            )

        handler_name = getattr(handler, "__qualname__", str(handler))

        with self._lock:
            entries = self._subscribers.setdefault(event_type, [])
            for existing_handler, _ in entries:
                if existing_handler is handler:
                    raise DuplicateSubscriberError(event_type, handler_name)
            entries.append((handler, subscriber_name))

        logger.info(
            "Subscriber registered: %s → %s (%s)",
            handler_name, event_type, subscriber_name,
        )

    def get_subscribers(self, event_type: str) -> list[tuple[Callable, str]]:
        """
        Subscribers for an event type, wildcard subscribers last.
        Returns an empty list when nobody listens (not an error).
        """
        with self._lock:
            specific = list(self._subscribers.get(event_type, []))
            wildcard = list(self._subscribers.get(WILDCARD, []))
        return specific + wildcard

    def subscriber_count(self, event_type: str) -> int:
        return len(self.get_subscribers(event_type))
