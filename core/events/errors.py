"""
Bazaar Notifications — Errors
===============================
Errors raised while wiring subscribers. Dispatch itself never raises.
"""


class EventBusError(Exception):
    """Base error for notification wiring."""
    pass


class InvalidEventTypeFormat(EventBusError):
    """Event type does not follow component.subject.action format."""

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(
            f"Event type '{event_type}' does not follow "
            f"component.subject.action format."
        )


class DuplicateSubscriberError(EventBusError):
    """Same handler already registered for this event type."""

    def __init__(self, event_type: str, handler_name: str):
        self.event_type = event_type
        self.handler_name = handler_name
        super().__init__(
            f"Handler '{handler_name}' already registered "
            f"for event type '{event_type}'."
        )
