"""
Bazaar Notifications — Dispatcher
====================================
Routes committed notification events to registered subscribers.

Dispatch behavior:
1. Look up subscribers by event_type
2. Execute handlers sequentially
3. Catch subscriber exceptions per handler
4. Log failure
5. Continue to next subscriber
6. NEVER roll back or fail the operation that emitted the event

This module does NOT write to any store and does NOT interpret
payload meaning. It only routes.
"""

import logging
from typing import Optional

from core.events.notification import NotificationEvent
from core.events.registry import SubscriberRegistry

logger = logging.getLogger("bazaar.events")


def dispatch(event: NotificationEvent, registry: SubscriberRegistry) -> dict:
    """
    Dispatch an event to all registered subscribers.

    Returns:
        {
            'event_type': str,
            'event_id': str,
            'subscribers_notified': int,
            'subscribers_failed': int,
            'failures': list[dict]
        }

    This function NEVER raises exceptions.
    """
    event_type = event.event_type
    event_id = str(event.event_id)

    result = {
        "event_type": event_type,
        "event_id": event_id,
        "subscribers_notified": 0,
        "subscribers_failed": 0,
        "failures": [],
    }

    try:
        subscribers = registry.get_subscribers(event_type)
    except Exception:
        logger.exception("Subscriber lookup failed for %s", event_type)
        return result

    if not subscribers:
        logger.debug("No subscribers for %s (event_id: %s)", event_type, event_id)
        return result

    for handler, subscriber_name in subscribers:
        handler_name = getattr(handler, "__qualname__", str(handler))

        try:
            handler(event)
            result["subscribers_notified"] += 1
        except Exception as exc:
            result["subscribers_failed"] += 1
            result["failures"].append({
                "handler": handler_name,
                "subscriber": subscriber_name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            })
            logger.error(
                "Subscriber failed: %s for %s (event_id: %s): %s",
                handler_name, event_type, event_id, exc,
                exc_info=True,
            )

    logger.info(
        "Dispatch complete: %s (event_id: %s) — %d notified, %d failed",
        event_type, event_id,
        result["subscribers_notified"], result["subscribers_failed"],
    )
    return result


class NotificationDispatcher:
    """
    Thin side-effect boundary handed to engines.

    Engines call emit() after their state change is committed and
    never look at the result. Emitting with no registry is a no-op.
    """

    def __init__(self, registry: Optional[SubscriberRegistry] = None):
        self._registry = registry if registry is not None else SubscriberRegistry()

    @property
    def registry(self) -> SubscriberRegistry:
        return self._registry

    def emit(self, event: NotificationEvent) -> dict:
        return dispatch(event, self._registry)
