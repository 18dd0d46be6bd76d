"""
Event Bus - Decoupled Module Communication
The script service announces lifecycle changes here; listeners (analytics,
telephony sync, audit) subscribe without the service knowing about them.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple event bus for decoupled module communication.
    Modules emit events, other modules register handlers to listen.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {getattr(handler, '__name__', handler)}")

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.
        A failing handler is logged and does not stop the others.
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with keys: {sorted(event_data)}")

        for handler in self._handlers.get(event_name, []):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {getattr(handler, '__name__', handler)} for event '{event_name}': {e}")

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Singleton instance
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

EVENT_SCRIPT_CREATED = 'script_created'
EVENT_SCRIPT_UPDATED = 'script_updated'
EVENT_SCRIPT_DELETED = 'script_deleted'
EVENT_SCRIPT_DUPLICATED = 'script_duplicated'
EVENT_SCRIPT_VERSIONED = 'script_versioned'
EVENT_SCRIPT_METRICS_UPDATED = 'script_metrics_updated'
