"""
Event Bus - Change Notification
Producers (mutations, reconciliation, login pull, connectivity probes) emit
events; UI layers register handlers and re-render from local state.
"""

from typing import Callable, Dict, List, Any
import logging
import threading

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple in-process publish/subscribe.
    Handlers run synchronously in registration order; a failing handler is
    logged and never stops the handlers after it.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}
        self._lock = threading.Lock()

    def on(self, event_name: str, handler: Callable) -> Callable[[], None]:
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict

        Returns: a no-argument callable that unsubscribes the handler
        """
        with self._lock:
            self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {_name_of(handler)}")

        def unsubscribe():
            self.off(event_name, handler)

        return unsubscribe

    def off(self, event_name: str, handler: Callable) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        with self._lock:
            handlers = self._handlers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.

        Args:
            event_name: Name of the event
            event_data: Optional dict of data to pass to handlers
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with data: {event_data}")

        # Snapshot so handlers may unsubscribe while being called
        with self._lock:
            handlers = list(self._handlers.get(event_name, []))

        for handler in handlers:
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {_name_of(handler)} for event '{event_name}': {e}")

    def handler_count(self, event_name: str) -> int:
        with self._lock:
            return len(self._handlers.get(event_name, []))

    def clear(self):
        """Clear all handlers (useful for testing)."""
        with self._lock:
            self._handlers.clear()


def _name_of(handler: Callable) -> str:
    return getattr(handler, '__name__', repr(handler))


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Sync Engine Events
EVENT_DATA_CHANGED = 'data_changed'          # {'source': 'reconcile' | 'login_pull'}
EVENT_STATUS_CHANGED = 'status_changed'      # {'available': bool, 'api_base': str}
EVENT_SYNC_FAILED = 'sync_failed'            # {'operation': str, 'error': str}

# Mutation API Events
EVENT_COMPANY_CREATED = 'company_created'
EVENT_COMPANY_UPDATED = 'company_updated'
EVENT_COMPANY_DELETED = 'company_deleted'
EVENT_COMPANIES_IMPORTED = 'companies_imported'
EVENT_LOG_CREATED = 'log_created'
EVENT_LOG_UPDATED = 'log_updated'
EVENT_LOG_DELETED = 'log_deleted'
EVENT_USER_CREATED = 'user_created'
EVENT_USER_UPDATED = 'user_updated'
EVENT_USER_DELETED = 'user_deleted'
