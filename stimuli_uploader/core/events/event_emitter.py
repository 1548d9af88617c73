"""Event emitter implementation using Observer Pattern."""
from typing import Dict, List, Callable, Optional

from ..logging import get_logger


class EventEmitter:
    """
    Event emitter using Observer Pattern.

    Handlers run synchronously in registration order. A handler that raises
    is logged and skipped so that one broken subscriber cannot stall the
    upload queue.
    """

    def __init__(self, logger_name: str = 'stimuli_uploader.events'):
        """Initializes event emitter."""
        self._events: Dict[str, List[Callable]] = {}
        self._logger = get_logger(logger_name)

    def on(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers an event handler."""
        if event not in self._events:
            self._events[event] = []
        self._events[event].append(callback)
        return self

    def once(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers a handler that is removed after its first call."""
        def wrapper(*args, **kwargs):
            self.off(event, wrapper)
            callback(*args, **kwargs)

        return self.on(event, wrapper)

    def emit(self, event: str, *args, **kwargs) -> int:
        """Emits an event. Returns the number of handlers invoked."""
        handlers = list(self._events.get(event, ()))
        for callback in handlers:
            try:
                callback(*args, **kwargs)
            except Exception as e:
                self._logger.error(f"Handler for '{event}' raised: {e}", exc_info=True)
        return len(handlers)

    def off(self, event: str, callback: Optional[Callable] = None) -> 'EventEmitter':
        """Removes an event handler."""
        if event not in self._events:
            return self

        if callback is None:
            del self._events[event]
        else:
            self._events[event] = [cb for cb in self._events[event] if cb != callback]

        return self

    def listener_count(self, event: str) -> int:
        """Returns the number of handlers registered for an event."""
        return len(self._events.get(event, ()))
