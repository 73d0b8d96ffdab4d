"""
Subscription surfaces the core logic listens to.

Signal is a tiny thread-safe pub/sub: handlers are called in subscription
order, and a handler that raises is logged and skipped so one bad subscriber
cannot break delivery to the others. InteractionListeners is the surface a UI
(or a test) pushes clicks into.
"""

import threading

from .config import log


class Signal:
    def __init__(self, name):
        self.name = name
        self._handlers = []
        self._lock = threading.Lock()

    def subscribe(self, handler):
        """Register `handler`; returns a callable that unsubscribes it."""
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe():
            with self._lock:
                try:
                    self._handlers.remove(handler)
                except ValueError:
                    pass

        return unsubscribe

    def emit(self, *args, **kwargs):
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(*args, **kwargs)
            except Exception as e:
                log.error("%s handler %r failed: %s", self.name, handler, e, exc_info=True)

    def clear(self):
        with self._lock:
            self._handlers.clear()

    def __len__(self):
        with self._lock:
            return len(self._handlers)


class InteractionListeners:
    """Receives UI interactions and forwards the trackable ones."""

    def __init__(self):
        self._interactions = Signal("interaction")

    def on_trackable_interaction(self, handler):
        return self._interactions.subscribe(handler)

    def dispatch(self, interaction):
        """Called by the UI surface for every click."""
        if not interaction.is_trackable:
            return
        self._interactions.emit(interaction)

    def stop(self):
        self._interactions.clear()
