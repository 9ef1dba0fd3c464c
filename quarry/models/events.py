"""
Quarry Model Events — lifecycle hooks around reads and writes.

For each event the model's own ``on_<event>(self)`` method runs first,
then the matching signal from ``quarry.models.signals`` is sent with
``sender=<model class>`` and ``instance=<model>``. A ``before_*`` hook
or receiver returning ``False`` cancels the operation.

Usage:
    class User(Model):
        def on_before_insert(self):
            self.token = secrets.token_hex(8)

    @before_delete.connect(sender=User)
    def protect_admin(sender, instance, **kwargs):
        return instance.role != "admin"
"""

from __future__ import annotations

import logging

from .signals import MODEL_EVENTS

__all__ = ["ModelEvent"]

logger = logging.getLogger("quarry.models.events")


class ModelEvent:
    """Event dispatch for ``Model``."""

    def with_event(self, event: bool):
        """Enable or suppress event dispatch for this instance."""
        self._with_event = event
        return self

    def trigger(self, event: str) -> bool:
        """
        Run the hooks of ``event``.

        Returns ``False`` when a ``before_*`` hook cancelled the operation.
        """
        if not self._with_event:
            return True

        handler = getattr(self, f"on_{event}", None)
        if handler is not None:
            result = handler()
            if result is False and event.startswith("before_"):
                logger.debug(f"{type(self).__name__}.on_{event} cancelled the operation")
                return False

        signal = MODEL_EVENTS.get(event)
        if signal is None or not signal.has_listeners(type(self)):
            return True
        results = signal.send(type(self), instance=self)
        if event.startswith("before_") and any(result is False for result in results):
            logger.debug(f"Signal '{event}' cancelled the operation on {type(self).__name__}")
            return False
        return True
