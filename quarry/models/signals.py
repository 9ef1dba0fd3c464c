"""
Quarry Model Signals — write, delete, restore and read hooks.

Provides a lightweight signal system for model lifecycle events, with
support for weak references, priority ordering, sender filtering and
temporary connections.

A receiver of a ``before_*`` signal may return ``False`` to cancel the
operation; receivers that raise are logged and do not abort it.

Usage:
    from quarry.models.signals import before_insert, after_write

    @before_insert.connect(sender=User)
    def hash_password(sender, instance, **kwargs):
        instance.password = hash(instance.password)

    @after_write.connect
    def audit(sender, instance, **kwargs):
        print(f"Saved {sender.__name__}")
"""

from __future__ import annotations

import contextlib
import logging
import weakref
from typing import Any, Callable, Dict, List, Optional, Type

logger = logging.getLogger("quarry.models.signals")

__all__ = [
    "Signal",
    "MODEL_EVENTS",
    "before_insert",
    "after_insert",
    "before_update",
    "after_update",
    "before_write",
    "after_write",
    "before_delete",
    "after_delete",
    "before_restore",
    "after_restore",
    "after_read",
    "class_prepared",
    "get_signal",
    "receiver",
]


class _DeadRef:
    """Sentinel indicating a weak reference that has been garbage-collected."""
    pass


class Signal:
    """
    A signal that can be connected to receiver functions.

    Receivers are called with:
        sender   — the Model class
        instance — the model instance (if applicable)
        **kwargs — signal-specific keyword arguments

    Usage:
        my_signal = Signal("my_signal")

        @my_signal.connect
        def handler(sender, instance, **kwargs):
            ...

        my_signal.send(MyModel, instance=obj)

        with my_signal.connected(handler):
            my_signal.send(MyModel, instance=obj)
    """

    def __init__(self, name: str):
        self.name = name
        # Each entry: (receiver_or_weakref, sender_filter, priority)
        self._receivers: List[tuple] = []

    def connect(
        self,
        receiver: Optional[Callable] = None,
        *,
        sender: Optional[Type] = None,
        weak: bool = False,
        priority: int = 100,
    ):
        """
        Connect a receiver function. Can be used as a decorator.

        Args:
            receiver: Callable to invoke when the signal fires
            sender: Optional sender class to filter on
            weak: Store a weak reference (auto-cleanup on GC)
            priority: Lower values run first (default: 100)
        """
        def _decorator(fn: Callable) -> Callable:
            self._add_receiver(fn, sender, weak, priority)
            return fn

        if receiver is not None and callable(receiver):
            self._add_receiver(receiver, sender, weak, priority)
            return receiver
        return _decorator

    def _add_receiver(self, fn: Callable, sender: Optional[Type], weak: bool, priority: int) -> None:
        if weak:
            try:
                ref = weakref.ref(fn, self._cleanup)
            except TypeError:
                ref = fn
        else:
            ref = fn

        for existing_ref, existing_sender, _ in self._receivers:
            if self._resolve_ref(existing_ref) is fn and existing_sender is sender:
                return

        self._receivers.append((ref, sender, priority))
        self._receivers.sort(key=lambda x: x[2])

    def _cleanup(self, ref: Any) -> None:
        self._receivers = [
            (r, s, p) for r, s, p in self._receivers
            if self._resolve_ref(r) is not _DeadRef
        ]

    @staticmethod
    def _resolve_ref(ref: Any) -> Any:
        if isinstance(ref, weakref.ref):
            obj = ref()
            return _DeadRef if obj is None else obj
        return ref

    def disconnect(self, receiver: Callable, *, sender: Optional[Type] = None) -> bool:
        """
        Disconnect a receiver.

        Returns True if the receiver was found and removed.
        """
        for i, (ref, s, _) in enumerate(self._receivers):
            if self._resolve_ref(ref) is receiver and s is sender:
                self._receivers.pop(i)
                return True
        for i, (ref, _, _) in enumerate(self._receivers):
            if self._resolve_ref(ref) is receiver:
                self._receivers.pop(i)
                return True
        return False

    def send(self, sender: Type, **kwargs) -> List[Any]:
        """
        Fire the signal, calling every matching receiver in priority order.

        Returns the list of receiver results; a receiver that raised
        contributes its exception.
        """
        results = []
        for ref, filter_sender, _ in list(self._receivers):
            receiver = self._resolve_ref(ref)
            if receiver is _DeadRef:
                continue
            if filter_sender is not None and not _matches(sender, filter_sender):
                continue
            try:
                results.append(receiver(sender=sender, **kwargs))
            except Exception as exc:
                logger.error(
                    f"Signal '{self.name}' receiver {getattr(receiver, '__name__', receiver)!s} "
                    f"raised {exc.__class__.__name__}: {exc}"
                )
                results.append(exc)
        return results

    @property
    def receivers(self) -> List[Callable]:
        """Connected receiver functions (resolved, alive only)."""
        result = []
        for ref, _, _ in self._receivers:
            resolved = self._resolve_ref(ref)
            if resolved is not _DeadRef:
                result.append(resolved)
        return result

    def has_listeners(self, sender: Optional[Type] = None) -> bool:
        """Check if any receivers are connected (optionally for a sender)."""
        return any(
            self._resolve_ref(ref) is not _DeadRef
            and (sender is None or s is None or _matches(sender, s))
            for ref, s, _ in self._receivers
        )

    @contextlib.contextmanager
    def connected(self, fn: Callable, *, sender: Optional[Type] = None, priority: int = 100):
        """
        Temporarily connect ``fn``; it is disconnected on exit.

        Usage:
            with before_delete.connected(guard, sender=User):
                user.delete()
        """
        self._add_receiver(fn, sender, weak=False, priority=priority)
        try:
            yield
        finally:
            self.disconnect(fn, sender=sender)

    def clear(self) -> None:
        """Remove all receivers (useful for testing)."""
        self._receivers.clear()

    def __repr__(self) -> str:
        alive = sum(1 for ref, _, _ in self._receivers if self._resolve_ref(ref) is not _DeadRef)
        return f"<Signal '{self.name}' receivers={alive}>"


def _matches(sender: Type, filter_sender: Type) -> bool:
    return sender is filter_sender or (
        isinstance(sender, type) and isinstance(filter_sender, type) and issubclass(sender, filter_sender)
    )


# ── Built-in signals ─────────────────────────────────────────────────────────

before_insert = Signal("before_insert")
after_insert = Signal("after_insert")
before_update = Signal("before_update")
after_update = Signal("after_update")
before_write = Signal("before_write")
after_write = Signal("after_write")
before_delete = Signal("before_delete")
after_delete = Signal("after_delete")
before_restore = Signal("before_restore")
after_restore = Signal("after_restore")
after_read = Signal("after_read")
class_prepared = Signal("class_prepared")

MODEL_EVENTS: Dict[str, Signal] = {
    signal.name: signal
    for signal in (
        before_insert, after_insert, before_update, after_update,
        before_write, after_write, before_delete, after_delete,
        before_restore, after_restore, after_read,
    )
}


def get_signal(event: str) -> Signal:
    """The model event signal named ``event``."""
    return MODEL_EVENTS[event]


# ── receiver() shorthand decorator ──────────────────────────────────────────


def receiver(signal: Signal, *, sender: Optional[Type] = None):
    """
    Shorthand decorator to connect a function to a signal.

    Usage:
        @receiver(before_write, sender=User)
        def normalize_email(sender, instance, **kwargs):
            instance.email = instance.email.lower()
    """
    def _decorator(fn: Callable) -> Callable:
        signal.connect(fn, sender=sender)
        return fn
    return _decorator
