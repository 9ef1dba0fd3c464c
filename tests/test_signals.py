"""
Model signals (models/signals.py)

Tests receiver ordering, sender filtering, weak references, temporary
connections and the built-in signal table.
"""

import gc

import pytest

from quarry import Model
from quarry.models.signals import (
    MODEL_EVENTS,
    Signal,
    class_prepared,
    get_signal,
    receiver,
)


class Animal:
    pass


class Dog(Animal):
    pass


@pytest.fixture
def signal():
    return Signal("test_signal")


# ============================================================================
# Connect / send
# ============================================================================

class TestConnect:

    def test_decorator_and_send(self, signal):
        @signal.connect
        def handler(sender, **kwargs):
            return (sender, kwargs["value"])

        assert signal.send(Animal, value=1) == [(Animal, 1)]

    def test_decorator_with_options(self, signal):
        @signal.connect(priority=5)
        def handler(sender, **kwargs):
            return "ok"

        assert signal.receivers == [handler]

    def test_priority_order(self, signal):
        signal.connect(lambda sender, **kw: "late", priority=200)
        signal.connect(lambda sender, **kw: "early", priority=1)
        signal.connect(lambda sender, **kw: "default")
        assert signal.send(Animal) == ["early", "default", "late"]

    def test_duplicate_connect_ignored(self, signal):
        def handler(sender, **kwargs):
            return 1

        signal.connect(handler)
        signal.connect(handler)
        assert signal.send(Animal) == [1]

    def test_sender_filter_matches_subclasses(self, signal):
        signal.connect(lambda sender, **kw: sender.__name__, sender=Animal)
        assert signal.send(Dog) == ["Dog"]
        assert signal.send(str) == []
        assert signal.has_listeners(Dog)
        assert not signal.has_listeners(str)

    def test_raising_receiver_is_collected(self, signal):
        def broken(sender, **kwargs):
            raise RuntimeError("boom")

        signal.connect(broken)
        signal.connect(lambda sender, **kw: "after", priority=150)
        results = signal.send(Animal)
        assert isinstance(results[0], RuntimeError)
        assert results[1] == "after"


# ============================================================================
# Disconnect
# ============================================================================

class TestDisconnect:

    def test_disconnect(self, signal):
        def handler(sender, **kwargs):
            return 1

        signal.connect(handler, sender=Animal)
        assert signal.disconnect(handler, sender=Animal) is True
        assert signal.disconnect(handler) is False
        assert not signal.has_listeners()

    def test_weak_receiver_is_dropped(self, signal):
        """Weak receivers disappear once the function is collected."""
        def handler(sender, **kwargs):
            return 1

        signal.connect(handler, weak=True)
        assert signal.receivers == [handler]
        del handler
        gc.collect()
        assert signal.receivers == []
        assert signal.send(Animal) == []

    def test_connected_context(self, signal):
        def handler(sender, **kwargs):
            return "inside"

        with signal.connected(handler):
            assert signal.send(Animal) == ["inside"]
        assert signal.send(Animal) == []

    def test_clear_and_repr(self, signal):
        signal.connect(lambda sender, **kw: None)
        assert repr(signal) == "<Signal 'test_signal' receivers=1>"
        signal.clear()
        assert repr(signal) == "<Signal 'test_signal' receivers=0>"


# ============================================================================
# Built-in signals
# ============================================================================

class TestBuiltins:

    def test_model_events(self):
        assert set(MODEL_EVENTS) == {
            "before_insert", "after_insert", "before_update", "after_update",
            "before_write", "after_write", "before_delete", "after_delete",
            "before_restore", "after_restore", "after_read",
        }
        assert get_signal("after_read") is MODEL_EVENTS["after_read"]

    def test_receiver_decorator(self):
        @receiver(get_signal("before_write"), sender=Dog)
        def handler(sender, **kwargs):
            return "dog"

        assert get_signal("before_write").send(Dog, instance=None) == ["dog"]
        assert get_signal("before_write").send(Animal, instance=None) == []

    def test_class_prepared(self):
        seen = []

        def handler(sender, **kwargs):
            seen.append(sender.__name__)

        with class_prepared.connected(handler):
            class Draft(Model):
                pass

            class Base(Model):
                class Meta:
                    abstract = True

        assert seen == ["Draft"]
