"""Tests for the event hub."""

import logging
from unittest.mock import Mock

import pytest

from preloader.events import EventHub, EventKind


class TestEventHub:
    """Test subscription and dispatch."""

    def test_subscribers_called_in_order(self):
        hub = EventHub()
        calls = []
        hub.on(EventKind.RETRY, lambda r, n: calls.append(("first", r, n)))
        hub.on(EventKind.RETRY, lambda r, n: calls.append(("second", r, n)))

        hub.emit(EventKind.RETRY, "config", 2)

        assert calls == [("first", "config", 2), ("second", "config", 2)]

    def test_string_event_names(self):
        """Test string names map to the typed kinds."""
        hub = EventHub()
        callback = Mock()
        hub.on("complete", callback)

        hub.emit(EventKind.COMPLETE, {"success": []})

        callback.assert_called_once_with({"success": []})
        assert hub.subscriber_count("COMPLETE") == 1

    def test_unknown_event_name(self):
        hub = EventHub()
        with pytest.raises(ValueError):
            hub.on("finished", Mock())

    def test_non_callable_rejected(self):
        hub = EventHub()
        with pytest.raises(TypeError):
            hub.on(EventKind.LOAD, "not callable")

    def test_emit_without_subscribers(self):
        hub = EventHub()
        hub.emit(EventKind.START)
        assert hub.subscriber_count(EventKind.START) == 0

    def test_failing_subscriber_isolated(self):
        """Test a raising subscriber is logged and later ones still run."""
        logger = Mock(spec=logging.Logger)
        hub = EventHub(logger=logger)
        after = Mock()
        hub.on(EventKind.LOAD, Mock(side_effect=RuntimeError("boom")))
        hub.on(EventKind.LOAD, after)

        hub.emit(EventKind.LOAD, "logo")

        after.assert_called_once_with("logo")
        assert logger.exception.called

    def test_off(self):
        hub = EventHub()
        callback = Mock()
        hub.on(EventKind.EXIT, callback)

        assert hub.off(EventKind.EXIT, callback)
        assert not hub.off(EventKind.EXIT, callback)
        hub.emit(EventKind.EXIT)
        callback.assert_not_called()

    def test_on_returns_callback(self):
        hub = EventHub()

        def started():
            pass

        assert hub.on(EventKind.START, started) is started
