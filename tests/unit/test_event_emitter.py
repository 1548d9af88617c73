"""Tests for the event emitter."""
import logging
from unittest.mock import Mock

from stimuli_uploader.core.events import EventEmitter


class TestEventEmitter:
    """Test suite for EventEmitter."""

    def test_on_and_emit(self):
        """Test handlers receive arguments."""
        emitter = EventEmitter()
        handler = Mock()
        emitter.on('complete', handler)

        count = emitter.emit('complete', 'task', key='value')

        assert count == 1
        handler.assert_called_once_with('task', key='value')

    def test_emit_without_handlers(self):
        """Test emitting an unknown event is harmless."""
        assert EventEmitter().emit('nothing') == 0

    def test_handlers_run_in_order(self):
        """Test registration order is kept."""
        emitter = EventEmitter()
        calls = []
        emitter.on('e', lambda: calls.append(1))
        emitter.on('e', lambda: calls.append(2))

        emitter.emit('e')

        assert calls == [1, 2]

    def test_once(self):
        """Test once handler runs a single time."""
        emitter = EventEmitter()
        handler = Mock()
        emitter.once('e', handler)

        emitter.emit('e')
        emitter.emit('e')

        handler.assert_called_once()
        assert emitter.listener_count('e') == 0

    def test_off_single(self):
        """Test removing one handler."""
        emitter = EventEmitter()
        keep, drop = Mock(), Mock()
        emitter.on('e', keep).on('e', drop)

        emitter.off('e', drop)
        emitter.emit('e')

        keep.assert_called_once()
        drop.assert_not_called()

    def test_off_all(self):
        """Test removing every handler of an event."""
        emitter = EventEmitter()
        emitter.on('e', Mock())
        emitter.off('e')

        assert emitter.listener_count('e') == 0

    def test_raising_handler_is_isolated(self, caplog):
        """Test a failing handler is logged and the rest still run."""
        emitter = EventEmitter()
        after = Mock()
        emitter.on('e', Mock(side_effect=RuntimeError("broken subscriber")))
        emitter.on('e', after)

        with caplog.at_level(logging.ERROR, logger='stimuli_uploader.events'):
            emitter.emit('e')

        after.assert_called_once()
        assert "broken subscriber" in caplog.text
