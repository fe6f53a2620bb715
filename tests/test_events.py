"""EventEmitter 测试。"""

from __future__ import annotations

from unittest import mock

import pytest

from mcp_command_proxy.runtime import EventEmitter, RunnerEvent


class TestEventEmitter:
    """订阅、发布与取消。"""

    def test_callbacks_run_in_registration_order(self):
        emitter = EventEmitter()
        calls: list[str] = []
        emitter.on(RunnerEvent.LOG, lambda entry: calls.append(f"first:{entry}"))
        emitter.on(RunnerEvent.LOG, lambda entry: calls.append(f"second:{entry}"))

        assert emitter.emit(RunnerEvent.LOG, "x") == 2
        assert calls == ["first:x", "second:x"]

    def test_accepts_string_event_names(self):
        emitter = EventEmitter()
        callback = mock.MagicMock()
        emitter.on("statusChange", callback)

        emitter.emit(RunnerEvent.STATUS_CHANGE, "running")

        callback.assert_called_once_with("running")

    def test_unknown_event_name_rejected(self):
        with pytest.raises(ValueError):
            EventEmitter().on("bogus", lambda: None)

    def test_events_are_isolated_by_category(self):
        emitter = EventEmitter()
        on_exit = mock.MagicMock()
        emitter.on(RunnerEvent.EXIT, on_exit)

        emitter.emit(RunnerEvent.LOG, "x")

        on_exit.assert_not_called()

    def test_late_subscriber_does_not_see_past_events(self):
        emitter = EventEmitter()
        emitter.emit(RunnerEvent.ERROR, RuntimeError("boom"))
        callback = mock.MagicMock()
        emitter.on(RunnerEvent.ERROR, callback)

        callback.assert_not_called()

    def test_subscription_cancel(self):
        emitter = EventEmitter()
        callback = mock.MagicMock()
        subscription = emitter.on(RunnerEvent.EXIT, callback)

        assert subscription.cancel() is True
        assert subscription.cancel() is False
        emitter.emit(RunnerEvent.EXIT, 0, None)

        callback.assert_not_called()
        assert emitter.listener_count(RunnerEvent.EXIT) == 0

    def test_subscription_as_context_manager(self):
        emitter = EventEmitter()
        callback = mock.MagicMock()
        with emitter.on(RunnerEvent.LOG, callback):
            emitter.emit(RunnerEvent.LOG, "inside")
        emitter.emit(RunnerEvent.LOG, "outside")

        callback.assert_called_once_with("inside")

    def test_failing_callback_does_not_stop_others(self):
        emitter = EventEmitter()
        after = mock.MagicMock()
        emitter.on(RunnerEvent.LOG, mock.MagicMock(side_effect=RuntimeError("boom")))
        emitter.on(RunnerEvent.LOG, after)

        emitter.emit(RunnerEvent.LOG, "x")

        after.assert_called_once_with("x")

    def test_off_unregistered_returns_false(self):
        assert EventEmitter().off(RunnerEvent.LOG, lambda entry: None) is False
