"""StdinForwarder 测试。"""

from __future__ import annotations

import io
from unittest import mock

from mcp_command_proxy.keys import CTRL_C
from mcp_command_proxy.runtime import CommandRunner
from mcp_command_proxy.stdin_forwarder import StdinForwarder


def make_forwarder(running: bool = True, stream=None):
    runner = mock.MagicMock(spec=CommandRunner)
    runner.is_running = running
    on_interrupt = mock.MagicMock()
    forwarder = StdinForwarder(runner, on_interrupt, stream=stream or io.StringIO(), prefix="Test")
    return forwarder, runner, on_interrupt


class TestForward:

    def test_keys_written_to_running_command(self):
        forwarder, runner, on_interrupt = make_forwarder()

        forwarder.forward("r")
        forwarder.forward("\x1b[A")

        assert runner.write.call_args_list == [mock.call("r"), mock.call("\x1b[A")]
        on_interrupt.assert_not_called()

    def test_enter_forwarded_verbatim(self):
        """本地 Enter 以 \\r 原样转发，由子进程终端的行规程处理。"""
        forwarder, runner, _ = make_forwarder()

        forwarder.forward("\r")

        runner.write.assert_called_once_with("\r")

    def test_ctrl_c_requests_shutdown(self):
        forwarder, runner, on_interrupt = make_forwarder()

        forwarder.forward("ab" + CTRL_C)

        on_interrupt.assert_called_once_with()
        runner.write.assert_not_called()

    def test_ctrl_c_when_stopped(self):
        forwarder, runner, on_interrupt = make_forwarder(running=False)

        forwarder.forward(CTRL_C)

        on_interrupt.assert_called_once_with()

    def test_keys_dropped_when_not_running(self):
        forwarder, runner, on_interrupt = make_forwarder(running=False)

        forwarder.forward("q")

        runner.write.assert_not_called()
        on_interrupt.assert_not_called()


class TestStart:

    def test_non_tty_stream_is_not_captured(self):
        forwarder, _, _ = make_forwarder()

        assert forwarder.start(loop=mock.MagicMock()) is False
        assert forwarder.is_active is False

    def test_stop_without_start_is_noop(self):
        forwarder, _, _ = make_forwarder()
        forwarder.stop()
        assert forwarder.is_active is False
