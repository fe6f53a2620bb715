"""SignalManager 模块测试。

测试信号管理器的基本功能：
- 信号处理策略
- 配置支持
- 双击退出
- 程序化关闭请求
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from unittest import mock

import pytest

from mcp_command_proxy.config import SigintMode
from mcp_command_proxy.runtime import CommandRunner
from mcp_command_proxy.signal_manager import SignalManager


def make_runner(running: bool = False) -> mock.MagicMock:
    runner = mock.MagicMock(spec=CommandRunner)
    runner.is_running = running
    return runner


def make_manager(runner=None, **kwargs) -> SignalManager:
    """创建一个不安装真实信号处理器的 SignalManager。"""
    manager = SignalManager(runner or make_runner(), **kwargs)
    manager._shutdown_event = asyncio.Event()
    manager._loop = mock.MagicMock()
    return manager


class TestSignalManagerInit:
    """SignalManager 初始化测试。"""

    def test_explicit_values(self):
        manager = SignalManager(
            make_runner(),
            sigint_mode=SigintMode.STOP_THEN_EXIT,
            double_tap_window=2.5,
        )
        assert manager.sigint_mode == SigintMode.STOP_THEN_EXIT
        assert manager.double_tap_window == 2.5
        assert manager.is_shutdown_requested is False
        assert manager.is_force_exit is False

    def test_defaults_from_config(self):
        env = {
            "CMP_SIGINT_MODE": "stop_then_exit",
            "CMP_SIGINT_DOUBLE_TAP_WINDOW": "3",
        }
        with mock.patch.dict(os.environ, env, clear=False):
            from mcp_command_proxy.config import reload_config
            reload_config()
            manager = SignalManager(make_runner())
        reload_config()

        assert manager.sigint_mode == SigintMode.STOP_THEN_EXIT
        assert manager.double_tap_window == 3.0


class TestSignalManagerSigintExit:
    """SignalManager SIGINT EXIT 模式测试。"""

    def test_sigint_shuts_down_even_when_running(self):
        """EXIT 模式下 SIGINT 始终请求关闭，子进程由关闭流程停止。"""
        runner = make_runner(running=True)
        manager = make_manager(runner, sigint_mode=SigintMode.EXIT)

        manager._handle_sigint()

        assert manager.is_shutdown_requested is True
        runner.stop.assert_not_called()
        manager._loop.call_soon_threadsafe.assert_called_once_with(manager._shutdown_event.set)


class TestSignalManagerSigintStopThenExit:
    """SignalManager SIGINT STOP_THEN_EXIT 模式测试。"""

    def test_first_sigint_stops_command_only(self):
        runner = make_runner(running=True)
        manager = make_manager(runner, sigint_mode=SigintMode.STOP_THEN_EXIT)

        manager._handle_sigint()

        runner.stop.assert_called_once_with()
        assert manager.is_shutdown_requested is False
        manager._loop.call_soon_threadsafe.assert_not_called()

    def test_sigint_without_running_command_shuts_down(self):
        manager = make_manager(make_runner(running=False), sigint_mode=SigintMode.STOP_THEN_EXIT)

        manager._handle_sigint()

        assert manager.is_shutdown_requested is True

    def test_second_sigint_after_stop_shuts_down(self):
        runner = make_runner(running=True)
        manager = make_manager(runner, sigint_mode=SigintMode.STOP_THEN_EXIT)

        manager._handle_sigint()
        runner.is_running = False
        manager._handle_sigint()

        assert manager.is_shutdown_requested is True
        assert manager.is_force_exit is False


class TestSignalManagerDoubleTap:
    """SignalManager 双击退出测试。"""

    def test_double_tap_forces_exit(self):
        """关闭流程进行中再次 SIGINT（窗口内）设置强制退出标志。"""
        manager = make_manager(sigint_mode=SigintMode.EXIT, double_tap_window=1.0)

        manager._handle_sigint()
        assert manager.is_force_exit is False

        manager._handle_sigint()

        assert manager.is_force_exit is True
        assert manager.is_shutdown_requested is True

    def test_second_sigint_outside_window_does_not_force(self):
        manager = make_manager(sigint_mode=SigintMode.EXIT, double_tap_window=0.5)

        with mock.patch("mcp_command_proxy.signal_manager.time.time", side_effect=[100.0, 101.0]):
            manager._handle_sigint()
            manager._handle_sigint()

        assert manager.is_shutdown_requested is True
        assert manager.is_force_exit is False


class TestSignalManagerSigterm:
    """SignalManager SIGTERM 测试。"""

    def test_sigterm_requests_shutdown(self):
        runner = make_runner(running=True)
        manager = make_manager(runner)

        manager._handle_sigterm()

        assert manager.is_shutdown_requested is True
        assert manager.is_force_exit is False
        runner.stop.assert_not_called()


class TestShutdownCallback:
    """关闭回调测试。"""

    def test_callback_runs_once(self):
        callback = mock.MagicMock()
        manager = make_manager(on_shutdown=callback)

        manager._handle_sigterm()
        manager._handle_sigterm()

        callback.assert_called_once_with()

    def test_callback_error_does_not_block_shutdown(self):
        manager = make_manager(on_shutdown=mock.MagicMock(side_effect=RuntimeError("boom")))

        manager._handle_sigterm()

        assert manager.is_shutdown_requested is True
        manager._loop.call_soon_threadsafe.assert_called_once()


class TestGracefulShutdownRequest:
    """程序化关闭请求测试。"""

    def test_without_running_loop_requests_directly(self):
        manager = make_manager()
        manager._loop.is_running.return_value = False

        manager.request_graceful_shutdown()

        assert manager.is_shutdown_requested is True

    def test_with_running_loop_schedules_on_loop(self):
        manager = make_manager()
        manager._loop.is_running.return_value = True

        manager.request_graceful_shutdown()

        manager._loop.call_soon_threadsafe.assert_called_once_with(manager._request_shutdown)
        assert manager.is_shutdown_requested is False

    @pytest.mark.asyncio
    async def test_wait_for_shutdown_from_other_thread(self):
        manager = SignalManager(make_runner(), sigint_mode=SigintMode.EXIT)
        manager._loop = asyncio.get_running_loop()

        await asyncio.get_running_loop().run_in_executor(None, manager.request_graceful_shutdown)
        await asyncio.wait_for(manager.wait_for_shutdown(), timeout=2.0)

        assert manager.is_shutdown_requested is True


@pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers are POSIX only")
class TestSignalManagerLifecycle:
    """start/stop 测试。"""

    @pytest.mark.asyncio
    async def test_start_and_stop_install_handlers(self):
        manager = SignalManager(make_runner(), sigint_mode=SigintMode.EXIT)
        loop = asyncio.get_running_loop()

        with mock.patch.object(loop, "add_signal_handler") as add, \
                mock.patch.object(loop, "remove_signal_handler") as remove:
            await manager.start()
            await manager.start()
            await manager.stop()

        assert {c.args[0] for c in add.call_args_list} == {signal.SIGINT, signal.SIGTERM}
        assert add.call_count == 2
        assert {c.args[0] for c in remove.call_args_list} == {signal.SIGINT, signal.SIGTERM}
