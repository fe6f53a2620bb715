"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import queue
import sys
import time
from pathlib import Path
from typing import Any, Callable
from unittest import mock

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def wait_for(predicate: Callable[[], Any], timeout: float = 3.0, interval: float = 0.01) -> bool:
    """轮询直到 predicate 为真或超时。"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


class FakePty:
    """内存中的伪终端进程，替代 ptyprocess.PtyProcess。

    read() 阻塞在队列上；emit() 推送输出，finish() 让 read() 抛出 EOFError。
    """

    def __init__(self, argv: list[str], pid: int) -> None:
        self.argv = argv
        self.pid = pid
        self.written: list[bytes] = []
        self.killed: list[int] = []
        self.write_error: Exception | None = None
        self.exitstatus: int | None = None
        self.signalstatus: int | None = None
        self.closed = False
        self._chunks: queue.Queue[bytes | None] = queue.Queue()

    # PtyProcess API
    def read(self, size: int = 1024) -> bytes:
        chunk = self._chunks.get()
        if chunk is None:
            raise EOFError("End Of File (EOF).")
        return chunk

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(data)
        return len(data)

    def kill(self, sig: int) -> None:
        self.killed.append(sig)

    def wait(self) -> int | None:
        return self.exitstatus

    def close(self, force: bool = True) -> None:
        self.closed = True

    # 测试辅助
    def emit(self, data: bytes | str) -> None:
        self._chunks.put(data.encode("utf-8") if isinstance(data, str) else data)

    def finish(self, exitstatus: int | None = 0, signalstatus: int | None = None) -> None:
        self.exitstatus = exitstatus
        self.signalstatus = signalstatus
        self._chunks.put(None)


class FakePtyFactory:
    """记录 spawn 调用并返回 FakePty。"""

    def __init__(self) -> None:
        self.processes: list[FakePty] = []
        self.calls: list[dict[str, Any]] = []
        self.spawn_error: Exception | None = None
        self.killpg = mock.MagicMock(side_effect=self._killpg)

    def spawn(self, argv: list[str], **kwargs: Any) -> FakePty:
        self.calls.append({"argv": list(argv), **kwargs})
        if self.spawn_error is not None:
            raise self.spawn_error
        process = FakePty(list(argv), pid=90000 + len(self.processes))
        self.processes.append(process)
        return process

    def _killpg(self, pgid: int, sig: int) -> None:
        for process in self.processes:
            if process.pid == pgid:
                process.kill(sig)
                return
        raise ProcessLookupError(pgid)

    @property
    def last(self) -> FakePty:
        return self.processes[-1]


@pytest.fixture
def fake_pty():
    """把 PtyProcess.spawn 和 os.killpg 替换为内存实现。"""
    factory = FakePtyFactory()
    with mock.patch(
        "mcp_command_proxy.runtime.command_runner.PtyProcess.spawn",
        side_effect=factory.spawn,
    ), mock.patch(
        "mcp_command_proxy.runtime.command_runner.os.killpg",
        factory.killpg,
    ):
        yield factory
    for process in factory.processes:
        if not process.closed:
            process.finish()


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR
