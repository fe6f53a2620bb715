"""本地按键转发。

当本进程的 stdin 是 TTY 时，把终端切到 raw 模式，并把按键原样转发给子进程，
这样在本地终端里也能像直接运行命令一样交互。raw 模式下 Ctrl+C 不再产生
SIGINT，而是作为字节 \\x03 读到，这里把它转换为关闭请求。
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Callable, Optional, TextIO

from .keys import CTRL_C
from .runtime import CommandRunner

if sys.platform != "win32":
    import termios
    import tty

__all__ = ["StdinForwarder"]

logger = logging.getLogger(__name__)

READ_SIZE = 1024


class StdinForwarder:
    """把本地终端按键转发给 CommandRunner。

    Attributes:
        runner: 被代理命令的运行器
        on_interrupt: 收到 Ctrl+C 时的回调
    """

    def __init__(
        self,
        runner: CommandRunner,
        on_interrupt: Callable[[], None],
        stream: Optional[TextIO] = None,
        prefix: str = "",
    ) -> None:
        self.runner = runner
        self.on_interrupt = on_interrupt
        self._stream = stream if stream is not None else sys.stdin
        self._tag = f"[{prefix}] " if prefix else ""
        self._fd: Optional[int] = None
        self._saved_attrs: Optional[list] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_active(self) -> bool:
        return self._fd is not None

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
        """切换到 raw 模式并开始监听按键。

        Returns:
            是否成功启动（stdin 不是 TTY 时返回 False）
        """
        if self._fd is not None:
            return True

        if sys.platform == "win32" or not self._stream.isatty():
            logger.info(f"{self._tag}Terminal is not in TTY mode, keypresses won't be captured")
            return False

        fd = self._stream.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setraw(fd)

        # Keep output post-processing so log lines still get \r\n
        attrs = termios.tcgetattr(fd)
        attrs[1] = attrs[1] | termios.OPOST
        termios.tcsetattr(fd, termios.TCSANOW, attrs)

        self._loop = loop or asyncio.get_running_loop()
        self._loop.add_reader(fd, self._on_readable)
        self._fd = fd
        logger.info(f"{self._tag}Terminal is in TTY mode, listening for keypresses")
        return True

    def stop(self) -> None:
        """停止监听并恢复终端属性。"""
        fd = self._fd
        if fd is None:
            return
        self._fd = None

        if self._loop is not None:
            try:
                self._loop.remove_reader(fd)
            except Exception as e:
                logger.debug(f"Error removing stdin reader: {e}")

        if self._saved_attrs is not None:
            try:
                termios.tcsetattr(fd, termios.TCSADRAIN, self._saved_attrs)
            except termios.error as e:
                logger.debug(f"Error restoring terminal attributes: {e}")
            self._saved_attrs = None

    def _on_readable(self) -> None:
        if self._fd is None:
            return
        try:
            data = os.read(self._fd, READ_SIZE)
        except OSError as e:
            logger.debug(f"stdin read failed: {e}")
            self.stop()
            return

        if not data:
            # stdin closed
            self.stop()
            return

        self.forward(data.decode("utf-8", errors="replace"))

    def forward(self, text: str) -> None:
        """处理一段按键输入。"""
        logger.debug(f"{self._tag}Received keypress: {[ord(c) for c in text]}")

        if CTRL_C in text:
            logger.info(f"{self._tag}Received Ctrl+C, exiting...")
            self.on_interrupt()
            return

        if self.runner.is_running:
            self.runner.write(text)
