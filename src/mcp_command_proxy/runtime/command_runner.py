"""Command runner: a child process on a pseudo-terminal with a bounded log.

mcp-command-proxy runtime module

This module provides:
- PTY spawning via ptyprocess (fixed 80x30 terminal, colour-forcing env)
- A reader thread per live process delivering output chunks and exit status
- A bounded, ordered log of output and system messages
- log/exit/error/statusChange notifications for any number of subscribers

Key design points:
- One re-entrant lock serializes start/stop/write, log appends, status
  transitions and event delivery across the reader thread and callers
- At most one process handle is owned at a time; start() while one is
  owned is a no-op (this also covers stop() followed by start() before
  the exit notification arrives)
- The pseudo-terminal merges stderr into stdout, so output is always
  recorded as ``stdout``
"""

from __future__ import annotations

import codecs
import logging
import os
import signal
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any, Literal

from ptyprocess import PtyProcess
from pydantic import BaseModel, ConfigDict

from .buffer import CircularBuffer
from .events import EventEmitter, RunnerEvent, Subscription

__all__ = [
    "CommandRunner",
    "LogEntry",
    "LogType",
    "ProcessStatus",
    "DEFAULT_LOG_BUFFER_SIZE",
    "TERMINAL_COLS",
    "TERMINAL_ROWS",
]

logger = logging.getLogger(__name__)

DEFAULT_LOG_BUFFER_SIZE = 300
TERMINAL_COLS = 80
TERMINAL_ROWS = 30
READ_CHUNK_SIZE = 4096

# Merged over the child environment to get colourised, full-capability output
TERMINAL_ENV = {
    "FORCE_COLOR": "1",
    "TERM": "xterm-256color",
}

LogType = Literal["stdout", "stderr", "system"]


class LogEntry(BaseModel):
    """A single captured chunk of output or runner message.

    Attributes:
        timestamp: Milliseconds since the epoch, non-decreasing per runner
        content: Raw text; PTY output arrives in arbitrary chunks, not lines
        type: stdout, stderr or system
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int
    content: str
    type: LogType


class ProcessStatus(str, Enum):
    """Lifecycle state of the proxied command."""

    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class CommandRunner:
    """Runs a command in a pseudo-terminal and captures its output.

    Example:
        runner = CommandRunner("npm run dev", log_buffer_size=500)
        runner.on("log", lambda entry: print(entry.content, end=""))
        runner.start()
        runner.write("r")
        runner.stop()
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str] | None = None,
        *,
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, str] | None = None,
        log_buffer_size: int = DEFAULT_LOG_BUFFER_SIZE,
    ) -> None:
        """Create a runner; nothing is spawned until start().

        Args:
            command: Command line, split on whitespace (no shell quoting)
            args: Extra arguments appended after the split command
            cwd: Working directory (default: current directory)
            env: Child environment (default: this process's environment)
            log_buffer_size: Number of log entries retained

        Raises:
            ValueError: If the command is empty or the buffer size is < 1
        """
        parts = command.split()
        if not parts:
            raise ValueError("command must not be empty")

        self._command = parts[0]
        self._args = parts[1:] + list(args or [])
        self._cwd = os.fspath(cwd) if cwd is not None else os.getcwd()
        self._env = dict(env) if env is not None else dict(os.environ)
        self._log_buffer: CircularBuffer[LogEntry] = CircularBuffer(log_buffer_size)

        self._status = ProcessStatus.STOPPED
        self._process: PtyProcess | None = None
        self._reader: threading.Thread | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._last_timestamp = 0

        self._lock = threading.RLock()
        self._released = threading.Event()
        self._released.set()
        self._events = EventEmitter()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def command(self) -> str:
        return self._command

    @property
    def args(self) -> list[str]:
        return list(self._args)

    @property
    def argv(self) -> list[str]:
        return [self._command, *self._args]

    @property
    def cwd(self) -> str:
        return self._cwd

    @property
    def log_buffer_size(self) -> int:
        return self._log_buffer.capacity

    @property
    def pid(self) -> int | None:
        with self._lock:
            return self._process.pid if self._process is not None else None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._process is not None and self._status == ProcessStatus.RUNNING

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def on(self, event: RunnerEvent | str, callback: Callable[..., Any]) -> Subscription:
        """Subscribe to log, exit, error or statusChange events."""
        return self._events.on(event, callback)

    def off(self, event: RunnerEvent | str, callback: Callable[..., Any]) -> bool:
        return self._events.off(event, callback)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Spawn the command on a new pseudo-terminal.

        Returns immediately after the spawn attempt; output and exit are
        delivered asynchronously by the reader thread.

        Returns:
            True if a process was spawned, False if one is already owned
            or spawning failed (status is then ERROR)
        """
        with self._lock:
            if self._process is not None:
                logger.warning(
                    f"start() ignored: pid={self._process.pid} is still owned "
                    f"(status={self._status.value})"
                )
                return False

            self._add_log_entry(
                f"Starting command: {' '.join(self.argv)}".rstrip(), "system"
            )

            try:
                process = PtyProcess.spawn(
                    self.argv,
                    cwd=self._cwd,
                    env={**self._env, **TERMINAL_ENV},
                    dimensions=(TERMINAL_ROWS, TERMINAL_COLS),
                )
            except Exception as e:
                logger.debug(f"Spawn failed argv={self.argv} cwd={self._cwd}: {e}")
                self._set_status(ProcessStatus.ERROR)
                self._add_log_entry(f"Error starting command: {e}", "system")
                self._events.emit(RunnerEvent.ERROR, e)
                return False

            self._process = process
            self._released.clear()
            self._decoder.reset()
            logger.debug(f"Spawned pid={process.pid} argv={self.argv} cwd={self._cwd}")
            self._set_status(ProcessStatus.RUNNING)

            self._reader = threading.Thread(
                target=self._read_loop,
                args=(process,),
                name=f"pty-reader-{process.pid}",
                daemon=True,
            )
            self._reader.start()
            return True

    def stop(self, signum: int = signal.SIGTERM) -> bool:
        """Signal the child to terminate without waiting for it.

        The exit notification performs the STOPPED transition once the
        process actually exits.

        Returns:
            True if a signal was sent
        """
        with self._lock:
            process = self._process
            if process is None or self._status != ProcessStatus.RUNNING:
                return False

            self._add_log_entry("Stopping command...", "system")
            self._signal_process(process, signum)
            return True

    def write(self, data: str | bytes) -> bool:
        """Forward data verbatim to the child's terminal input.

        Failures are recorded as system log entries and never raised.

        Returns:
            True if the data was written
        """
        with self._lock:
            process = self._process
            if process is None or self._status != ProcessStatus.RUNNING:
                self._add_log_entry("Cannot write to process: not running", "system")
                return False

            self._add_log_entry(f"Attempting to write key: {data!r}", "system")
            payload = data.encode("utf-8") if isinstance(data, str) else data
            try:
                process.write(payload)
            except Exception as e:
                self._add_log_entry(f"Failed to write key: {e}", "system")
                return False

            self._add_log_entry("Successfully wrote key", "system")
            return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until no process is owned.

        Returns:
            True if the process handle was released within the timeout
        """
        return self._released.wait(timeout)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_logs(self) -> list[LogEntry]:
        with self._lock:
            return self._log_buffer.get_all()

    def get_status(self) -> ProcessStatus:
        with self._lock:
            return self._status

    def clear_logs(self) -> None:
        with self._lock:
            self._log_buffer.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _signal_process(self, process: PtyProcess, signum: int) -> None:
        # The PTY child is a session leader, so its pid is also its pgid
        try:
            os.killpg(process.pid, signum)
            logger.debug(f"Sent signal {signum} to process group pgid={process.pid}")
        except ProcessLookupError:
            logger.debug(f"Process group already gone pgid={process.pid}")
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
            try:
                process.kill(signum)
            except OSError as kill_error:
                self._add_log_entry(f"Failed to stop command: {kill_error}", "system")

    def _read_loop(self, process: PtyProcess) -> None:
        """Reader thread body: deliver output until EOF, then the exit."""
        while True:
            try:
                chunk = process.read(READ_CHUNK_SIZE)
            except EOFError:
                break
            except OSError as e:
                logger.debug(f"PTY read failed pid={process.pid}: {e}")
                break
            if chunk:
                self._handle_output(process, chunk)

        exit_code: int | None = None
        signal_name: str | None = None
        try:
            exit_code = process.wait()
            signal_name = _signal_name(process.signalstatus)
        except Exception as e:
            logger.debug(f"wait() failed pid={process.pid}: {e}")

        self._handle_exit(process, exit_code, signal_name)

    def _handle_output(self, process: PtyProcess, chunk: bytes) -> None:
        with self._lock:
            if process is not self._process:
                return
            text = self._decoder.decode(chunk)
            if text:
                self._add_log_entry(text, "stdout")

    def _handle_exit(
        self,
        process: PtyProcess,
        exit_code: int | None,
        signal_name: str | None,
    ) -> None:
        with self._lock:
            if process is not self._process:
                return

            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._add_log_entry(tail, "stdout")

            self._add_log_entry(
                f"Process exited with code {exit_code} and signal {signal_name or 'none'}",
                "system",
            )
            self._set_status(ProcessStatus.STOPPED)

            # Release before notifying so exit listeners may restart
            self._process = None
            self._reader = None
            self._released.set()

            logger.debug(f"Process exited pid={process.pid} code={exit_code} signal={signal_name}")
            self._events.emit(RunnerEvent.EXIT, exit_code, signal_name)

        try:
            process.close()
        except Exception as e:
            logger.debug(f"Error closing PTY pid={process.pid}: {e}")

    def _add_log_entry(self, content: str, type_: LogType) -> LogEntry:
        with self._lock:
            timestamp = max(int(time.time() * 1000), self._last_timestamp)
            self._last_timestamp = timestamp
            entry = LogEntry(timestamp=timestamp, content=content, type=type_)
            self._log_buffer.push(entry)
            self._events.emit(RunnerEvent.LOG, entry)
            return entry

    def _set_status(self, status: ProcessStatus) -> None:
        with self._lock:
            self._status = status
            self._events.emit(RunnerEvent.STATUS_CHANGE, status)

    def __repr__(self) -> str:
        return (
            f"CommandRunner(argv={self.argv!r}, "
            f"status={self._status.value}, "
            f"logs={len(self._log_buffer)}/{self._log_buffer.capacity})"
        )


def _signal_name(signum: int | None) -> str | None:
    if signum is None:
        return None
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)
