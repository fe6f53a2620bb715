"""Runtime module for the proxied command and its log.

This module provides the pseudo-terminal command runner, the bounded log
store it writes to, and the event registry used to observe it.
"""

from __future__ import annotations

from .buffer import CircularBuffer
from .command_runner import CommandRunner, LogEntry, LogType, ProcessStatus
from .events import EventEmitter, RunnerEvent, Subscription

__all__ = [
    "CircularBuffer",
    "CommandRunner",
    "EventEmitter",
    "LogEntry",
    "LogType",
    "ProcessStatus",
    "RunnerEvent",
    "Subscription",
]
