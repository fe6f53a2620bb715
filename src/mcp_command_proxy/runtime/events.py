"""Synchronous publish/subscribe registry for runner events."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any

__all__ = [
    "EventEmitter",
    "RunnerEvent",
    "Subscription",
]

logger = logging.getLogger(__name__)


class RunnerEvent(str, Enum):
    """Event categories published by CommandRunner.

    Callback signatures:
        LOG: (entry: LogEntry)
        EXIT: (exit_code: int | None, signal_name: str | None)
        ERROR: (error: BaseException)
        STATUS_CHANGE: (status: ProcessStatus)
    """

    LOG = "log"
    EXIT = "exit"
    ERROR = "error"
    STATUS_CHANGE = "statusChange"


class Subscription:
    """Handle returned by EventEmitter.on(); cancel() unsubscribes."""

    def __init__(
        self,
        emitter: "EventEmitter",
        event: RunnerEvent,
        callback: Callable[..., Any],
    ) -> None:
        self._emitter = emitter
        self.event = event
        self.callback = callback

    def cancel(self) -> bool:
        return self._emitter.off(self.event, self.callback)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()


class EventEmitter:
    """Registry of callbacks per event category.

    Callbacks run synchronously in registration order, in the thread that
    emits. A failing callback is logged and skipped; it never interrupts
    the emitter or the remaining callbacks.
    """

    def __init__(self) -> None:
        self._listeners: dict[RunnerEvent, list[Callable[..., Any]]] = {
            event: [] for event in RunnerEvent
        }
        self._lock = threading.Lock()

    def on(self, event: RunnerEvent | str, callback: Callable[..., Any]) -> Subscription:
        """Register a callback for an event category."""
        event = RunnerEvent(event)
        with self._lock:
            self._listeners[event].append(callback)
        return Subscription(self, event, callback)

    def off(self, event: RunnerEvent | str, callback: Callable[..., Any]) -> bool:
        """Remove a callback. Returns False if it was not registered."""
        event = RunnerEvent(event)
        with self._lock:
            listeners = self._listeners[event]
            if callback in listeners:
                listeners.remove(callback)
                return True
        return False

    def listener_count(self, event: RunnerEvent | str) -> int:
        with self._lock:
            return len(self._listeners[RunnerEvent(event)])

    def emit(self, event: RunnerEvent | str, *args: Any) -> int:
        """Invoke every callback registered for ``event``.

        Returns:
            Number of callbacks invoked
        """
        event = RunnerEvent(event)
        with self._lock:
            listeners = list(self._listeners[event])

        for callback in listeners:
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"Error in '{event.value}' listener {callback!r}: {e}")
        return len(listeners)
