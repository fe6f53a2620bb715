"""Fixed-capacity circular buffer used as the command log store."""

from __future__ import annotations

from typing import Generic, TypeVar

__all__ = ["CircularBuffer"]

T = TypeVar("T")


class CircularBuffer(Generic[T]):
    """Insertion-ordered buffer that overwrites its oldest item when full.

    Example:
        buffer = CircularBuffer[str](2)
        buffer.push("a")
        buffer.push("b")
        buffer.push("c")
        buffer.get_all()  # ["b", "c"]
    """

    def __init__(self, capacity: int) -> None:
        """Create a buffer holding at most ``capacity`` items.

        Raises:
            ValueError: If capacity is smaller than 1
        """
        if isinstance(capacity, bool) or not isinstance(capacity, int):
            raise ValueError(f"capacity must be an integer, got {capacity!r}")
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")

        self._capacity = capacity
        self._items: list[T | None] = [None] * capacity
        self._head = 0  # next write slot
        self._tail = 0  # oldest retained item
        self._size = 0

    def push(self, item: T) -> None:
        """Append an item, evicting the oldest one if the buffer is full."""
        self._items[self._head] = item
        self._head = (self._head + 1) % self._capacity

        if self._size < self._capacity:
            self._size += 1
        else:
            self._tail = (self._tail + 1) % self._capacity

    def get_all(self) -> list[T]:
        """Return a snapshot of retained items, oldest first."""
        result: list[T] = []
        index = self._tail
        for _ in range(self._size):
            result.append(self._items[index])  # type: ignore[arg-type]
            index = (index + 1) % self._capacity
        return result

    def clear(self) -> None:
        """Drop every item; capacity is unchanged."""
        self._items = [None] * self._capacity
        self._head = 0
        self._tail = 0
        self._size = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def capacity(self) -> int:
        return self._capacity

    def get_size(self) -> int:
        return self._size

    def get_capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        return f"CircularBuffer(size={self._size}, capacity={self._capacity})"
