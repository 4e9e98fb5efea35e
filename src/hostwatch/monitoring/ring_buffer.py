"""Fixed-capacity ring buffer."""

import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Thread-safe FIFO of the most recent ``capacity`` items.

    Once full, every add() overwrites the oldest item; the size stays at
    capacity forever. get_all() returns a copy, oldest first.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._buffer: list[Optional[T]] = [None] * capacity
        self._capacity = capacity
        self._head = 0  # Next write position
        self._count = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def add(self, item: T) -> None:
        with self._lock:
            self._buffer[self._head] = item
            self._head = (self._head + 1) % self._capacity
            if self._count < self._capacity:
                self._count += 1

    def get_all(self) -> list[T]:
        with self._lock:
            if self._count < self._capacity:
                return list(self._buffer[: self._count])  # type: ignore[arg-type]
            return self._buffer[self._head :] + self._buffer[: self._head]  # type: ignore[return-value]

    def clear(self) -> None:
        with self._lock:
            self._buffer = [None] * self._capacity
            self._head = 0
            self._count = 0

    def __len__(self) -> int:
        with self._lock:
            return self._count

    def __repr__(self) -> str:
        return f"RingBuffer(capacity={self._capacity}, count={len(self)})"
