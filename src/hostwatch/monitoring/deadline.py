"""Cancellable deadlines shared by a collection cycle.

A Deadline is the one budget handed to the snapshot collector and every
metric source it calls. It expires either when its monotonic expiry
instant passes or when someone cancels it explicitly.
"""

import threading
import time
from typing import Callable, Optional


class Deadline:
    """Monotonic expiry instant that can also be cancelled.

    Attributes:
        expires_at: Monotonic timestamp after which the deadline is expired,
            or None for a deadline that only expires on cancel().
    """

    def __init__(
        self,
        expires_at: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.expires_at = expires_at
        self._clock = clock
        self._cancelled = threading.Event()

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        """Create a deadline that expires `seconds` from now."""
        return cls(expires_at=clock() + seconds, clock=clock)

    @classmethod
    def never(cls) -> "Deadline":
        """Create a deadline that only expires when cancelled."""
        return cls(expires_at=None)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def expired(self) -> bool:
        """Return True once the deadline has passed or was cancelled."""
        if self._cancelled.is_set():
            return True
        if self.expires_at is None:
            return False
        return self._clock() >= self.expires_at

    def remaining(self) -> Optional[float]:
        """Seconds left before expiry (never negative), None if unbounded."""
        if self._cancelled.is_set():
            return 0.0
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    def reason(self) -> str:
        if self._cancelled.is_set():
            return "operation was canceled"
        return "deadline exceeded"

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining()!r}, cancelled={self.cancelled})"
