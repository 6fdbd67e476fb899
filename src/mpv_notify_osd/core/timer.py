"""Debounce timer that keeps the notification visible for a fixed time."""

from __future__ import annotations

import time
from typing import Callable


class DebounceTimer:
    """Single countdown, polled by the event loop.

    ``arm(0)`` marks the timer armed without a deadline: the notification
    then stays open until something else closes it. Expiry is reported once
    by ``poll_expired``; the timer stays armed until explicitly disarmed.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._armed = False
        self._deadline: float | None = None

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def arm(self, duration: float) -> None:
        self._armed = True
        self._deadline = self._clock() + duration if duration > 0 else None

    def disarm(self) -> None:
        self._armed = False
        self._deadline = None

    def timeout(self) -> float | None:
        """Seconds until expiry, or None when there is nothing to wait for."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def poll_expired(self) -> bool:
        if self._deadline is None or self._clock() < self._deadline:
            return False
        self._deadline = None
        return True
