"""Single-threaded event loop: wait, batch, drain."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .ports import EventSource, EventSourceError
from .signals import Shutdown, TimerExpired

if TYPE_CHECKING:
    from .engine import NotificationEngine

logger = logging.getLogger(__name__)


def run_event_loop(engine: "NotificationEngine", source: EventSource) -> int:
    """Run until the player shuts down.

    Each iteration blocks until a signal arrives or the debounce deadline
    passes, feeds every signal that is already queued to the engine, reports
    the timer expiry if due and drains once. Returns the process exit code.
    """
    try:
        while True:
            signal = source.next(engine.timer.timeout())
            while signal is not None:
                engine.handle(signal)
                if isinstance(signal, Shutdown):
                    return 0
                signal = source.next(0)

            if engine.timer.poll_expired():
                engine.handle(TimerExpired())

            engine.drain()
    except EventSourceError as exc:
        logger.error("event source failed: %s", exc)
        return 1
