"""Lifecycle state machine for the single notification object."""

from __future__ import annotations

from enum import Enum, auto
import logging


class LifecycleState(Enum):
    UNINITIALIZED = auto()
    CLOSED = auto()
    OPEN = auto()
    FAILED = auto()


class LifecycleEvent(Enum):
    BACKEND_READY = auto()
    SHOW = auto()
    CLOSE = auto()
    FAIL = auto()
    TEARDOWN = auto()


_TRANSITIONS = {
    LifecycleState.UNINITIALIZED: {
        LifecycleEvent.BACKEND_READY: LifecycleState.CLOSED,
        LifecycleEvent.TEARDOWN: LifecycleState.UNINITIALIZED,
    },
    LifecycleState.CLOSED: {
        LifecycleEvent.SHOW: LifecycleState.OPEN,
        LifecycleEvent.CLOSE: LifecycleState.CLOSED,
        LifecycleEvent.FAIL: LifecycleState.FAILED,
        LifecycleEvent.TEARDOWN: LifecycleState.UNINITIALIZED,
    },
    LifecycleState.OPEN: {
        LifecycleEvent.SHOW: LifecycleState.OPEN,
        LifecycleEvent.CLOSE: LifecycleState.CLOSED,
        LifecycleEvent.FAIL: LifecycleState.FAILED,
        LifecycleEvent.TEARDOWN: LifecycleState.UNINITIALIZED,
    },
    LifecycleState.FAILED: {
        LifecycleEvent.BACKEND_READY: LifecycleState.CLOSED,
        LifecycleEvent.TEARDOWN: LifecycleState.UNINITIALIZED,
    },
}


class LifecycleStateMachine:
    def __init__(self):
        self.state = LifecycleState.UNINITIALIZED

    def transition(self, event: LifecycleEvent) -> LifecycleState:
        next_state = _TRANSITIONS.get(self.state, {}).get(event, self.state)
        if next_state == self.state and event not in _TRANSITIONS.get(self.state, {}):
            logging.getLogger(__name__).warning(
                "Invalid lifecycle transition: %s --%s--> %s", self.state, event, next_state
            )
        self.state = next_state
        return self.state

    @property
    def is_open(self) -> bool:
        return self.state == LifecycleState.OPEN
