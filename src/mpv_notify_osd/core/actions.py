"""Coalesced actions and the fixed policy that orders them.

Signals never act on the backend directly. Each one contributes actions to a
PendingActions set, and once the current batch of signals has been consumed
the engine asks the functions below what to do, in this order:

    1. CHECK_IMAGE       recompute whether thumbnails are enabled
    2. FORCED_CAPTURE    request a frame even with the timer disarmed
       CAPTURE           request a frame only with the timer armed
    3. CLOSE             close (wins over RESET/UPDATE) unless force-opened
    4. RESET / UPDATE    gated by visibility, RESET wins over UPDATE
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Iterable, Iterator


class Action(Enum):
    """Units of work raised by signals."""

    RESET = auto()  # open or restart the notification and its timer
    UPDATE = auto()  # refresh an already visible notification
    CLOSE = auto()  # close it unless force-opened
    CAPTURE = auto()  # request a new thumbnail frame if the timer is armed
    FORCED_CAPTURE = auto()  # same, regardless of the timer
    CHECK_IMAGE = auto()  # recompute thumbnail enablement


class CaptureRequest(Enum):
    NONE = auto()
    NORMAL = auto()
    FORCED = auto()


class LifecycleStep(Enum):
    NONE = auto()
    CLOSE = auto()
    RESET = auto()
    UPDATE = auto()


class PendingActions:
    """Set of actions accumulated over one drain cycle."""

    def __init__(self, actions: Iterable[Action] = ()):
        self._actions: set[Action] = set(actions)

    def add(self, *actions: Action) -> None:
        self._actions.update(actions)

    def update(self, actions: Iterable[Action]) -> None:
        self._actions.update(actions)

    def clear(self) -> None:
        self._actions.clear()

    def snapshot(self) -> frozenset[Action]:
        return frozenset(self._actions)

    def __contains__(self, action: object) -> bool:
        return action in self._actions

    def __iter__(self) -> Iterator[Action]:
        return iter(sorted(self._actions, key=lambda a: a.value))

    def __len__(self) -> int:
        return len(self._actions)

    def __bool__(self) -> bool:
        return bool(self._actions)

    def __repr__(self) -> str:
        return f"PendingActions({[a.name for a in self]})"


def decide_capture(pending: PendingActions) -> CaptureRequest:
    if Action.FORCED_CAPTURE in pending:
        return CaptureRequest.FORCED
    if Action.CAPTURE in pending:
        return CaptureRequest.NORMAL
    return CaptureRequest.NONE


def decide_lifecycle(
    pending: PendingActions,
    *,
    force_open: bool,
    visible: bool,
    timer_armed: bool,
) -> LifecycleStep:
    """Pick the single lifecycle transition for this cycle.

    Args:
        pending: Actions accumulated since the last drain.
        force_open: Whether an explicit ``open`` override is active.
        visible: Result of the visibility gate (focus + descriptive state).
        timer_armed: Whether the debounce timer is currently armed.
    """
    if Action.CLOSE in pending and not force_open:
        return LifecycleStep.CLOSE
    if not visible:
        return LifecycleStep.NONE
    if Action.RESET in pending:
        return LifecycleStep.RESET
    if Action.UPDATE in pending and (timer_armed or force_open):
        return LifecycleStep.UPDATE
    return LifecycleStep.NONE


def is_visible(
    *,
    focused: bool,
    force_open: bool,
    metadata_available: bool,
    time_pos_available: bool,
    idle: bool,
) -> bool:
    """Visibility gate for RESET/UPDATE.

    While switching tracks the metadata disappears for a moment; waiting for it
    avoids flashing "No file" or the bare filename in the summary.
    """
    if focused and not force_open:
        return False
    return (metadata_available and time_pos_available) or idle
