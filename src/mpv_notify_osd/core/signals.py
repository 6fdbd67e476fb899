"""Signals delivered to the engine, one at a time, by the event source."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .properties import Prop


@dataclass(frozen=True)
class PropertyChanged:
    prop: Prop
    value: Any = None


@dataclass(frozen=True)
class TimerExpired:
    pass


@dataclass(frozen=True)
class ScreenshotReady:
    """A finished capture: tightly or loosely packed RGBA rows."""

    token: int
    data: bytes
    width: int
    height: int
    stride: int


@dataclass(frozen=True)
class ScreenshotFailed:
    token: int
    error: str = ""


@dataclass(frozen=True)
class ControlMessage:
    args: tuple[str, ...] = ()

    @property
    def kind(self) -> str | None:
        return self.args[0] if self.args else None


@dataclass(frozen=True)
class ConfigReloadRequested:
    pass


@dataclass(frozen=True)
class VideoReconfigured:
    pass


@dataclass(frozen=True)
class Seeked:
    pass


@dataclass(frozen=True)
class Shutdown:
    pass


Signal = (
    PropertyChanged
    | TimerExpired
    | ScreenshotReady
    | ScreenshotFailed
    | ControlMessage
    | ConfigReloadRequested
    | VideoReconfigured
    | Seeked
    | Shutdown
)
