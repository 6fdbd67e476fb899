"""Observed player properties and the table of their last known values."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum, auto
import math
from typing import Any

from .actions import Action
from .markup import escape


class ValueKind(Enum):
    STRING = auto()
    FLAG = auto()
    INT = auto()
    FLOAT = auto()
    NODE = auto()


class Prop(IntEnum):
    """Watched properties. The value doubles as the observation id."""

    APP_NAME = 0
    BRIGHTNESS = auto()
    CHAPTER = auto()
    CHAPTERS = auto()
    CHAPTER_TITLE = auto()
    CONTRAST = auto()
    VIDEO_IS_IMAGE = auto()
    DURATION = auto()
    EDITION = auto()
    EDITIONS = auto()
    EOF_REACHED = auto()
    FOCUSED = auto()
    GAMMA = auto()
    HUE = auto()
    IDLE_ACTIVE = auto()
    IMAGE_DISPLAY_DURATION = auto()
    KEEP_OPEN = auto()
    LAVFI_COMPLEX = auto()
    LOOP_FILE = auto()
    MEDIA_TITLE = auto()
    METADATA = auto()
    MOUSE_POS = auto()
    MSG_LEVEL = auto()
    MUTE = auto()
    SCRIPT_OPTS = auto()
    PAUSE = auto()
    PAUSED_FOR_CACHE = auto()
    PERCENT_POS = auto()
    PLAY_DIRECTION = auto()
    PLAYLIST_COUNT = auto()
    PLAYLIST_POS = auto()
    SATURATION = auto()
    SEEKING = auto()
    SPEED = auto()
    SUB_TEXT = auto()
    SUB_VISIBILITY = auto()
    TIME_POS = auto()
    IMAGE_DETECTED = auto()
    VID = auto()
    VOLUME = auto()


@dataclass(frozen=True)
class PropertySpec:
    """Static description of a watched property.

    Attributes:
        name: Player property name.
        kind: Value kind; fixed for the process lifetime.
        actions: Actions raised when the value changes.
        only_if_truthy: Raise ``actions`` only when the new value is truthy.
        affects_summary: The summary must be recomposed.
        affects_body: The body must be recomposed.
        escape_markup: Escape the string value when body markup is enabled.
    """

    name: str
    kind: ValueKind
    actions: frozenset[Action] = frozenset()
    only_if_truthy: bool = False
    affects_summary: bool = False
    affects_body: bool = False
    escape_markup: bool = False


def _spec(name, kind, *actions, only_if_truthy=False, summary=False, body=False, escape_markup=False):
    return PropertySpec(
        name=name,
        kind=kind,
        actions=frozenset(actions),
        only_if_truthy=only_if_truthy,
        affects_summary=summary,
        affects_body=body,
        escape_markup=escape_markup,
    )


_S, _B, _I, _F, _N = ValueKind.STRING, ValueKind.FLAG, ValueKind.INT, ValueKind.FLOAT, ValueKind.NODE
_UPD, _RST, _CLOSE = Action.UPDATE, Action.RESET, Action.CLOSE
_SHOT, _CHECK = Action.CAPTURE, Action.CHECK_IMAGE

PROPERTY_SPECS: dict[Prop, PropertySpec] = {
    # only present in some player builds, see OBSERVE_IF_SUPPORTED
    Prop.APP_NAME: _spec("app-name", _S, _UPD),
    Prop.BRIGHTNESS: _spec("brightness", _I, _SHOT),
    Prop.CHAPTER: _spec("chapter", _I, _UPD, body=True),
    Prop.CHAPTERS: _spec("chapters", _I, _UPD, body=True),
    Prop.CHAPTER_TITLE: _spec("chapter-metadata/title", _S, _UPD, body=True, escape_markup=True),
    Prop.CONTRAST: _spec("contrast", _I, _SHOT),
    Prop.VIDEO_IS_IMAGE: _spec("current-tracks/video/image", _B),
    Prop.DURATION: _spec("duration", _I, _UPD, body=True),
    Prop.EDITION: _spec("edition", _I, _UPD, body=True),
    Prop.EDITIONS: _spec("editions", _I, _UPD, body=True),
    Prop.EOF_REACHED: _spec("eof-reached", _B, _RST, only_if_truthy=True, body=True),
    Prop.FOCUSED: _spec("focused", _B, _CLOSE, only_if_truthy=True),
    Prop.GAMMA: _spec("gamma", _I, _SHOT),
    Prop.HUE: _spec("hue", _I, _SHOT),
    Prop.IDLE_ACTIVE: _spec("idle-active", _B, _UPD, _CHECK),
    Prop.IMAGE_DISPLAY_DURATION: _spec("image-display-duration", _F, _UPD, body=True),
    Prop.KEEP_OPEN: _spec("keep-open", _S, _RST, body=True),
    Prop.LAVFI_COMPLEX: _spec("lavfi-complex", _S, _UPD, _CHECK),
    Prop.LOOP_FILE: _spec("loop-file", _S, _RST, body=True),
    Prop.MEDIA_TITLE: _spec("media-title", _S, _UPD, summary=True),
    Prop.METADATA: _spec("metadata", _N, _RST, _CHECK, summary=True, body=True),
    Prop.MOUSE_POS: _spec("mouse-pos", _N),
    Prop.MSG_LEVEL: _spec("msg-level", _S),
    Prop.MUTE: _spec("mute", _B, _UPD, body=True),
    Prop.SCRIPT_OPTS: _spec("options/script-opts", _N),
    Prop.PAUSE: _spec("pause", _B, _UPD, body=True),
    Prop.PAUSED_FOR_CACHE: _spec("paused-for-cache", _B, _UPD, body=True),
    Prop.PERCENT_POS: _spec("percent-pos", _F),
    Prop.PLAY_DIRECTION: _spec("play-direction", _S, _UPD, body=True),
    Prop.PLAYLIST_COUNT: _spec("playlist-count", _I, _UPD, body=True),
    Prop.PLAYLIST_POS: _spec("playlist-pos", _I, _UPD, body=True),
    Prop.SATURATION: _spec("saturation", _I, _SHOT),
    Prop.SEEKING: _spec("seeking", _B, _UPD, body=True),
    Prop.SPEED: _spec("speed", _F, _UPD, body=True),
    Prop.SUB_TEXT: _spec("sub-text", _S, _UPD, body=True, escape_markup=True),
    Prop.SUB_VISIBILITY: _spec("sub-visibility", _B, _UPD, body=True),
    Prop.TIME_POS: _spec("time-pos", _I, _UPD, body=True),
    # set by a companion slideshow-detection script
    Prop.IMAGE_DETECTED: _spec("user-data/detect-image/detected", _B, _UPD, summary=True),
    Prop.VID: _spec("vid", _I, _UPD, _CHECK),
    Prop.VOLUME: _spec("volume", _I, _UPD, body=True),
}

OBSERVE_IF_SUPPORTED = frozenset({Prop.APP_NAME})

_BY_NAME = {spec.name: prop for prop, spec in PROPERTY_SPECS.items()}


def prop_by_name(name: str) -> Prop | None:
    return _BY_NAME.get(name)


def coerce(kind: ValueKind, raw: Any) -> Any:
    """Convert a transport value to ``kind``; ``None`` means unavailable."""
    if raw is None:
        return None
    try:
        if kind is ValueKind.STRING:
            if isinstance(raw, bool):
                return "yes" if raw else "no"
            if isinstance(raw, dict):
                return ",".join(f"{k}={v}" for k, v in raw.items())
            if isinstance(raw, float) and raw.is_integer():
                return str(int(raw))
            return str(raw)
        if kind is ValueKind.FLAG:
            if isinstance(raw, str):
                return raw == "yes"
            return bool(raw)
        if kind is ValueKind.INT:
            # choice properties such as vid report "no" as false
            if isinstance(raw, bool):
                return None
            number = float(raw)
            if not math.isfinite(number):
                return None
            return int(number)
        if kind is ValueKind.FLOAT:
            if isinstance(raw, bool):
                return None
            return float(raw)
    except (TypeError, ValueError):
        return None
    return raw


def is_truthy(kind: ValueKind, value: Any) -> bool:
    """Truthiness as used by property and option checks.

    Floats and structured nodes are never considered truthy.
    """
    if value is None:
        return False
    if kind is ValueKind.STRING:
        return bool(value)
    if kind is ValueKind.FLAG:
        return bool(value)
    if kind is ValueKind.INT:
        return value != 0
    return False


@dataclass(frozen=True)
class PropertyUpdate:
    actions: frozenset[Action] = frozenset()
    rewrite_summary: bool = False
    rewrite_body: bool = False


class ObservedStateTable:
    """Last known value of every watched property."""

    def __init__(self, escape_markup: bool = False):
        self.escape_markup = escape_markup
        self._values: dict[Prop, Any] = {}

    def update(self, prop: Prop, raw: Any) -> PropertyUpdate:
        spec = PROPERTY_SPECS[prop]
        value = coerce(spec.kind, raw)
        if value is not None and spec.escape_markup and isinstance(value, str):
            value = escape(value, self.escape_markup)

        if value is None:
            self._values.pop(prop, None)
        else:
            self._values[prop] = value

        actions = spec.actions
        if spec.only_if_truthy and not is_truthy(spec.kind, value):
            actions = frozenset()
        return PropertyUpdate(actions, spec.affects_summary, spec.affects_body)

    def read(self, prop: Prop) -> tuple[bool, Any]:
        if prop in self._values:
            return True, self._values[prop]
        return False, None

    def get(self, prop: Prop, default: Any = None) -> Any:
        return self._values.get(prop, default)

    def available(self, prop: Prop) -> bool:
        return prop in self._values

    def truthy(self, prop: Prop) -> bool:
        return is_truthy(PROPERTY_SPECS[prop].kind, self._values.get(prop))

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)
