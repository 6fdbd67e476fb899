"""Layered script options: factory defaults, file base, runtime overlay.

On startup and on ``reload-config`` the base generation is rebuilt from the
defaults plus the option file. Whenever the runtime overlay changes the
active generation is rebuilt from the base plus the overlay. In both cases
the previous active generation is diffed against the new one and every
changed key maps to a fixed trigger in OPTION_TRIGGERS.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
import logging
from pathlib import Path
import re
from typing import Any, Iterator, Mapping

from dotenv import dotenv_values

from .actions import Action

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"[+-]?\d+", re.ASCII)


class OptionKey(Enum):
    EXPIRE_TIMEOUT = "expire_timeout"
    NTF_APP_ICON = "ntf_app_icon"
    NTF_CATEGORY = "ntf_category"
    NTF_URGENCY = "ntf_urgency"
    SEND_THUMBNAIL = "send_thumbnail"
    SEND_PROGRESS = "send_progress"
    SEND_SUB_TEXT = "send_sub_text"
    THUMBNAIL_SIZE = "thumbnail_size"
    SCREENSHOT_FLAGS = "screenshot_flags"
    THUMBNAIL_SCALING = "thumbnail_scaling"
    DISABLE_SCALING = "disable_scaling"
    FOCUS_MANUAL = "focus_manual"
    PERFDATA = "perfdata"


class Urgency(IntEnum):
    LOW = 0
    NORMAL = 1
    CRITICAL = 2


class ScalingAlgorithm(Enum):
    FAST_BILINEAR = "fast-bilinear"
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"
    LANCZOS = "lanczos"


DEFAULTS: dict[OptionKey, Any] = {
    OptionKey.EXPIRE_TIMEOUT: 10,
    OptionKey.NTF_APP_ICON: "mpv",
    OptionKey.NTF_CATEGORY: "mpv",
    OptionKey.NTF_URGENCY: Urgency.LOW,
    OptionKey.SEND_THUMBNAIL: True,
    OptionKey.SEND_PROGRESS: True,
    OptionKey.SEND_SUB_TEXT: True,
    OptionKey.THUMBNAIL_SIZE: 64,
    OptionKey.SCREENSHOT_FLAGS: "video",
    OptionKey.THUMBNAIL_SCALING: ScalingAlgorithm.BICUBIC,
    OptionKey.DISABLE_SCALING: False,
    OptionKey.FOCUS_MANUAL: False,
    OptionKey.PERFDATA: False,
}


class OptionSet:
    """One generation of option values, ordered like OptionKey."""

    def __init__(self, values: Mapping[OptionKey, Any] | None = None):
        self._values = dict(DEFAULTS)
        if values:
            self._values.update(values)

    def __getitem__(self, key: OptionKey) -> Any:
        return self._values[key]

    def __setitem__(self, key: OptionKey, value: Any) -> None:
        self._values[key] = value

    def __iter__(self) -> Iterator[OptionKey]:
        return iter(OptionKey)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OptionSet):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"OptionSet({ {k.value: v for k, v in self._values.items()} })"

    def copy(self) -> "OptionSet":
        return OptionSet(self._values)

    def truthy(self, key: OptionKey) -> bool:
        value = self._values.get(key)
        if isinstance(value, str):
            return value != ""
        if isinstance(value, Enum):
            return bool(value.value) if isinstance(value, IntEnum) else True
        return bool(value)


# -- typed setters ------------------------------------------------------------


class OptionValueError(ValueError):
    pass


def _parse_bool(value: str) -> bool:
    if value == "yes":
        return True
    if value == "no":
        return False
    raise OptionValueError("boolean")


def _parse_int(value: str, minimum: int) -> int:
    if not _INTEGER.fullmatch(value):
        raise OptionValueError("number")
    number = int(value)
    if number < minimum:
        raise OptionValueError("number")
    return number


def _parse_urgency(value: str, where: str) -> Urgency:
    if value in ("low", "normal", "critical"):
        return Urgency[value.upper()]
    logger.error("%s unknown notification urgency '%s', setting to 'low'", where, value)
    return Urgency.LOW


def _parse_scaling(value: str, where: str) -> ScalingAlgorithm:
    try:
        return ScalingAlgorithm(value)
    except ValueError:
        logger.error("%s unknown thumbnail scaling option '%s', setting to 'bicubic'", where, value)
        return ScalingAlgorithm.BICUBIC


_SETTERS = {
    OptionKey.EXPIRE_TIMEOUT: lambda v, where: _parse_int(v, 0),
    OptionKey.NTF_APP_ICON: lambda v, where: v,
    OptionKey.NTF_CATEGORY: lambda v, where: v,
    OptionKey.NTF_URGENCY: _parse_urgency,
    OptionKey.SEND_THUMBNAIL: lambda v, where: _parse_bool(v),
    OptionKey.SEND_PROGRESS: lambda v, where: _parse_bool(v),
    OptionKey.SEND_SUB_TEXT: lambda v, where: _parse_bool(v),
    OptionKey.THUMBNAIL_SIZE: lambda v, where: _parse_int(v, 1),
    OptionKey.SCREENSHOT_FLAGS: lambda v, where: v,
    OptionKey.THUMBNAIL_SCALING: _parse_scaling,
    OptionKey.DISABLE_SCALING: lambda v, where: _parse_bool(v),
    OptionKey.FOCUS_MANUAL: lambda v, where: _parse_bool(v),
    OptionKey.PERFDATA: lambda v, where: _parse_bool(v),
}


def set_option(options: OptionSet, key: str, value: str, where: str = "script-opts") -> bool:
    """Parse ``value`` for ``key`` into ``options``.

    Unknown keys and malformed values are reported and leave the previous
    value untouched. Returns True when the value was applied.
    """
    logger.info("%s setting option '%s' to '%s'", where, key, value)
    try:
        option = OptionKey(key)
    except ValueError:
        logger.error("%s unknown key '%s', ignoring", where, key)
        return False

    try:
        options[option] = _SETTERS[option](value, where)
    except OptionValueError as exc:
        logger.error(
            "%s error converting value '%s' for key '%s' into %s, using default or config file value",
            where,
            value,
            key,
            exc,
        )
        return False
    return True


def apply_file(options: OptionSet, path: Path, label: str | None = None) -> int:
    """Apply ``key=value`` lines from ``path``; returns the number applied."""
    if not path.is_file():
        return 0
    try:
        entries = dotenv_values(path, interpolate=False, encoding="utf-8")
    except OSError as exc:
        logger.error("failed to read %s: %s", path, exc)
        return 0

    where = label or str(path)
    applied = 0
    for key, value in entries.items():
        if value is None:
            continue
        applied += set_option(options, key, value, where)
    return applied


def apply_runtime_overlay(options: OptionSet, overlay: Any, client_name: str) -> int:
    """Apply ``<client_name>-<option>`` entries of a script-opts map."""
    if not isinstance(overlay, Mapping):
        return 0
    applied = 0
    for key, value in overlay.items():
        if not isinstance(value, str):
            continue
        prefix, sep, rest = str(key).partition("-")
        if not sep or prefix != client_name:
            continue
        name = rest.split("-", 1)[0]
        if not name:
            continue
        applied += set_option(options, name, value)
    return applied


# -- diffing ------------------------------------------------------------------


class BackendRefresh(Enum):
    APP_ICON = "app_icon"
    CATEGORY = "category"
    URGENCY = "urgency"
    PROGRESS = "progress"


@dataclass(frozen=True)
class OptionTrigger:
    """Side effects of an option change."""

    actions: frozenset[Action] = frozenset()
    refresh: BackendRefresh | None = None
    drop_thumbnail: bool = False
    rewrite_body: bool = False
    capture_if_enabled: bool = False


OPTION_TRIGGERS: dict[OptionKey, OptionTrigger] = {
    OptionKey.EXPIRE_TIMEOUT: OptionTrigger(),
    OptionKey.NTF_APP_ICON: OptionTrigger(frozenset({Action.UPDATE}), refresh=BackendRefresh.APP_ICON),
    OptionKey.NTF_CATEGORY: OptionTrigger(frozenset({Action.UPDATE}), refresh=BackendRefresh.CATEGORY),
    OptionKey.NTF_URGENCY: OptionTrigger(frozenset({Action.UPDATE}), refresh=BackendRefresh.URGENCY),
    # enabling images never captures by itself, so queue one here
    OptionKey.SEND_THUMBNAIL: OptionTrigger(frozenset({Action.CHECK_IMAGE}), capture_if_enabled=True),
    OptionKey.SEND_PROGRESS: OptionTrigger(frozenset({Action.UPDATE}), refresh=BackendRefresh.PROGRESS),
    OptionKey.SEND_SUB_TEXT: OptionTrigger(frozenset({Action.UPDATE}), rewrite_body=True),
    OptionKey.THUMBNAIL_SIZE: OptionTrigger(frozenset({Action.CAPTURE}), drop_thumbnail=True),
    OptionKey.SCREENSHOT_FLAGS: OptionTrigger(frozenset({Action.CAPTURE})),
    OptionKey.THUMBNAIL_SCALING: OptionTrigger(frozenset({Action.CAPTURE}), drop_thumbnail=True),
    OptionKey.DISABLE_SCALING: OptionTrigger(frozenset({Action.CAPTURE}), drop_thumbnail=True),
    OptionKey.FOCUS_MANUAL: OptionTrigger(frozenset({Action.RESET})),
    OptionKey.PERFDATA: OptionTrigger(frozenset({Action.UPDATE}), rewrite_body=True),
}


def diff(before: OptionSet, after: OptionSet) -> list[OptionKey]:
    """Keys whose value differs between two generations, in key order."""
    changed = []
    for key in OptionKey:
        old, new = before[key], after[key]
        # None compares unequal to any string, keeping absence distinct from ""
        if type(old) is not type(new) or old != new:
            changed.append(key)
    return changed


class OptionStore:
    """Owns the three option generations for one client."""

    def __init__(self, client_name: str, config_path: Path | None = None):
        self.client_name = client_name
        self.config_path = config_path
        self.defaults = OptionSet(DEFAULTS)
        self.base = self.defaults.copy()
        self.active = self.defaults.copy()
        self._overlay: Any = None

    def __getitem__(self, key: OptionKey) -> Any:
        return self.active[key]

    def truthy(self, key: OptionKey) -> bool:
        return self.active.truthy(key)

    def _rebuild_active(self) -> list[OptionKey]:
        previous = self.active
        active = self.base.copy()
        apply_runtime_overlay(active, self._overlay, self.client_name)
        self.active = active
        changed = diff(previous, active)
        for key in changed:
            logger.info("option %s changed", key.value)
        return changed

    def reload(self) -> list[OptionKey]:
        """Rebuild base from defaults + file, reapply the overlay, diff."""
        base = self.defaults.copy()
        if self.config_path is not None:
            apply_file(base, self.config_path, label=f"script-opts/{self.config_path.name}")
        self.base = base
        return self._rebuild_active()

    def set_overlay(self, overlay: Any) -> list[OptionKey]:
        """Replace the runtime overlay, rebuild active, diff."""
        self._overlay = dict(overlay) if isinstance(overlay, Mapping) else None
        return self._rebuild_active()
