"""Map the player's ``msg-level`` option onto the package logger."""

from __future__ import annotations

import logging

PACKAGE_LOGGER = "mpv_notify_osd"

# above CRITICAL: nothing gets through
QUIET = logging.CRITICAL + 10

_LEVELS = {
    "no": QUIET,
    "v": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def parse_msg_level(msg_level: str | None, client_name: str) -> int:
    """Return the logging level selected for ``client_name``.

    ``msg_level`` is a comma separated ``module=level`` list; entries for
    ``all`` and for the client both apply, the last one wins. Anything
    unrecognised, including no entry at all, means errors only.
    """
    if not msg_level:
        return logging.ERROR

    selected = None
    for entry in msg_level.split(","):
        module, sep, level = entry.partition("=")
        if sep and module in (client_name, "all"):
            selected = level

    if selected is None:
        return logging.ERROR
    return _LEVELS.get(selected, logging.ERROR)


def apply_log_level(level: int) -> None:
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
