"""Body markup helpers."""

from __future__ import annotations

import re

_REPLACEMENTS = {"<": "&lt;", ">": "&gt;", "&": "&amp;"}
_SPECIAL = re.compile(r"[<>&]")
_DATE = re.compile(r"\d{4}[-./ ]\d{2}[-./ ]\d{2}", re.ASCII)


def escape(text: str, enabled: bool = True) -> str:
    """Escape ``< > &`` when the notification server renders body markup."""
    if not enabled or not text:
        return text
    return _SPECIAL.sub(lambda m: _REPLACEMENTS[m.group(0)], text)


def year_or_escape(text: str, enabled: bool = True) -> str:
    """Shorten ``YYYY-MM-DD`` (any of ``- . / space`` as separator) to ``YYYY``."""
    if _DATE.fullmatch(text):
        return text[:4]
    return escape(text, enabled)
