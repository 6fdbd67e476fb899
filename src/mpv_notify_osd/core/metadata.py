"""Track metadata tags used by the text composer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .markup import escape, year_or_escape


@dataclass(frozen=True)
class TrackMetadata:
    """Tags picked out of the player's metadata map.

    ``artist`` and ``title`` are kept raw for the summary (no markup there);
    everything else is escaped for the body. ``available`` is False while the
    player has not delivered a metadata map, e.g. mid track switch.
    """

    available: bool = False
    album: str | None = None
    album_artist: str | None = None
    artist: str | None = None
    artist_escaped: str | None = None
    date: str | None = None
    date_year: str | None = None
    disc: str | None = None
    discc: str | None = None
    discnumber: str | None = None
    disctotal: str | None = None
    originaldate: str | None = None
    originaldate_year: str | None = None
    originalyear: str | None = None
    title: str | None = None
    totaldiscs: str | None = None
    year: str | None = None

    @classmethod
    def from_node(cls, node: Any, markup: bool = False) -> "TrackMetadata":
        if not isinstance(node, dict):
            return cls()

        fields: dict[str, str] = {}

        def _set(field: str, value: str) -> None:
            # tag keys are case-insensitive; the first occurrence wins
            fields.setdefault(field, value)

        for key, value in node.items():
            if not isinstance(value, str):
                continue
            key = str(key).lower()
            if key == "album":
                _set("album", escape(value, markup))
            elif key == "album_artist":
                _set("album_artist", escape(value, markup))
            elif key == "artist":
                _set("artist", value)
                _set("artist_escaped", escape(value, markup))
            elif key == "date":
                _set("date", escape(value, markup))
                _set("date_year", year_or_escape(value, markup))
            elif key == "disc":
                _set("disc", escape(value, markup))
            elif key == "discc":
                _set("discc", escape(value, markup))
            elif key == "discnumber":
                _set("discnumber", escape(value, markup))
            elif key == "disctotal":
                _set("disctotal", escape(value, markup))
            elif key == "originaldate":
                _set("originaldate", escape(value, markup))
                _set("originaldate_year", year_or_escape(value, markup))
            elif key == "originalyear":
                _set("originalyear", escape(value, markup))
            elif key == "title":
                _set("title", value)
            elif key == "totaldiscs":
                _set("totaldiscs", escape(value, markup))
            elif key == "year":
                _set("year", escape(value, markup))

        return cls(available=True, **fields)
