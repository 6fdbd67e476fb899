"""Summary and body text, composed from a snapshot of player state.

Both functions are pure: the same table, metadata and options always give
the same text.
"""

from __future__ import annotations

from dataclasses import dataclass
import math

from .metadata import TrackMetadata
from .options import OptionKey, OptionSet
from .properties import ObservedStateTable, Prop

NO_FILE = "No file"

GLYPH_WAITING = "⏲"
GLYPH_PAUSED = "⏸"
GLYPH_BACKWARD = "◀"
GLYPH_PLAYING = "▶"
GLYPH_LOOP = "\U0001f501"
GLYPH_MUTED = "\U0001f507"
GLYPH_VOLUME = "\U0001f50a"

BODY_LIMIT = 4095
SUMMARY_LIMIT = 511


@dataclass(frozen=True)
class PerfStats:
    thumbnail_us: int = 0
    show_rtt_us: int = 0


def lround(value: float) -> int:
    """Round half away from zero."""
    rounded = int(math.floor(abs(value) + 0.5))
    return rounded if value >= 0 else -rounded


def percent_rounded(state: ObservedStateTable) -> int:
    value = state.get(Prop.PERCENT_POS)
    if value is None or not math.isfinite(value) or value == 0:
        return 0
    return lround(value)


def hhmmss(total_seconds: int) -> str:
    hours, rest = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def compose_summary(state: ObservedStateTable, metadata: TrackMetadata) -> str:
    if metadata.artist and metadata.title:
        return f"{metadata.artist} - {metadata.title}"[:SUMMARY_LIMIT]
    if state.truthy(Prop.MEDIA_TITLE):
        return state.get(Prop.MEDIA_TITLE)
    return NO_FILE


def _first(*values: str | None) -> str | None:
    for value in values:
        if value is not None:
            return value
    return None


def _status_line(state: ObservedStateTable) -> str:
    parts = []
    count = state.get(Prop.PLAYLIST_COUNT, 0)

    if state.available(Prop.PLAYLIST_POS) and count > 1:
        parts.append(f"({state.get(Prop.PLAYLIST_POS) + 1:02d}/{count:02d}) ")

    if state.truthy(Prop.PAUSED_FOR_CACHE) or state.truthy(Prop.SEEKING):
        parts.append(GLYPH_WAITING)
    elif state.truthy(Prop.PAUSE):
        parts.append(GLYPH_PAUSED)
    elif state.get(Prop.PLAY_DIRECTION) == "backward":
        parts.append(GLYPH_BACKWARD)
    else:
        parts.append(GLYPH_PLAYING)

    slideshow = state.truthy(Prop.IMAGE_DETECTED)
    if not state.truthy(Prop.IDLE_ACTIVE) and not slideshow and state.available(Prop.TIME_POS):
        position = hhmmss(state.get(Prop.TIME_POS))
        percent = percent_rounded(state)
        if state.available(Prop.DURATION):
            parts.append(f" {position} / {hhmmss(state.get(Prop.DURATION))} ({percent}%)")
        else:
            parts.append(f" {position} ({percent}%)")
        if state.available(Prop.LOOP_FILE) and state.get(Prop.LOOP_FILE) != "no":
            parts.append(f" {GLYPH_LOOP}")

    speed = state.get(Prop.SPEED)
    if speed is not None and speed != 1:
        parts.append(f" ({speed:.2f}x)")

    if state.truthy(Prop.MUTE):
        parts.append(f" {GLYPH_MUTED}")

    volume = state.get(Prop.VOLUME)
    if volume is not None and volume != 100:
        parts.append(f" ({GLYPH_VOLUME} {volume}%)")

    duration = state.get(Prop.IMAGE_DISPLAY_DURATION)
    if duration is None or not math.isfinite(duration) or duration == 0:
        keep_open = state.get(Prop.KEEP_OPEN)
        if not slideshow and state.truthy(Prop.KEEP_OPEN) and keep_open != "always":
            parts.append(" (auto)")
    elif slideshow:
        parts.append(f" (ss: {duration:.0f}s)")

    return "".join(parts)


def _chapter_line(state: ObservedStateTable) -> str | None:
    chapter = state.get(Prop.CHAPTER)
    chapters = state.get(Prop.CHAPTERS, 0)
    if chapter is None or chapter < 0 or chapters < 1:
        return None
    title = state.get(Prop.CHAPTER_TITLE)
    if title:
        return f"Chapter: ({chapter + 1}) {title} / {chapters}"
    return f"Chapter: {chapter + 1} / {chapters}"


def _edition_line(state: ObservedStateTable) -> str | None:
    edition = state.get(Prop.EDITION)
    editions = state.get(Prop.EDITIONS, 0)
    if edition is None or edition < 0 or editions < 2:
        return None
    return f"Edition: {edition + 1} / {editions}"


def _release_line(metadata: TrackMetadata) -> str | None:
    if metadata.album:
        artist = _first(metadata.album_artist, metadata.artist_escaped)
        date = _first(
            metadata.originalyear,
            metadata.originaldate_year,
            metadata.year,
            metadata.date_year,
        )
        line = f"{artist} - {metadata.album}" if artist else metadata.album
        return f"{line} ({date})" if date else line

    date = _first(metadata.originalyear, metadata.originaldate, metadata.year, metadata.date)
    return f"Date: {date}" if date else None


def _disc_line(metadata: TrackMetadata) -> str | None:
    total = _first(metadata.totaldiscs, metadata.disctotal, metadata.discc)
    disc = _first(metadata.disc, metadata.discnumber)
    if disc and total and total not in ("0", "1"):
        return f"Disc: {disc} / {total}"
    return None


def _end_of_playback(state: ObservedStateTable) -> str | None:
    count = state.get(Prop.PLAYLIST_COUNT, 0)
    position = state.get(Prop.PLAYLIST_POS)
    if not state.truthy(Prop.EOF_REACHED) or position is None or count <= 0 or position < 0:
        return None
    if count > 1 and position + 1 == count:
        return "end of playlist"
    return "EOF"


def compose_body(
    state: ObservedStateTable,
    metadata: TrackMetadata,
    options: OptionSet,
    markup: bool = False,
    perf: PerfStats | None = None,
) -> str:
    lines = [_status_line(state)]

    for line in (
        _chapter_line(state),
        _edition_line(state),
        _release_line(metadata),
        _disc_line(metadata),
    ):
        if line:
            lines.append(line)

    message = _end_of_playback(state)
    if message:
        lines.append(f"<b>{message}</b>" if markup else message)

    if options.truthy(OptionKey.PERFDATA):
        perf = perf or PerfStats()
        lines.append(f"Thumbnail postprocess timing (last µs): {perf.thumbnail_us}")
        lines.append(f"Previous ntf show rtt (µs): {perf.show_rtt_us}")

    if (
        options.truthy(OptionKey.SEND_SUB_TEXT)
        and state.truthy(Prop.SUB_TEXT)
        and state.truthy(Prop.SUB_VISIBILITY)
    ):
        lines.append(state.get(Prop.SUB_TEXT))

    return "\n".join(lines)[:BODY_LIMIT]
