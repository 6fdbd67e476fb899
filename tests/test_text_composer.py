from mpv_notify_osd.core.metadata import TrackMetadata
from mpv_notify_osd.core.options import OptionKey, OptionSet
from mpv_notify_osd.core.properties import ObservedStateTable, Prop
from mpv_notify_osd.core.text_composer import (
    PerfStats,
    compose_body,
    compose_summary,
    hhmmss,
    lround,
)


def _state(**values):
    table = ObservedStateTable()
    for name, value in values.items():
        table.update(Prop[name.upper()], value)
    return table


def _playing(**extra):
    values = dict(time_pos=75.4, duration=3725.0, percent_pos=2.2, speed=1.0, volume=100)
    values.update(extra)
    return _state(**values)


def test_summary_prefers_artist_and_title():
    metadata = TrackMetadata.from_node({"artist": "Artist", "title": "Song"})
    assert compose_summary(_state(media_title="file.flac"), metadata) == "Artist - Song"

    partial = TrackMetadata.from_node({"title": "Song"})
    assert compose_summary(_state(media_title="file.flac"), partial) == "file.flac"
    assert compose_summary(_state(), TrackMetadata()) == "No file"


def test_helpers():
    assert hhmmss(3725) == "01:02:05"
    assert lround(2.5) == 3
    assert lround(-2.5) == -3
    assert lround(2.49) == 2


def test_status_line_while_playing():
    body = compose_body(_playing(), TrackMetadata(), OptionSet())
    assert body == "▶ 00:01:15 / 01:02:05 (2%)"


def test_status_glyph_precedence():
    options = OptionSet()
    assert compose_body(_playing(pause=True), TrackMetadata(), options).startswith("⏸")
    assert compose_body(_playing(pause=True, seeking=True), TrackMetadata(), options).startswith("⏲")
    assert compose_body(_playing(play_direction="backward"), TrackMetadata(), options).startswith("◀")


def test_status_decorations():
    state = _playing(
        playlist_pos=2,
        playlist_count=12,
        loop_file="inf",
        speed=1.5,
        mute=True,
        volume=80,
    )
    body = compose_body(state, TrackMetadata(), OptionSet())
    assert body == "(03/12) ▶ 00:01:15 / 01:02:05 (2%) \U0001f501 (1.50x) \U0001f507 (\U0001f50a 80%)"


def test_no_time_when_idle_or_slideshow():
    assert compose_body(_playing(idle_active=True), TrackMetadata(), OptionSet()) == "▶"

    state = _playing(image_detected=True, image_display_duration=5.0)
    assert compose_body(state, TrackMetadata(), OptionSet()) == "▶ (ss: 5s)"


def test_keep_open_auto_marker():
    state = _playing(keep_open="yes", image_display_duration=float("inf"))
    assert compose_body(state, TrackMetadata(), OptionSet()).endswith(" (auto)")

    state = _playing(keep_open="always")
    assert not compose_body(state, TrackMetadata(), OptionSet()).endswith(" (auto)")


def test_chapter_edition_album_and_disc_lines():
    state = _playing(chapter=1, chapters=5, chapter_title="Intro", edition=0, editions=2)
    metadata = TrackMetadata.from_node(
        {
            "album": "LP",
            "album_artist": "Band",
            "date": "2001-02-03",
            "disc": "1",
            "totaldiscs": "2",
        }
    )
    lines = compose_body(state, metadata, OptionSet()).split("\n")
    assert lines[1:] == ["Chapter: (2) Intro / 5", "Edition: 1 / 2", "Band - LP (2001)", "Disc: 1 / 2"]


def test_single_disc_and_date_only():
    metadata = TrackMetadata.from_node({"year": "1987", "disc": "1", "disctotal": "1"})
    lines = compose_body(_playing(), metadata, OptionSet()).split("\n")
    assert lines[1:] == ["Date: 1987"]


def test_end_of_playlist_in_bold_with_markup():
    state = _playing(eof_reached=True, playlist_pos=2, playlist_count=3)
    assert compose_body(state, TrackMetadata(), OptionSet(), markup=True).endswith("\n<b>end of playlist</b>")

    state = _playing(eof_reached=True, playlist_pos=0, playlist_count=1)
    assert compose_body(state, TrackMetadata(), OptionSet()).endswith("\nEOF")


def test_perf_and_subtitle_lines():
    options = OptionSet({OptionKey.PERFDATA: True})
    state = _playing(sub_text="hello", sub_visibility=True)
    lines = compose_body(state, TrackMetadata(), options, perf=PerfStats(120, 3400)).split("\n")
    assert lines[1:] == [
        "Thumbnail postprocess timing (last µs): 120",
        "Previous ntf show rtt (µs): 3400",
        "hello",
    ]

    options = OptionSet({OptionKey.SEND_SUB_TEXT: False})
    assert "hello" not in compose_body(state, TrackMetadata(), options)


def test_composition_is_deterministic():
    state = _playing(pause=True, chapter=0, chapters=3)
    metadata = TrackMetadata.from_node({"artist": "A", "title": "T", "album": "B"})
    options = OptionSet()

    first = (compose_summary(state, metadata), compose_body(state, metadata, options))
    second = (compose_summary(state, metadata), compose_body(state, metadata, options))
    assert first == second
