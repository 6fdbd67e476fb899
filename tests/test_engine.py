import numpy as np

from mpv_notify_osd.core.actions import Action, LifecycleStep
from mpv_notify_osd.core.engine import NotificationEngine
from mpv_notify_osd.core.options import OptionStore, Urgency
from mpv_notify_osd.core.ports import (
    BackendError,
    CaptureBackend,
    CaptureError,
    EventSource,
    NotificationBackend,
)
from mpv_notify_osd.core.properties import Prop
from mpv_notify_osd.core.signals import (
    ControlMessage,
    PropertyChanged,
    ScreenshotFailed,
    ScreenshotReady,
    Seeked,
    TimerExpired,
    VideoReconfigured,
)
from mpv_notify_osd.core.state_machine import LifecycleState
from mpv_notify_osd.core.timer import DebounceTimer


class _Backend(NotificationBackend):
    def __init__(self, caps=("body", "body-markup"), fail_show=0, fail_caps=False):
        self.caps = caps
        self.fail_show = fail_show
        self.fail_caps = fail_caps
        self.initted = False
        self.inits = 0
        self.handles = 0
        self.texts = {}
        self.shown = []
        self.closed = []
        self.app_name = None
        self.app_icon = None
        self.category = None
        self.urgency = None
        self.progress = None
        self.image = None

    @property
    def is_initted(self) -> bool:
        return self.initted

    def init(self, app_name: str) -> bool:
        self.initted = True
        self.inits += 1
        return True

    def uninit(self) -> None:
        self.initted = False

    def server_capabilities(self) -> set[str]:
        if self.fail_caps:
            raise BackendError("no server")
        return set(self.caps)

    def set_app_name(self, app_name: str) -> None:
        self.app_name = app_name

    def set_app_icon(self, icon) -> None:
        self.app_icon = icon

    def create(self, summary: str, body: str):
        self.handles += 1
        self.texts[self.handles] = (summary, body)
        return self.handles

    def update(self, handle, summary: str, body: str) -> None:
        self.texts[handle] = (summary, body)

    def set_category(self, handle, category) -> None:
        self.category = category

    def set_urgency(self, handle, urgency) -> None:
        self.urgency = urgency

    def set_progress(self, handle, value) -> None:
        self.progress = value

    def set_image(self, handle, image) -> None:
        self.image = image

    def show(self, handle) -> None:
        if self.fail_show:
            self.fail_show -= 1
            raise BackendError("ServiceUnknown")
        self.shown.append(self.texts[handle])

    def close(self, handle) -> None:
        self.closed.append(handle)


class _Source(EventSource):
    def __init__(self, properties=()):
        self.properties = set(properties)
        self.observed = []
        self.unobserved = []

    def next(self, timeout):
        return None

    def observe(self, prop_id: int, name: str) -> None:
        self.observed.append(name)

    def unobserve(self, prop_id: int) -> None:
        self.unobserved.append(prop_id)

    def has_property(self, name: str) -> bool:
        return name in self.properties


class _Capture(CaptureBackend):
    def __init__(self, fail=False):
        self.fail = fail
        self.requests = []

    def request_capture(self, flags: str, pixel_format: str = "rgba") -> int:
        if self.fail:
            raise CaptureError("rejected")
        self.requests.append(flags)
        return len(self.requests)


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _engine(backend=None, config_path=None, source=None, capture=None, clock=None):
    backend = backend or _Backend()
    source = source or _Source()
    capture = capture or _Capture()
    engine = NotificationEngine(
        backend,
        capture,
        source,
        OptionStore("notification_osd", config_path),
        timer=DebounceTimer(clock or _Clock()),
    )
    engine.start()
    return engine, backend, capture, source


def _feed(engine, **values):
    for name, value in values.items():
        engine.handle(PropertyChanged(Prop[name.upper()], value))


def _playing(engine, **extra):
    values = dict(metadata={"artist": "Band", "title": "Song"}, time_pos=10.0, duration=200.0)
    values.update(extra)
    _feed(engine, **values)


def _frame(width, height):
    return np.full(width * height * 4, 128, dtype=np.uint8).tobytes()


def test_startup_observes_and_creates_notification():
    engine, backend, _, source = _engine()

    assert engine.lifecycle.state is LifecycleState.CLOSED
    assert backend.texts[1] == ("No file", "▶")
    assert backend.app_name == "mpv"
    assert backend.category == "mpv"
    assert backend.urgency is Urgency.LOW
    assert "app-name" not in source.observed
    assert len(source.observed) == len(Prop) - 1
    assert not engine.pending


def test_startup_observes_app_name_when_supported():
    _, _, _, source = _engine(source=_Source({"app-name"}))
    assert "app-name" in source.observed


def test_startup_applies_option_file(tmp_path):
    path = tmp_path / "notification_osd.conf"
    path.write_text("ntf_urgency=critical\nntf_category=music\n", encoding="utf-8")

    engine, backend, _, _ = _engine(config_path=path)

    assert backend.urgency is Urgency.CRITICAL
    assert backend.category == "music"
    assert not engine.pending


def test_first_reset_opens_and_captures():
    engine, backend, capture, _ = _engine()
    _playing(engine, vid=1)

    assert engine.drain() is LifecycleStep.RESET
    assert engine.timer.armed
    assert engine.lifecycle.state is LifecycleState.OPEN
    assert backend.shown[-1][0] == "Band - Song"
    assert capture.requests == ["video"]
    assert not engine.pending


def test_pause_while_armed_updates_without_capture():
    engine, backend, capture, _ = _engine()
    _playing(engine, vid=1)
    engine.drain()
    deadline = engine.timer.deadline

    engine.handle(PropertyChanged(Prop.PAUSE, True))
    assert engine.pending.snapshot() == frozenset({Action.UPDATE})

    assert engine.drain() is LifecycleStep.UPDATE
    assert "⏸" in backend.shown[-1][1]
    assert engine.timer.deadline == deadline
    assert len(capture.requests) == 1


def test_position_without_video_does_not_capture():
    engine, backend, capture, _ = _engine()
    _playing(engine)
    engine.drain()
    assert not engine.image_enabled

    engine.handle(PropertyChanged(Prop.PERCENT_POS, 12.3))
    assert engine.drain() is LifecycleStep.UPDATE

    assert capture.requests == []
    assert backend.progress == 12
    assert "(12%)" in backend.shown[-1][1]


def test_unchanged_rounded_position_adds_no_update():
    engine, _, _, _ = _engine()
    _playing(engine, percent_pos=12.3)
    engine.drain()

    engine.handle(PropertyChanged(Prop.PERCENT_POS, 12.4))
    assert Action.UPDATE not in engine.pending


def test_focused_player_never_reaches_backend():
    engine, backend, _, _ = _engine()
    _playing(engine, focused=True)
    engine.drain()

    engine.handle(Seeked())
    _feed(engine, pause=True, volume=50)
    assert engine.drain() is LifecycleStep.NONE
    engine.handle(Seeked())
    engine.drain()

    assert backend.shown == []


def test_manual_focus_option_counts_as_focused():
    engine, backend, _, _ = _engine()
    _playing(engine, script_opts={"notification_osd-focus_manual": "yes"})

    engine.drain()
    assert backend.shown == []


def test_mouse_hover_rising_edge_closes():
    engine, backend, _, _ = _engine()
    _playing(engine)
    engine.drain()

    _feed(engine, mouse_pos={"x": 1, "y": 2, "hover": True})
    assert Action.CLOSE in engine.pending
    assert engine.drain() is LifecycleStep.CLOSE
    assert backend.closed == [1]

    _feed(engine, mouse_pos={"x": 3, "y": 2, "hover": True})
    assert Action.CLOSE not in engine.pending


def test_show_failure_reinitializes_and_recovers():
    backend = _Backend(fail_show=1)
    engine, _, _, source = _engine(backend=backend)
    observed_at_start = len(source.observed)
    _playing(engine)

    engine.drain()
    assert backend.inits == 2
    assert backend.handles == 2
    assert engine.notification == 2
    assert engine.lifecycle.state is LifecycleState.CLOSED
    assert len(source.unobserved) == observed_at_start
    assert len(source.observed) == 2 * observed_at_start
    assert backend.shown == []

    engine.handle(Seeked())
    assert engine.drain() is LifecycleStep.RESET
    assert engine.lifecycle.state is LifecycleState.OPEN
    assert backend.shown == [("Band - Song", backend.texts[2][1])]


def test_init_failure_is_retried_on_next_push():
    backend = _Backend(fail_caps=True)
    engine, _, _, _ = _engine(backend=backend)
    assert engine.notification is None
    assert not backend.initted

    backend.fail_caps = False
    _playing(engine)
    engine.drain()
    assert engine.notification == 1
    assert engine.lifecycle.state is LifecycleState.CLOSED


def test_close_then_open_keeps_it_open():
    engine, backend, _, _ = _engine()
    _playing(engine, focused=True)
    engine.drain()

    engine.handle(ControlMessage(("close",)))
    engine.handle(ControlMessage(("open",)))
    assert engine.drain() is LifecycleStep.RESET
    assert engine.force_open
    assert backend.shown


def test_open_then_close_closes():
    engine, backend, _, _ = _engine()
    _playing(engine)
    engine.drain()

    engine.handle(ControlMessage(("open",)))
    engine.handle(ControlMessage(("close",)))
    assert engine.drain() is LifecycleStep.CLOSE
    assert not engine.force_open
    assert not engine.timer.armed


def test_timer_expiry_closes_unless_forced_open():
    clock = _Clock()
    engine, backend, _, _ = _engine(clock=clock)
    _playing(engine)
    engine.drain()

    clock.now += 10
    assert engine.timer.poll_expired()
    engine.handle(TimerExpired())
    assert engine.drain() is LifecycleStep.CLOSE
    assert backend.closed == [1]

    engine.handle(ControlMessage(("open",)))
    engine.drain()
    clock.now += 10
    engine.timer.poll_expired()
    engine.handle(TimerExpired())
    assert engine.drain() is LifecycleStep.NONE
    assert backend.closed == [1]


def test_reset_rearms_full_duration():
    clock = _Clock()
    engine, _, _, _ = _engine(clock=clock)
    _playing(engine)
    engine.drain()

    clock.now += 7
    engine.handle(Seeked())
    engine.drain()
    assert engine.timer.deadline == 17


def test_last_requested_capture_wins():
    engine, backend, capture, _ = _engine()
    _playing(engine, vid=1)
    engine.drain()
    engine.handle(VideoReconfigured())
    engine.drain()
    assert len(capture.requests) == 2

    engine.handle(ScreenshotReady(1, _frame(320, 180), 320, 180, 1280))
    assert engine.image is None

    engine.handle(ScreenshotReady(2, _frame(320, 180), 320, 180, 1280))
    assert engine.image is not None
    assert (engine.image.width, engine.image.height) == (64, 36)
    assert backend.image is engine.image
    assert Action.UPDATE in engine.pending


def test_failed_capture_is_logged(caplog):
    engine, _, _, _ = _engine()
    _playing(engine, vid=1)
    engine.drain()

    with caplog.at_level("ERROR"):
        engine.handle(ScreenshotFailed(1, "boom"))
    assert "boom" in caplog.text
    assert engine.image is None


def test_rejected_capture_request_is_not_fatal():
    engine, backend, _, _ = _engine(capture=_Capture(fail=True))
    _playing(engine, vid=1)

    assert engine.drain() is LifecycleStep.RESET
    assert backend.shown


def test_going_idle_drops_thumbnail():
    engine, backend, _, _ = _engine()
    _playing(engine, vid=1)
    engine.drain()
    engine.handle(ScreenshotReady(1, _frame(320, 180), 320, 180, 1280))
    engine.drain()
    assert backend.image is not None

    _feed(engine, idle_active=True)
    engine.drain()
    assert not engine.image_enabled
    assert not engine.cache.active
    assert backend.image is None
    assert backend.progress is None


def test_runtime_overlay_pushes_changes():
    engine, backend, _, _ = _engine()
    _playing(engine)
    engine.drain()

    _feed(engine, script_opts={"notification_osd-ntf_category": "music", "notification_osd-ntf_urgency": "normal"})
    assert backend.category == "music"
    assert backend.urgency is Urgency.NORMAL
    assert Action.UPDATE in engine.pending

    _feed(engine, script_opts={"notification_osd-ntf_category": "music", "notification_osd-ntf_urgency": "normal"})
    engine.drain()
    _feed(engine, script_opts={"notification_osd-ntf_category": "music", "notification_osd-ntf_urgency": "normal"})
    assert not engine.pending


def test_reload_config_message_rereads_file(tmp_path):
    path = tmp_path / "notification_osd.conf"
    path.write_text("ntf_urgency=low\n", encoding="utf-8")
    engine, backend, _, _ = _engine(config_path=path)

    path.write_text("ntf_urgency=critical\n", encoding="utf-8")
    engine.handle(ControlMessage(("reload-config",)))
    assert backend.urgency is Urgency.CRITICAL


def test_perfdata_adds_timing_lines():
    engine, backend, _, _ = _engine()
    _playing(engine, script_opts={"notification_osd-perfdata": "yes"})
    engine.drain()

    engine.handle(Seeked())
    engine.drain()
    assert "Previous ntf show rtt (µs):" in backend.shown[-1][1]


def test_subtitles_escaped_when_server_renders_markup():
    engine, backend, _, _ = _engine()
    _playing(engine, sub_text="<i>hi</i>", sub_visibility=True)
    engine.drain()
    assert backend.shown[-1][1].endswith("\n&lt;i&gt;hi&lt;/i&gt;")

    plain, plain_backend, _, _ = _engine(backend=_Backend(caps=("body",)))
    _playing(plain, sub_text="<i>hi</i>", sub_visibility=True)
    plain.drain()
    assert plain_backend.shown[-1][1].endswith("\n<i>hi</i>")


def test_shutdown_releases_everything():
    engine, backend, _, _ = _engine()
    _playing(engine, vid=1)
    engine.drain()
    engine.handle(ScreenshotReady(1, _frame(32, 32), 32, 32, 128))

    engine.shutdown()
    assert backend.closed == [1]
    assert not backend.initted
    assert engine.notification is None
    assert not engine.timer.armed
    assert not engine.cache.active
    assert engine.lifecycle.state is LifecycleState.UNINITIALIZED

    engine.shutdown()


def test_thumbnail_size_change_clears_shown_image():
    engine, backend, _, _ = _engine()
    _playing(engine, vid=1)
    engine.drain()
    engine.handle(ScreenshotReady(1, _frame(320, 180), 320, 180, 1280))
    assert backend.image is not None

    _feed(engine, script_opts={"notification_osd-thumbnail_size": "32"})

    assert engine.image is None
    assert backend.image is None
    assert not engine.cache.active
    assert Action.CAPTURE in engine.pending


def test_check_image_without_change_shows_nothing():
    engine, backend, capture, _ = _engine()
    _playing(engine)
    engine.drain()
    assert engine.timer.armed
    shown = len(backend.shown)

    _feed(engine, script_opts={"notification_osd-send_thumbnail": "no"})
    assert engine.drain() is LifecycleStep.NONE
    _feed(engine, script_opts={"notification_osd-send_thumbnail": "yes"})
    assert engine.drain() is LifecycleStep.NONE

    assert len(backend.shown) == shown
    assert capture.requests == []
