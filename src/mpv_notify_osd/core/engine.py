"""Notification engine.

Owns every piece of mutable state: the observed-state table, the pending
action set, the option store, the debounce timer, the thumbnail cache and the
single notification handle. Signals are fed in one at a time with
``handle()``; once the current batch is consumed ``drain()`` applies the
coalesced actions.
"""

from __future__ import annotations

from dataclasses import replace
import logging
import time
from typing import Any, Callable

from .actions import (
    Action,
    CaptureRequest,
    LifecycleStep,
    PendingActions,
    decide_capture,
    decide_lifecycle,
    is_visible,
)
from .log_level import apply_log_level, parse_msg_level
from .metadata import TrackMetadata
from .options import OPTION_TRIGGERS, BackendRefresh, OptionKey, OptionStore
from .ports import BackendError, CaptureBackend, CaptureError, EventSource, NotificationBackend
from .properties import OBSERVE_IF_SUPPORTED, PROPERTY_SPECS, ObservedStateTable, Prop
from .signals import (
    ConfigReloadRequested,
    ControlMessage,
    PropertyChanged,
    ScreenshotFailed,
    ScreenshotReady,
    Seeked,
    Shutdown,
    Signal,
    TimerExpired,
    VideoReconfigured,
)
from .state_machine import LifecycleEvent, LifecycleState, LifecycleStateMachine
from .text_composer import PerfStats, compose_body, compose_summary, lround, percent_rounded
from .thumbnail import ThumbnailCache, ThumbnailImage
from .timer import DebounceTimer

logger = logging.getLogger(__name__)


class NotificationEngine:
    """Drives one notification from player signals."""

    def __init__(
        self,
        backend: NotificationBackend,
        capture: CaptureBackend,
        source: EventSource,
        options: OptionStore,
        app_name: str = "mpv",
        follow_msg_level: bool = True,
        timer: DebounceTimer | None = None,
        cache: ThumbnailCache | None = None,
        clock: Callable[[], int] = time.perf_counter_ns,
    ):
        self._backend = backend
        self._capture = capture
        self._source = source
        self.options = options
        self.app_name = app_name
        self.follow_msg_level = follow_msg_level
        self.timer = timer or DebounceTimer()
        self.cache = cache or ThumbnailCache()
        self._clock = clock

        self.state = ObservedStateTable()
        self.metadata = TrackMetadata()
        self.pending = PendingActions()
        self.lifecycle = LifecycleStateMachine()

        self.notification: Any = None
        self.markup = False
        self.force_open = False
        self.image_enabled = False
        self.image: ThumbnailImage | None = None
        self.mouse_hovered = False
        self.progress: int | None = None
        self.perf = PerfStats()

        self.summary = ""
        self.body = ""
        self._rewrite_summary = True
        self._rewrite_body = True

        self._percent = 0
        self._capture_token: int | None = None
        self._app_name_supported = False

        self._property_handlers: dict[Prop, Callable[[Any], None]] = {
            Prop.APP_NAME: self._on_app_name,
            Prop.IDLE_ACTIVE: self._on_idle_active,
            Prop.IMAGE_DETECTED: self._on_progress_input,
            Prop.METADATA: self._on_metadata,
            Prop.MOUSE_POS: self._on_mouse_pos,
            Prop.MSG_LEVEL: self._on_msg_level,
            Prop.PERCENT_POS: self._on_percent_pos,
            Prop.PLAYLIST_COUNT: self._on_progress_input,
            Prop.PLAYLIST_POS: self._on_progress_input,
            Prop.SCRIPT_OPTS: self._on_script_opts,
        }

    # -- lifecycle of the engine itself ---------------------------------------

    def start(self) -> None:
        """Connect the backend, load options and subscribe to the player."""
        self._write_summary()
        self._write_body()

        self._ntf_init()

        self._apply_option_changes(self.options.reload())
        self.pending.clear()

        self._app_name_supported = self._source.has_property(PROPERTY_SPECS[Prop.APP_NAME].name)
        self._observe_all(resubscribe=False)

    def shutdown(self) -> None:
        """Release everything; safe to call in any state."""
        self.cache.destroy()
        self.image = None
        self._ntf_uninit()
        self.timer.disarm()
        self._capture_token = None
        self.pending.clear()
        self.state.clear()
        self.metadata = TrackMetadata()
        logger.debug("engine shut down")

    # -- signal intake ---------------------------------------------------------

    def handle(self, signal: Signal) -> None:
        """Fold one signal into the state table and the pending action set."""
        if isinstance(signal, PropertyChanged):
            self._on_property(signal)
        elif isinstance(signal, TimerExpired):
            logger.debug("expire timer expired")
            self.pending.add(Action.CLOSE)
        elif isinstance(signal, ScreenshotReady):
            self._on_screenshot(signal)
        elif isinstance(signal, ScreenshotFailed):
            if signal.token == self._capture_token:
                self._capture_token = None
                logger.error("screenshot failed: %s", signal.error or "unknown error")
        elif isinstance(signal, ControlMessage):
            self._on_control_message(signal)
        elif isinstance(signal, ConfigReloadRequested):
            self._reload_config()
        elif isinstance(signal, VideoReconfigured):
            logger.debug("video reconfig")
            self.pending.add(Action.FORCED_CAPTURE)
        elif isinstance(signal, Seeked):
            logger.debug("seeked")
            self.pending.add(Action.RESET)
        elif isinstance(signal, Shutdown):
            logger.debug("shutdown requested")

    def _on_property(self, signal: PropertyChanged) -> None:
        result = self.state.update(signal.prop, signal.value)
        self.pending.update(result.actions)
        self._rewrite_summary |= result.rewrite_summary
        self._rewrite_body |= result.rewrite_body

        handler = self._property_handlers.get(signal.prop)
        if handler is not None:
            handler(signal.value)

    def _on_app_name(self, value: Any) -> None:
        if self._backend.is_initted:
            self._backend.set_app_name(self.state.get(Prop.APP_NAME) or self.app_name)

    def _on_idle_active(self, value: Any) -> None:
        self._refresh_progress()
        self._rewrite_body = True

    def _on_progress_input(self, value: Any) -> None:
        self._refresh_progress()

    def _on_metadata(self, value: Any) -> None:
        self.metadata = TrackMetadata.from_node(value, self.markup)

    def _on_mouse_pos(self, value: Any) -> None:
        hovered = bool(value.get("hover")) if isinstance(value, dict) else False
        if hovered and not self.mouse_hovered:
            self.pending.add(Action.CLOSE)
        self.mouse_hovered = hovered

    def _on_msg_level(self, value: Any) -> None:
        if not self.follow_msg_level:
            return
        apply_log_level(parse_msg_level(self.state.get(Prop.MSG_LEVEL), self.options.client_name))

    def _on_percent_pos(self, value: Any) -> None:
        # cover art does not change with the position
        if not self.state.truthy(Prop.VIDEO_IS_IMAGE):
            self.pending.add(Action.CAPTURE)

        rounded = percent_rounded(self.state)
        if rounded != self._percent:
            self._percent = rounded
            self._refresh_progress()
            self.pending.add(Action.UPDATE)
            self._rewrite_body = True

    def _on_script_opts(self, value: Any) -> None:
        self._apply_option_changes(self.options.set_overlay(value))

    def _on_control_message(self, message: ControlMessage) -> None:
        if message.kind == "close":
            self.pending.add(Action.CLOSE)
            self.force_open = False
        elif message.kind == "open":
            self.pending.add(Action.RESET)
            self.force_open = True
        elif message.kind == "reload-config":
            self._reload_config()
        else:
            logger.debug("ignoring client message %s", message.args)

    def _reload_config(self) -> None:
        logger.info("reloading configuration")
        self._apply_option_changes(self.options.reload())

    def _on_screenshot(self, signal: ScreenshotReady) -> None:
        if signal.token != self._capture_token:
            logger.debug("dropping superseded screenshot %d", signal.token)
            return
        self._capture_token = None

        if not self.image_enabled:
            return

        options = self.options
        if not self.cache.ensure_context(
            signal.width,
            signal.height,
            signal.stride,
            options[OptionKey.THUMBNAIL_SIZE],
            options[OptionKey.THUMBNAIL_SCALING],
            options[OptionKey.DISABLE_SCALING],
        ):
            self._drop_image()
            return

        measure = options.truthy(OptionKey.PERFDATA)
        image = self.cache.process(signal.data, measure=measure)
        if image is None:
            self._drop_image()
            return

        if measure:
            self.perf = replace(self.perf, thumbnail_us=self.cache.last_elapsed_us)
            self._rewrite_body = True

        self.image = image
        if self.notification is not None:
            self._backend.set_image(self.notification, image)
        self.pending.add(Action.UPDATE)

    # -- option changes --------------------------------------------------------

    def _apply_option_changes(self, changed: list[OptionKey]) -> None:
        for key in changed:
            trigger = OPTION_TRIGGERS[key]
            self.pending.update(trigger.actions)
            if trigger.refresh is not None:
                self._refresh_backend(trigger.refresh)
            if trigger.drop_thumbnail:
                self._drop_image()
            if trigger.rewrite_body:
                self._rewrite_body = True
            if trigger.capture_if_enabled and self.options.truthy(key):
                self.pending.add(Action.CAPTURE)

    def _refresh_backend(self, refresh: BackendRefresh) -> None:
        if refresh is BackendRefresh.PROGRESS:
            self._refresh_progress()
        elif refresh is BackendRefresh.APP_ICON:
            if self._backend.is_initted:
                self._backend.set_app_icon(self.options[OptionKey.NTF_APP_ICON] or None)
        elif self.notification is None:
            return
        elif refresh is BackendRefresh.CATEGORY:
            self._backend.set_category(self.notification, self.options[OptionKey.NTF_CATEGORY] or None)
        elif refresh is BackendRefresh.URGENCY:
            self._backend.set_urgency(self.notification, self.options[OptionKey.NTF_URGENCY])

    def _progress_hint(self) -> int | None:
        if self.state.truthy(Prop.IDLE_ACTIVE) or not self.options.truthy(OptionKey.SEND_PROGRESS):
            return None

        if self.state.truthy(Prop.IMAGE_DETECTED):
            # slideshow: position within the playlist
            position = self.state.get(Prop.PLAYLIST_POS)
            count = self.state.get(Prop.PLAYLIST_COUNT, 0)
            if position is None or count <= 1:
                return None
            return lround((position + 1) / count * 100)

        return self._percent

    def _refresh_progress(self) -> None:
        self.progress = self._progress_hint()
        if self.notification is not None:
            self._backend.set_progress(self.notification, self.progress)

    # -- drain -----------------------------------------------------------------

    @property
    def focused(self) -> bool:
        return (
            self.state.truthy(Prop.FOCUSED)
            or self.mouse_hovered
            or self.options.truthy(OptionKey.FOCUS_MANUAL)
        )

    @property
    def visible(self) -> bool:
        return is_visible(
            focused=self.focused,
            force_open=self.force_open,
            metadata_available=self.metadata.available,
            time_pos_available=self.state.available(Prop.TIME_POS),
            idle=self.state.truthy(Prop.IDLE_ACTIVE),
        )

    def drain(self) -> LifecycleStep:
        """Apply the coalesced actions of one cycle; always empties the set."""
        try:
            if Action.CHECK_IMAGE in self.pending:
                self._check_image()

            capture = decide_capture(self.pending)
            if capture is CaptureRequest.FORCED:
                self._queue_capture(force=True)
            elif capture is CaptureRequest.NORMAL:
                self._queue_capture(force=False)

            step = decide_lifecycle(
                self.pending,
                force_open=self.force_open,
                visible=self.visible,
                timer_armed=self.timer.armed,
            )
            if step is LifecycleStep.CLOSE:
                self.timer.disarm()
                self._ntf_close()
            elif step is LifecycleStep.RESET:
                self._ntf_rst()
            elif step is LifecycleStep.UPDATE:
                self._ntf_upd()
            return step
        finally:
            self.pending.clear()

    def _check_image(self) -> None:
        idle = self.state.truthy(Prop.IDLE_ACTIVE)
        has_video = self.state.available(Prop.VID)
        # vid and metadata both vanish for a moment between files
        switching_track = not idle and not has_video and not self.metadata.available

        if (
            idle
            or not self.options.truthy(OptionKey.SEND_THUMBNAIL)
            or (not has_video and not self.state.truthy(Prop.LAVFI_COMPLEX) and not switching_track)
        ):
            if self.image_enabled:
                logger.debug("thumbnails disabled")
                self.image_enabled = False
                self._drop_image()
                self.pending.add(Action.UPDATE)
        else:
            if not self.image_enabled:
                logger.debug("thumbnails enabled")
            self.image_enabled = True

    def _drop_image(self) -> None:
        self.cache.destroy()
        if self.image is None:
            return
        self.image = None
        if self.notification is not None:
            self._backend.set_image(self.notification, None)

    def _queue_capture(self, force: bool) -> None:
        if not self.image_enabled:
            return
        if not self.timer.armed and not force and not self.force_open:
            return

        if self._capture_token is not None:
            logger.debug("superseding screenshot %d", self._capture_token)
            self._capture_token = None

        try:
            self._capture_token = self._capture.request_capture(
                self.options[OptionKey.SCREENSHOT_FLAGS]
            )
        except CaptureError as exc:
            logger.error("failed to queue screenshot: %s", exc)
            return
        logger.debug("queued screenshot %d", self._capture_token)

    # -- notification backend --------------------------------------------------

    def _write_summary(self) -> None:
        self.summary = compose_summary(self.state, self.metadata)

    def _write_body(self) -> None:
        self.body = compose_body(self.state, self.metadata, self.options.active, self.markup, self.perf)

    def _ntf_init(self) -> bool:
        backend = self._backend
        if not backend.init(self.app_name):
            logger.error("notification backend init failed")
            return False

        try:
            capabilities = backend.server_capabilities()
        except BackendError as exc:
            logger.error("failed to get server caps: %s", exc)
            backend.uninit()
            return False

        markup = "body-markup" in capabilities
        if markup != self.markup:
            self.markup = markup
            self.state.escape_markup = markup
            self.metadata = TrackMetadata.from_node(self.state.get(Prop.METADATA), markup)
            self._rewrite_body = True
            self._write_body()

        backend.set_app_name(self.state.get(Prop.APP_NAME) or self.app_name)
        backend.set_app_icon(self.options[OptionKey.NTF_APP_ICON] or None)

        try:
            self.notification = backend.create(self.summary, self.body)
        except BackendError as exc:
            logger.error("failed to create notification: %s", exc)
            self._ntf_uninit()
            return False

        self.progress = self._progress_hint()
        backend.set_progress(self.notification, self.progress)
        backend.set_category(self.notification, self.options[OptionKey.NTF_CATEGORY] or None)
        backend.set_urgency(self.notification, self.options[OptionKey.NTF_URGENCY])
        backend.set_image(self.notification, self.image)

        self.lifecycle.transition(LifecycleEvent.BACKEND_READY)
        logger.debug("notification backend ready (markup: %s)", markup)
        return True

    def _ntf_uninit(self) -> None:
        self._ntf_close()
        self.notification = None
        if self._backend.is_initted:
            self._backend.uninit()
        if self.lifecycle.state is not LifecycleState.UNINITIALIZED:
            self.lifecycle.transition(LifecycleEvent.TEARDOWN)

    def _ntf_reinit(self) -> None:
        """Tear the backend down and bring it back up.

        A restarted notification server leaves the old connection failing
        every call; only a full reinit recovers. Properties are observed
        again so escaping follows the new server's markup support and the
        next change retries the show.
        """
        self._ntf_uninit()
        if self._ntf_init():
            self._observe_all(resubscribe=True)

    def _observe_all(self, resubscribe: bool) -> None:
        for prop, spec in PROPERTY_SPECS.items():
            if prop in OBSERVE_IF_SUPPORTED and not self._app_name_supported:
                continue
            if resubscribe:
                self._source.unobserve(prop)
            self._source.observe(prop, spec.name)

    def _ntf_close(self) -> None:
        if self.notification is None:
            return
        logger.debug("notification close")
        try:
            self._backend.close(self.notification)
        except BackendError as exc:
            logger.error("failed to close notification: %s", exc)
        if self.lifecycle.state in (LifecycleState.OPEN, LifecycleState.CLOSED):
            self.lifecycle.transition(LifecycleEvent.CLOSE)

    def _ntf_upd(self) -> None:
        if self.notification is None:
            self._ntf_reinit()
            return

        rewritten = self._rewrite_summary or self._rewrite_body
        if self._rewrite_summary:
            self._write_summary()
        if self._rewrite_body:
            self._write_body()
        self._rewrite_summary = False
        self._rewrite_body = False

        measure = self.options.truthy(OptionKey.PERFDATA)
        started = self._clock() if measure else 0

        logger.debug("sending notification")
        try:
            if rewritten:
                self._backend.update(self.notification, self.summary, self.body)
            self._backend.show(self.notification)
        except BackendError as exc:
            logger.error("failed to show notification: %s", exc)
            self.lifecycle.transition(LifecycleEvent.FAIL)
            self._ntf_reinit()
        else:
            self.lifecycle.transition(LifecycleEvent.SHOW)

        if measure:
            self.perf = replace(self.perf, show_rtt_us=(self._clock() - started) // 1000)
            self._rewrite_body = True

    def _ntf_rst(self) -> None:
        logger.debug("notification reset")
        was_armed = self.timer.armed
        self.timer.disarm()
        self.timer.arm(self.options[OptionKey.EXPIRE_TIMEOUT])
        if not was_armed:
            self._queue_capture(force=False)
        self._ntf_upd()
