"""libnotify presentation backend (PyGObject)."""

from __future__ import annotations

import logging

import gi

gi.require_version("Notify", "0.7")
gi.require_version("GdkPixbuf", "2.0")

from gi.repository import GdkPixbuf, GLib, Notify

from ..core.options import Urgency
from ..core.ports import BackendError
from ..core.thumbnail import ThumbnailImage

logger = logging.getLogger(__name__)

_URGENCY = {
    Urgency.LOW: Notify.Urgency.LOW,
    Urgency.NORMAL: Notify.Urgency.NORMAL,
    Urgency.CRITICAL: Notify.Urgency.CRITICAL,
}


class LibnotifyBackend:
    """NotificationBackend on top of libnotify's global connection."""

    def init(self, app_name: str) -> bool:
        return bool(Notify.init(app_name))

    def uninit(self) -> None:
        if Notify.is_initted():
            Notify.uninit()

    @property
    def is_initted(self) -> bool:
        return bool(Notify.is_initted())

    def server_capabilities(self) -> set[str]:
        capabilities = Notify.get_server_caps()
        if capabilities is None:
            raise BackendError("notification server did not report capabilities")
        return set(capabilities)

    def set_app_name(self, app_name: str) -> None:
        Notify.set_app_name(app_name)

    def set_app_icon(self, icon: str | None) -> None:
        Notify.set_app_icon(icon)

    def create(self, summary: str, body: str) -> Notify.Notification:
        notification = Notify.Notification.new(summary, body, None)
        if notification is None:
            raise BackendError("failed to create notification")
        # closing is driven by the debounce timer
        notification.set_timeout(Notify.EXPIRES_NEVER)
        return notification

    def update(self, handle: Notify.Notification, summary: str, body: str) -> None:
        handle.update(summary, body, None)

    def set_category(self, handle: Notify.Notification, category: str | None) -> None:
        if category:
            handle.set_category(category)
        else:
            # set_category cannot unset the hint
            handle.set_hint("category", None)

    def set_urgency(self, handle: Notify.Notification, urgency: Urgency) -> None:
        handle.set_urgency(_URGENCY[urgency])

    def set_progress(self, handle: Notify.Notification, value: int | None) -> None:
        handle.set_hint("value", GLib.Variant("i", value) if value is not None else None)

    def set_image(self, handle: Notify.Notification, image: ThumbnailImage | None) -> None:
        if image is None:
            handle.set_hint("image-data", None)
            return
        # libnotify serializes the pixbuf right away, so the cache buffer can be reused
        pixbuf = GdkPixbuf.Pixbuf.new_from_bytes(
            GLib.Bytes.new(image.tobytes()),
            GdkPixbuf.Colorspace.RGB,
            True,
            8,
            image.width,
            image.height,
            image.stride,
        )
        handle.set_image_from_pixbuf(pixbuf)

    def show(self, handle: Notify.Notification) -> None:
        try:
            handle.show()
        except GLib.Error as exc:
            raise BackendError(exc.message) from exc

    def close(self, handle: Notify.Notification) -> None:
        try:
            handle.close()
        except GLib.Error as exc:
            raise BackendError(exc.message) from exc
