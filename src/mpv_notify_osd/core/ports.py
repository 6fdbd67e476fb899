"""Core ports (interfaces) for the notification OSD.

These protocols define the boundaries between the engine and the player
connection / desktop notification service. They are intentionally small so
the engine can be driven by in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Protocol, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from .options import Urgency
    from .signals import Signal
    from .thumbnail import ThumbnailImage


class BackendError(RuntimeError):
    """The notification service rejected or failed a request."""


class CaptureError(RuntimeError):
    """A screenshot could not be requested or decoded."""


class EventSourceError(RuntimeError):
    """The player connection failed."""


@runtime_checkable
class EventSource(Protocol):
    """Player signals plus property observation."""

    def next(self, timeout: float | None) -> "Signal | None":
        """Block up to ``timeout`` seconds (forever when None) for a signal."""

    def observe(self, prop_id: int, name: str) -> None:
        """Start observing ``name``; changes arrive as PropertyChanged."""

    def unobserve(self, prop_id: int) -> None:
        """Stop observing the property registered under ``prop_id``."""

    def has_property(self, name: str) -> bool:
        """Whether the player knows the property ``name``."""


@runtime_checkable
class CaptureBackend(Protocol):
    """Asynchronous frame capture."""

    def request_capture(self, flags: str, pixel_format: str = "rgba") -> int:
        """Request one frame; the result arrives later tagged with the token."""


@runtime_checkable
class NotificationBackend(Protocol):
    """Desktop notification service holding a single notification."""

    def init(self, app_name: str) -> bool:
        """Connect to the service."""

    def uninit(self) -> None:
        """Disconnect from the service."""

    @property
    def is_initted(self) -> bool:
        """Whether ``init`` succeeded and ``uninit`` was not called since."""

    def server_capabilities(self) -> set[str]:
        """Capabilities advertised by the server; raises BackendError."""

    def set_app_name(self, app_name: str) -> None:
        """Application name shown by the server."""

    def set_app_icon(self, icon: str | None) -> None:
        """Application icon name or path; None clears it."""

    def create(self, summary: str, body: str) -> Any:
        """Create a notification object and return its handle."""

    def update(self, handle: Any, summary: str, body: str) -> None:
        """Replace the summary and body of an existing notification."""

    def set_category(self, handle: Any, category: str | None) -> None:
        """Category hint; None removes it."""

    def set_urgency(self, handle: Any, urgency: "Urgency") -> None:
        """Urgency hint."""

    def set_progress(self, handle: Any, value: int | None) -> None:
        """Progress bar hint in percent; None removes it."""

    def set_image(self, handle: Any, image: "ThumbnailImage | None") -> None:
        """Image hint; None removes it."""

    def show(self, handle: Any) -> None:
        """Send the notification to the server; raises BackendError."""

    def close(self, handle: Any) -> None:
        """Ask the server to close the notification; raises BackendError."""
