"""mpv-notify-osd - mpv player state as a desktop notification"""

__version__ = "1.0.0"
__description__ = "mpv player state as a desktop notification with thumbnail and progress"

__all__ = ["main", "NotificationOSD", "__version__"]


def __getattr__(name: str):
    """Lazy import to avoid loading the player connection on package import.

    This allows importing mpv_notify_osd.core without a running mpv or a
    notification server, which is needed for CI/headless environments.
    """
    if name == "NotificationOSD":
        from .main import NotificationOSD

        return NotificationOSD
    if name == "main":
        from .main import main

        return main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
