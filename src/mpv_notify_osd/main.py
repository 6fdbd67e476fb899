#!/usr/bin/env python3
"""mpv-notify-osd: player state as a desktop notification"""

import logging
import signal
import sys

from .adapters.config_env import load_app_config
from .adapters.mpv_ipc import MpvIpcClient
from .core.config_model import AppConfig
from .core.engine import NotificationEngine
from .core.log_level import PACKAGE_LOGGER
from .core.loop import run_event_loop
from .core.options import OptionStore
from .core.ports import EventSourceError

logger = logging.getLogger(__name__)


def setup_logging(app_config: AppConfig) -> None:
    """Log to stderr as ``<client>: <LEVEL>: message``."""
    client = app_config.client_name.replace("%", "%%")
    logging.basicConfig(format=f"{client}: %(levelname)s: %(message)s")
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if app_config.debug else logging.ERROR)


class NotificationOSD:
    """Main application - one player connection, one notification"""

    def __init__(self, app_config: AppConfig):
        self.config = app_config
        self.client = MpvIpcClient(app_config.socket_path, app_config.client_name)
        self.engine: NotificationEngine | None = None

    def run(self) -> int:
        """Connect, subscribe and process player events until shutdown"""
        # needs PyGObject; imported here so the rest of the package works without it
        from .adapters.libnotify import LibnotifyBackend

        self.client.connect()
        self.engine = NotificationEngine(
            backend=LibnotifyBackend(),
            capture=self.client,
            source=self.client,
            options=OptionStore(self.config.client_name, self.config.script_opts_path),
            app_name=self.config.app_name,
            # DEBUG from the environment wins over mpv's msg-level
            follow_msg_level=not self.config.debug,
        )
        self.engine.start()
        logger.info("watching %s", self.config.socket_path)
        return run_event_loop(self.engine, self.client)

    def shutdown(self):
        """Clean shutdown"""
        if self.engine is not None:
            self.engine.shutdown()
            self.engine = None
        self.client.close()

    def request_shutdown(self):
        """Request application shutdown (thread-safe)"""
        self.client.interrupt()


def main() -> int:
    app_config = load_app_config()
    setup_logging(app_config)
    app = NotificationOSD(app_config)

    def signal_handler(sig, frame):
        app.request_shutdown()

    # Register signal handlers
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        return app.run()
    except EventSourceError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        app.shutdown()


if __name__ == "__main__":
    sys.exit(main())
