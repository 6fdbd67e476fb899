"""Configuration for mpv-notify-osd"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _mpv_config_dir() -> Path:
    mpv_home = os.getenv("MPV_HOME")
    if mpv_home:
        return Path(mpv_home).expanduser()
    xdg = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / "mpv"


class Config:
    """Process-level settings; per-player options live in script-opts"""

    # mpv --input-ipc-server path
    SOCKET_PATH = os.getenv("MPV_NOTIFY_SOCKET", "/tmp/mpvsocket")

    # Namespace for script-opts overlay keys, msg-level and the option file
    CLIENT_NAME = os.getenv("MPV_NOTIFY_CLIENT_NAME", "notification_osd")

    # Used until mpv reports its own app-name
    APP_NAME = os.getenv("MPV_NOTIFY_APP_NAME", "mpv")

    MPV_CONFIG_DIR = _mpv_config_dir()

    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    @classmethod
    def script_opts_path(cls) -> Path:
        return cls.MPV_CONFIG_DIR / "script-opts" / f"{cls.CLIENT_NAME}.conf"


config = Config()
