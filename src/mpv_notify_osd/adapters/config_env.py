"""Env configuration adapter producing a structured AppConfig."""

from __future__ import annotations

from ..config import config as env_config
from ..core.config_model import AppConfig


def load_app_config() -> AppConfig:
    return AppConfig(
        debug=env_config.DEBUG,
        socket_path=env_config.SOCKET_PATH,
        client_name=env_config.CLIENT_NAME,
        app_name=env_config.APP_NAME,
        script_opts_path=env_config.script_opts_path(),
    )
