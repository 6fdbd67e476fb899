"""Core configuration model (structured view)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppConfig:
    debug: bool
    socket_path: str
    client_name: str
    app_name: str
    script_opts_path: Path | None
