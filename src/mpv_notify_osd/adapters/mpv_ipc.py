"""mpv JSON IPC adapter.

Connects to the socket given to mpv with ``--input-ipc-server``. A reader
thread turns incoming lines into signals and puts them on a queue, the only
channel between the reader and the event loop. Synchronous commands wait on
a ``concurrent.futures.Future`` keyed by ``request_id``.

Screenshots are taken with the asynchronous ``screenshot-to-file`` command;
the reader decodes the file with Pillow and hands the RGBA rows over as a
ScreenshotReady signal.
"""

from __future__ import annotations

from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
import itertools
import json
import logging
import os
from pathlib import Path
import queue
import socket
import tempfile
import threading
from typing import Any

import numpy as np
from PIL import Image

from ..core.ports import CaptureError, EventSourceError
from ..core.properties import Prop
from ..core.signals import (
    ControlMessage,
    PropertyChanged,
    ScreenshotFailed,
    ScreenshotReady,
    Seeked,
    Shutdown,
    Signal,
    VideoReconfigured,
)

logger = logging.getLogger(__name__)

# mpv leaves an id of 0 out of property-change events
OBSERVE_ID_OFFSET = 1


class MpvCommandError(RuntimeError):
    """mpv answered a command with an error status."""


@dataclass(frozen=True)
class _Disconnected:
    error: str


def decode_line(line: bytes) -> dict | None:
    """Parse one IPC line; malformed lines are logged and skipped."""
    line = line.strip()
    if not line:
        return None
    try:
        message = json.loads(line)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("undecodable IPC line: %s", exc)
        return None
    return message if isinstance(message, dict) else None


def event_to_signal(message: dict, client_name: str) -> Signal | None:
    """Map an mpv event message onto a core signal."""
    event = message.get("event")
    if event == "property-change":
        try:
            prop = Prop(int(message["id"]) - OBSERVE_ID_OFFSET)
        except (KeyError, TypeError, ValueError):
            return None
        return PropertyChanged(prop, message.get("data"))
    if event == "client-message":
        args = tuple(str(arg) for arg in message.get("args") or ())
        # "script-message <client> open" targets this client explicitly
        if len(args) > 1 and args[0] == client_name:
            args = args[1:]
        return ControlMessage(args) if args else None
    if event == "video-reconfig":
        return VideoReconfigured()
    if event == "seek":
        return Seeked()
    if event == "shutdown":
        return Shutdown()
    return None


def load_screenshot(path: Path, token: int) -> ScreenshotReady:
    """Decode a screenshot file into tightly packed RGBA rows."""
    with Image.open(path) as image:
        rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8)
    height, width = rgba.shape[:2]
    return ScreenshotReady(token, rgba.tobytes(), width, height, width * 4)


class MpvIpcClient:
    """EventSource and CaptureBackend over mpv's JSON IPC socket."""

    def __init__(self, socket_path: str, client_name: str, command_timeout: float = 5.0):
        self.socket_path = socket_path
        self.client_name = client_name
        self.command_timeout = command_timeout

        self._sock: socket.socket | None = None
        self._reader: threading.Thread | None = None
        # put() is reentrant, so signal handlers may call interrupt()
        self._signals: queue.SimpleQueue = queue.SimpleQueue()
        self._send_lock = threading.Lock()
        self._lock = threading.Lock()
        self._request_ids = itertools.count(1)
        self._replies: dict[int, Future] = {}
        self._captures: dict[int, Path] = {}

    # -- connection ------------------------------------------------------------

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(self.socket_path)
        except OSError as exc:
            sock.close()
            raise EventSourceError(f"cannot connect to {self.socket_path}: {exc}") from exc

        self._sock = sock
        self._reader = threading.Thread(target=self._read_loop, name="mpv-ipc-reader", daemon=True)
        self._reader.start()
        logger.info("connected to %s", self.socket_path)

    def close(self) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()

        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=2.0)
        self._reader = None

        with self._lock:
            paths = list(self._captures.values())
            self._captures.clear()
        for path in paths:
            path.unlink(missing_ok=True)

    def interrupt(self) -> None:
        """Wake the event loop with a Shutdown signal (thread-safe)."""
        self._signals.put(Shutdown())

    def _send(self, payload: dict) -> None:
        if self._sock is None:
            raise EventSourceError("not connected")
        data = json.dumps(payload).encode("utf-8") + b"\n"
        try:
            with self._send_lock:
                self._sock.sendall(data)
        except OSError as exc:
            raise EventSourceError(f"IPC write failed: {exc}") from exc

    # -- reader thread ---------------------------------------------------------

    def _read_loop(self) -> None:
        sock = self._sock
        error = None
        try:
            with sock.makefile("rb") as stream:
                for line in stream:
                    message = decode_line(line)
                    if message is not None:
                        self._dispatch(message)
        except (OSError, ValueError) as exc:
            error = f"IPC read failed: {exc}"

        self._fail_pending(error or "connection closed by mpv")
        if self._sock is None:
            return
        # mpv closes the socket on quit without always sending "shutdown" first
        self._signals.put(Shutdown() if error is None else _Disconnected(error))

    def _dispatch(self, message: dict) -> None:
        request_id = message.get("request_id")
        if "event" not in message and isinstance(request_id, int):
            self._on_reply(request_id, message)
            return

        signal = event_to_signal(message, self.client_name)
        if signal is not None:
            self._signals.put(signal)

    def _on_reply(self, request_id: int, message: dict) -> None:
        with self._lock:
            future = self._replies.pop(request_id, None)
            capture = self._captures.pop(request_id, None)

        error = message.get("error", "success")
        if future is not None:
            if error == "success":
                future.set_result(message.get("data"))
            else:
                future.set_exception(MpvCommandError(error))
            return

        if capture is not None:
            self._signals.put(self._finish_capture(request_id, capture, error))

    def _finish_capture(self, token: int, path: Path, error: str) -> Signal:
        try:
            if error != "success":
                return ScreenshotFailed(token, error)
            return load_screenshot(path, token)
        except (OSError, ValueError) as exc:
            return ScreenshotFailed(token, str(exc))
        finally:
            path.unlink(missing_ok=True)

    def _fail_pending(self, reason: str) -> None:
        with self._lock:
            futures = list(self._replies.values())
            self._replies.clear()
        for future in futures:
            future.set_exception(EventSourceError(reason))

    # -- commands --------------------------------------------------------------

    def command(self, *args: Any) -> Any:
        """Run a command and wait for its reply data."""
        request_id = next(self._request_ids)
        future: Future = Future()
        with self._lock:
            self._replies[request_id] = future
        try:
            self._send({"command": list(args), "request_id": request_id})
            return future.result(timeout=self.command_timeout)
        except FutureTimeout as exc:
            raise EventSourceError(f"no reply to {args[0]!r}") from exc
        finally:
            with self._lock:
                self._replies.pop(request_id, None)

    # -- EventSource -----------------------------------------------------------

    def next(self, timeout: float | None) -> Signal | None:
        try:
            if timeout is not None and timeout <= 0:
                item = self._signals.get_nowait()
            else:
                item = self._signals.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, _Disconnected):
            raise EventSourceError(item.error)
        return item

    def observe(self, prop_id: int, name: str) -> None:
        try:
            self.command("observe_property", int(prop_id) + OBSERVE_ID_OFFSET, name)
        except MpvCommandError as exc:
            logger.error("failed to observe property %s: %s", name, exc)

    def unobserve(self, prop_id: int) -> None:
        try:
            self.command("unobserve_property", int(prop_id) + OBSERVE_ID_OFFSET)
        except MpvCommandError as exc:
            logger.error("failed to unobserve property %d: %s", prop_id, exc)

    def has_property(self, name: str) -> bool:
        try:
            properties = self.command("get_property", "property-list")
        except MpvCommandError:
            return False
        return isinstance(properties, list) and name in properties

    def get_property(self, name: str) -> Any:
        return self.command("get_property", name)

    # -- CaptureBackend --------------------------------------------------------

    def request_capture(self, flags: str, pixel_format: str = "rgba") -> int:
        if pixel_format != "rgba":
            raise CaptureError(f"unsupported pixel format {pixel_format!r}")

        fd, name = tempfile.mkstemp(prefix="mpv-notify-", suffix=".png")
        os.close(fd)
        path = Path(name)

        token = next(self._request_ids)
        with self._lock:
            self._captures[token] = path
        try:
            self._send(
                {
                    "command": ["screenshot-to-file", str(path), flags],
                    "request_id": token,
                    "async": True,
                }
            )
        except EventSourceError as exc:
            with self._lock:
                self._captures.pop(token, None)
            path.unlink(missing_ok=True)
            raise CaptureError(str(exc)) from exc
        return token
