"""Build notifications: console, desktop and live reload."""

from __future__ import annotations

import logging
import subprocess
import sys
from threading import Lock
from typing import Protocol

from rich.markup import escape

from assetflow.console import console
from assetflow.tools import NOTIFY_SEND, OSASCRIPT

logger = logging.getLogger(__name__)

APP_NAME = "assetflow"
_DESKTOP_TIMEOUT = 5.0


class Reloader(Protocol):
    """Anything that can tell connected browsers to reload."""

    def broadcast_reload(self) -> None: ...


def _applescript_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def desktop_command(title: str, message: str) -> list[str] | None:
    """Return the argv that shows a desktop notification, or None if unsupported."""
    if sys.platform == "darwin":
        if not OSASCRIPT.is_installed():
            return None
        script = (
            f"display notification {_applescript_string(message)} "
            f"with title {_applescript_string(title)}"
        )
        return OSASCRIPT.command("-e", script)
    if NOTIFY_SEND.is_installed():
        return NOTIFY_SEND.command("--app-name", APP_NAME, title, message)
    return None


class Notifier:
    """Delivers build results to the developer and to connected browsers.

    Nothing raised while notifying escapes: a missing desktop session or a
    dropped browser connection is logged and otherwise ignored.
    """

    def __init__(self, desktop: bool = True) -> None:
        self.desktop = desktop
        self._reloaders: list[Reloader] = []
        self._lock = Lock()

    def attach(self, reloader: Reloader) -> None:
        with self._lock:
            self._reloaders.append(reloader)

    def detach(self, reloader: Reloader) -> None:
        with self._lock:
            if reloader in self._reloaders:
                self._reloaders.remove(reloader)

    def notify_error(self, stage: str, message: str) -> None:
        """Report a failed stage."""
        logger.error("%s: %s", stage, message)
        console.print(f"[red]✗ {escape(stage.upper())}[/red] {escape(message)}")
        self._desktop(stage.upper(), message)

    def notify_success(self, title: str, message: str) -> None:
        console.print(f"[green]✓[/green] [bold]{escape(title)}[/bold] {escape(message)}")

    def notify_reload(self) -> None:
        """Ask every attached reloader to refresh connected browsers."""
        with self._lock:
            reloaders = list(self._reloaders)
        for reloader in reloaders:
            try:
                reloader.broadcast_reload()
            except Exception:
                logger.warning("Live reload broadcast failed", exc_info=True)

    def _desktop(self, title: str, message: str) -> None:
        if not self.desktop:
            return
        try:
            argv = desktop_command(title, message)
            if argv is None:
                logger.debug("No desktop notifier available")
                return
            subprocess.run(argv, capture_output=True, timeout=_DESKTOP_TIMEOUT, check=False)
        except (OSError, subprocess.SubprocessError):
            logger.warning("Desktop notification failed", exc_info=True)
