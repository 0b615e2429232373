"""Cross-platform "open URL in browser" support.

The interactive OAuth grant sends the user to the authorization page in
their default browser. Each platform launches the browser differently, so
the launch is expressed as a SystemOpener strategy chosen once at startup.
"""

import logging
import subprocess
import sys
import webbrowser
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class SystemOpener(ABC):
    """Opens a URL with the platform's default handler."""

    name: str = "system"

    @abstractmethod
    def open(self, url: str) -> bool:
        """Open url in the user's browser.

        Returns:
            True if the launch was started, False if it failed
        """

    def _launch(self, args: list[str]) -> bool:
        """Start a detached process, reporting failure instead of raising."""
        try:
            subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            return True
        except OSError as e:
            logger.warning(f"Could not launch {args[0]}: {e}")
            return False


class WindowsOpener(SystemOpener):
    """Uses `cmd /c start`, which treats "&" as a command separator."""

    name = "windows"

    def open(self, url: str) -> bool:
        return self._launch(["cmd", "/c", "start", url.replace("&", "^&")])


class MacOpener(SystemOpener):
    name = "macos"

    def open(self, url: str) -> bool:
        return self._launch(["open", url])


class LinuxOpener(SystemOpener):
    name = "linux"

    def open(self, url: str) -> bool:
        return self._launch(["xdg-open", url])


class WebBrowserOpener(SystemOpener):
    """Fallback using the standard library webbrowser module."""

    name = "webbrowser"

    def open(self, url: str) -> bool:
        try:
            return webbrowser.open(url)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser: {e}")
            return False


def get_system_opener(platform: str | None = None) -> SystemOpener:
    """Select the opener strategy for a platform.

    Args:
        platform: A sys.platform value (defaults to the running platform)

    Returns:
        The SystemOpener for that platform
    """
    platform = platform or sys.platform

    if platform == "win32":
        return WindowsOpener()
    if platform == "darwin":
        return MacOpener()
    if platform.startswith("linux"):
        return LinuxOpener()
    return WebBrowserOpener()
