"""
Platform permission checks for app blocking.

Two questions are answered here, without any UI:
- may we draw a blocking overlay? (a display must be available)
- may we read which app is in the foreground? (Accessibility/Automation on
  macOS, window access on Windows, xdotool on Linux)
"""

import os
import sys
import shutil
import subprocess
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class PermissionGateway(Protocol):
    """Answers permission questions for the enforcement engine."""

    def overlay_permission_granted(self) -> bool:
        ...

    def usage_access_granted(self) -> bool:
        ...


class AllowAll:
    """Permission gateway for hosts that manage permissions themselves."""

    def overlay_permission_granted(self) -> bool:
        return True

    def usage_access_granted(self) -> bool:
        return True


class DesktopPermissions:
    """Permission checks for macOS, Windows and Linux desktops."""

    def __init__(self, platform: str = sys.platform) -> None:
        self.platform = platform

    def overlay_permission_granted(self) -> bool:
        """
        Check whether an overlay window can be displayed.

        Returns:
            True on macOS and Windows; on Linux only with a display server.
        """
        if self.platform.startswith("linux"):
            has_display = bool(os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))
            if not has_display:
                logger.warning("No DISPLAY or WAYLAND_DISPLAY set - overlay cannot be shown")
            return has_display
        return True

    def usage_access_granted(self) -> bool:
        """
        Check whether the foreground application can be read.

        Returns:
            True if the platform probe succeeds, False otherwise.
        """
        if self.platform == "darwin":
            return check_macos_accessibility_permission()
        if self.platform == "win32":
            return check_windows_foreground_access()
        if self.platform.startswith("linux"):
            if shutil.which("xdotool") is None:
                logger.warning("xdotool not found on PATH")
                return False
            return True
        return False


# ---------------------------------------------------------------------------
# macOS Accessibility / Automation
# ---------------------------------------------------------------------------

def check_macos_accessibility_permission() -> bool:
    """
    Test Accessibility/Automation permission by running a simple AppleScript.

    Returns:
        True if the AppleScript succeeds, False otherwise.
    """
    if sys.platform != "darwin":
        return True

    try:
        script = '''
        tell application "System Events"
            set frontApp to first application process whose frontmost is true
            return name of frontApp
        end tell
        '''
        result = subprocess.run(
            ["osascript", "-e", script],
            capture_output=True, text=True, timeout=5,
        )

        if result.returncode == 0:
            logger.debug(f"AppleScript test succeeded: {result.stdout.strip()}")
            return True

        stderr = result.stderr.lower()
        permission_indicators = [
            "not allowed", "assistive", "-10827", "-1743", "-1728",
            "not permitted", "permission denied", "not authorized",
        ]
        if any(ind in stderr for ind in permission_indicators):
            logger.warning(f"Permission denied for AppleScript: {result.stderr.strip()}")
        else:
            logger.warning(f"AppleScript test failed: {result.stderr.strip()}")
        return False

    except subprocess.TimeoutExpired:
        logger.warning("AppleScript test timed out — a permission dialog may be waiting")
        return False
    except OSError as e:
        logger.warning(f"AppleScript test error: {e}")
        return False


# ---------------------------------------------------------------------------
# Windows foreground window access
# ---------------------------------------------------------------------------

def check_windows_foreground_access() -> bool:
    """
    Test Windows foreground access by resolving the foreground window's process.

    Returns:
        True if a foreground window and its process id can be read.
    """
    if sys.platform != "win32":
        return True

    try:
        import ctypes
        from ctypes import wintypes

        user32 = ctypes.windll.user32
        hwnd = user32.GetForegroundWindow()
        if not hwnd:
            logger.warning("Windows foreground test: No foreground window found")
            return False

        pid = wintypes.DWORD()
        if user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid)) == 0:
            logger.warning("Windows foreground test: Could not get process ID")
            return False

        logger.debug(f"Windows foreground test passed (pid {pid.value})")
        return True

    except (AttributeError, OSError) as e:
        logger.warning(f"Windows foreground test error: {e}")
        return False
