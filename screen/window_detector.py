"""
Frontmost application detection for desktop platforms.

Provides the identifier of the application that currently has input focus:
- macOS: bundle identifier via AppleScript (System Events)
- Windows: process image name via ctypes (user32/kernel32)
- Linux (X11): process name via xdotool and /proc

Every platform call is time-bounded; failures return None.
"""

import sys
import subprocess
import logging
from typing import Optional

import config

logger = logging.getLogger(__name__)


class WindowDetector:
    """
    Cross-platform detector for the frontmost application.

    Identifiers are whatever the platform uses to name an application:
    bundle ids on macOS ("com.apple.Safari"), executable names on Windows
    ("Discord") and process names on Linux ("discord").
    """

    def __init__(self, timeout: float = config.DETECTOR_TIMEOUT):
        """Initialize the detector for the current platform."""
        self.platform = sys.platform
        self.timeout = timeout

    def get_active_app(self) -> Optional[str]:
        """
        Get the identifier of the frontmost application.

        Returns:
            Application identifier, or None if detection fails.
        """
        try:
            if self.platform == "darwin":
                return self._get_active_app_macos()
            elif self.platform == "win32":
                return self._get_active_app_windows()
            elif self.platform.startswith("linux"):
                return self._get_active_app_linux()
            else:
                logger.warning(f"Unsupported platform: {self.platform}")
                return None
        except PermissionError as e:
            logger.warning(f"Permission denied getting active app: {e}")
            return None
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Timeout getting active app: {e}")
            return None
        except OSError as e:
            logger.error(f"OS error getting active app: {e}")
            return None

    def _get_active_app_macos(self) -> Optional[str]:
        """Bundle identifier of the frontmost process, via AppleScript."""
        script = '''
        tell application "System Events"
            set frontApp to first application process whose frontmost is true
            try
                return bundle identifier of frontApp
            on error
                return name of frontApp
            end try
        end tell
        '''
        result = subprocess.run(
            ["osascript", "-e", script],
            capture_output=True,
            text=True,
            timeout=self.timeout
        )

        if result.returncode != 0:
            stderr_lower = result.stderr.lower()
            if "not allowed" in stderr_lower or "assistive" in stderr_lower or "-10827" in stderr_lower:
                logger.warning("Accessibility permission required to detect the frontmost app")
            else:
                logger.warning(f"AppleScript failed with code {result.returncode}: {result.stderr.strip()}")
            return None

        app_id = result.stdout.strip()
        return app_id or None

    def _get_active_app_windows(self) -> Optional[str]:
        """Executable name of the foreground window's process."""
        import ctypes
        from ctypes import wintypes

        user32 = ctypes.windll.user32
        hwnd = user32.GetForegroundWindow()
        if not hwnd:
            return None

        pid = wintypes.DWORD()
        user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        return self._get_process_name_windows(pid.value)

    def _get_process_name_windows(self, pid: int) -> Optional[str]:
        """
        Get process name from PID on Windows.

        Args:
            pid: Process ID

        Returns:
            Executable name without ".exe", or None
        """
        import ctypes
        from ctypes import wintypes

        PROCESS_QUERY_LIMITED_INFORMATION = 0x1000

        kernel32 = ctypes.windll.kernel32
        handle = kernel32.OpenProcess(PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
        if not handle:
            logger.debug(f"Could not open process {pid}")
            return None

        try:
            buffer = ctypes.create_unicode_buffer(260)
            size = wintypes.DWORD(260)
            if kernel32.QueryFullProcessImageNameW(handle, 0, buffer, ctypes.byref(size)):
                name = buffer.value.split("\\")[-1]
                if name.lower().endswith(".exe"):
                    name = name[:-4]
                return name or None
            return None
        finally:
            kernel32.CloseHandle(handle)

    def _get_active_app_linux(self) -> Optional[str]:
        """Process name of the active X11 window, via xdotool."""
        try:
            result = subprocess.run(
                ["xdotool", "getactivewindow", "getwindowpid"],
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            logger.warning("xdotool not installed - cannot detect the active app on Linux")
            return None

        if result.returncode != 0:
            logger.debug(f"xdotool failed: {result.stderr.strip()}")
            return None

        pid = result.stdout.strip()
        if not pid.isdigit():
            return None

        try:
            with open(f"/proc/{pid}/comm", "r", encoding="utf-8") as f:
                return f.read().strip() or None
        except OSError as e:
            logger.debug(f"Could not read process name for pid {pid}: {e}")
            return None

    def get_permission_instructions(self) -> str:
        """
        Get instructions for enabling foreground detection.

        Returns:
            Platform-specific instructions string.
        """
        if self.platform == "darwin":
            return (
                "App blocking needs the ACCESSIBILITY and AUTOMATION permissions:\n"
                "   • System Settings → Privacy & Security → Accessibility\n"
                "   • System Settings → Privacy & Security → Automation → System Events\n"
                f"After enabling, restart {config.APP_NAME}."
            )
        elif self.platform == "win32":
            return (
                "Foreground detection should work automatically on Windows.\n"
                "If it does not, try running as Administrator."
            )
        elif self.platform.startswith("linux"):
            return "Install xdotool and run under an X11 session."
        else:
            return f"App blocking is not supported on {self.platform}"
