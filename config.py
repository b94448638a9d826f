"""Configuration settings for the Tomatonator app blocker."""

import os
import sys
import logging
from pathlib import Path
from dotenv import load_dotenv


APP_NAME = "Tomatonator"


def is_bundled() -> bool:
    """
    Check if the application is running from a PyInstaller bundle.

    Returns:
        True if running from a bundled executable, False otherwise.
    """
    return getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (session state, lock file).

    For development: BASE_DIR/data
    For bundled apps: a per-user application data folder that survives updates.

    Returns:
        Path to the user data directory.
    """
    if not is_bundled():
        return Path(__file__).parent / "data"

    if sys.platform == 'darwin':
        data_dir = Path.home() / "Library" / "Application Support" / APP_NAME
    elif sys.platform == 'win32':
        appdata = os.environ.get('APPDATA')
        if appdata:
            data_dir = Path(appdata) / APP_NAME
        else:
            data_dir = Path.home() / "AppData" / "Roaming" / APP_NAME
    else:
        data_dir = Path.home() / ".local" / "share" / APP_NAME.lower()

    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except Exception:
        data_dir = Path.home() / ".tomatonator"
        data_dir.mkdir(parents=True, exist_ok=True)

    return data_dir


def _get_float(env_var: str, default: float) -> float:
    """
    Read a positive float from the environment.

    Args:
        env_var: Environment variable name.
        default: Value used when the variable is unset or invalid.

    Returns:
        The parsed value, or default.
    """
    raw = os.getenv(env_var, "")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            f"{env_var}={raw!r} is not a number, using {default}"
        )
        return default
    if value <= 0:
        logging.getLogger(__name__).warning(
            f"{env_var} must be positive, using {default}"
        )
        return default
    return value


# Load .env only in development (next to config.py, independent of cwd)
if not is_bundled():
    load_dotenv(Path(__file__).parent / ".env")

USER_DATA_DIR = get_user_data_dir()

# Persisted session (blocked apps + absolute end timestamp) for restarts
SESSION_STATE_FILE = USER_DATA_DIR / "session.json"
LOCK_FILE = USER_DATA_DIR / ".tomatonator_instance.lock"

# Poll scheduler
POLL_INTERVAL = _get_float("TOMATONATOR_POLL_INTERVAL", 0.5)  # Seconds between foreground checks
IMMEDIATE_CHECK_DELAY = _get_float("TOMATONATOR_IMMEDIATE_CHECK_DELAY", 0.1)  # First check after activation

# Session countdown
COUNTDOWN_INTERVAL = 1.0

# Foreground resolution
RECENCY_LOOKBACK = 10.0  # Primary source look-back window (seconds)
FRESHNESS_THRESHOLD = _get_float("TOMATONATOR_FRESHNESS_THRESHOLD", 2.0)  # Max age of a recency hit
EVENT_LOOKBACK = 3.0  # Fallback event stream look-back window (seconds)

# Desktop detection
DETECTOR_TIMEOUT = 2  # Seconds before a platform query is abandoned
DETECTOR_SAMPLE_CACHE = 0.25  # Reuse a detector sample within this many seconds
USAGE_HISTORY_SIZE = 256  # Foreground events kept by the desktop usage source

# Overlay text
OVERLAY_MESSAGE = "Stay focused! {app} is blocked."
OVERLAY_DISMISS_LABEL = "I'll leave the app"
OVERLAY_SHOW_TIMEOUT = 2.0  # Max wait for the GUI thread to put the overlay on screen

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
    LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
