"""
Instance Lock - Only one blocker engine may run per user.

Two engines would fight over the same overlay and session file. Uses OS file
locking, released automatically when the process exits (even on crashes):
- Unix (macOS/Linux): fcntl.flock()
- Windows: msvcrt.locking()
"""

import os
import sys
import logging
from pathlib import Path
from typing import IO, Optional

import config

logger = logging.getLogger(__name__)

_LOCK_BYTES = 32


class InstanceLock:
    """
    Cross-platform instance lock using file locking.

    Usage:
        lock = InstanceLock()
        if not lock.acquire():
            print("Another instance is already running")
            sys.exit(1)
        # ... run engine ...
        lock.release()  # Optional - released automatically on exit
    """

    def __init__(self, lock_file: Optional[Path] = None):
        """
        Args:
            lock_file: Path to lock file (default: config.LOCK_FILE)
        """
        self.lock_file = Path(lock_file or config.LOCK_FILE)
        self._lock_handle: Optional[IO] = None

    @property
    def is_acquired(self) -> bool:
        return self._lock_handle is not None

    def acquire(self) -> bool:
        """
        Try to take the lock without blocking.

        Returns:
            True if this process now holds the lock.
        """
        if self._lock_handle is not None:
            return True

        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self.lock_file, 'a+b')
        except OSError as e:
            logger.debug(f"Failed to open lock file: {e}")
            return False

        try:
            if sys.platform == 'win32':
                import msvcrt
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, _LOCK_BYTES)
            else:
                import fcntl
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            handle.close()
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()).encode('utf-8').ljust(_LOCK_BYTES, b'\0'))
        handle.flush()
        self._lock_handle = handle
        logger.debug(f"Acquired instance lock {self.lock_file}")
        return True

    def release(self) -> None:
        """Release the lock if held."""
        if self._lock_handle is None:
            return
        try:
            if sys.platform == 'win32':
                import msvcrt
                self._lock_handle.seek(0)
                msvcrt.locking(self._lock_handle.fileno(), msvcrt.LK_UNLCK, _LOCK_BYTES)
            else:
                import fcntl
                fcntl.flock(self._lock_handle.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logger.debug(f"Error releasing lock: {e}")
        finally:
            self._lock_handle.close()
            self._lock_handle = None

    def get_owner_pid(self) -> Optional[int]:
        """
        PID written by the current lock holder.

        Returns:
            PID, or None if unknown.
        """
        try:
            content = self.lock_file.read_bytes().rstrip(b'\0').strip()
        except OSError:
            return None
        return int(content) if content.isdigit() else None

    def __enter__(self) -> 'InstanceLock':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
