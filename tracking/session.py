"""Persistence of the active focus session across process restarts."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    """
    What a restarted engine needs to resume a session.

    The absolute end timestamp is stored (not the remaining time) so a
    resumed session ends at exactly the same instant.
    """
    blocked_apps: List[str] = field(default_factory=list)
    ends_at: Optional[float] = None
    duration_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blocked_apps": list(self.blocked_apps),
            "ends_at": self.ends_at,
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionRecord':
        """
        Build a record from stored JSON, tolerating missing or bad fields.

        Args:
            data: Decoded JSON object.

        Returns:
            SessionRecord with invalid fields left at their defaults.
        """
        apps = data.get("blocked_apps") or []
        if not isinstance(apps, list):
            apps = []
        blocked_apps = [a for a in apps if isinstance(a, str) and a.strip()]

        def _as_float(value: Any) -> Optional[float]:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
            return float(value)

        return cls(
            blocked_apps=blocked_apps,
            ends_at=_as_float(data.get("ends_at")),
            duration_seconds=_as_float(data.get("duration_seconds")),
        )


class SessionStore:
    """
    Loads and saves the session record as JSON.

    Writes go to a temp file in the same directory followed by an atomic
    rename, so a crash mid-write never leaves a truncated file.
    """

    def __init__(self, path: Path):
        """
        Args:
            path: Location of the session JSON file.
        """
        self.path = Path(path)

    def load(self) -> Optional[SessionRecord]:
        """
        Load the stored session.

        Returns:
            SessionRecord, or None if there is no usable stored session.
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read session file {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed session file {self.path}")
            return None
        return SessionRecord.from_dict(data)

    def save(self, record: SessionRecord) -> bool:
        """
        Persist a session record.

        Args:
            record: Session to store.

        Returns:
            True if saved successfully.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(
                suffix='.tmp',
                prefix='session_',
                dir=self.path.parent
            )
            try:
                with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
                    json.dump(record.to_dict(), f, indent=2)
                os.replace(temp_path, self.path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
            logger.info(f"Saved session to {self.path}")
            return True
        except Exception as e:
            logger.error(f"Failed to save session: {e}")
            return False

    def clear(self) -> None:
        """Remove the stored session, if any."""
        try:
            self.path.unlink()
            logger.info("Cleared stored session")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to clear session file: {e}")
