"""
Session clock and countdown formatting.

The clock stores an absolute end timestamp rather than a counter, so the
remaining time is recomputed on every read. Missed ticks, a restarted
process or a jittery timer never make it drift.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionClock:
    """
    Absolute end of a focus session.

    Attributes:
        ends_at: Wall-clock end of the session (epoch seconds).
        duration_seconds: Duration the end was derived from.
    """
    ends_at: float
    duration_seconds: float

    @classmethod
    def starting_at(cls, now: float, duration_seconds: float) -> 'SessionClock':
        """Clock for a session of duration_seconds beginning at now."""
        return cls(ends_at=now + duration_seconds, duration_seconds=duration_seconds)

    def remaining(self, now: float) -> float:
        """Seconds left at `now`, never negative."""
        return max(0.0, self.ends_at - now)

    def is_expired(self, now: float) -> bool:
        return self.remaining(now) <= 0


def format_remaining(seconds: Optional[float]) -> str:
    """
    Format remaining session time for the overlay.

    Leading zero units are omitted; once a unit is shown, every smaller
    unit is shown too. Seconds are truncated, not rounded.

    Examples:
        >>> format_remaining(1500)
        '25m 0s'
        >>> format_remaining(3725)
        '1h 2m 5s'
        >>> format_remaining(45.9)
        '45s'
        >>> format_remaining(None)
        ''
    """
    if seconds is None:
        return ""

    total_seconds = int(seconds) if seconds > 0 else 0
    hours, rest = divmod(total_seconds, 3600)
    mins, secs = divmod(rest, 60)

    if hours > 0:
        return f"{hours}h {mins}m {secs}s"
    if mins > 0:
        return f"{mins}m {secs}s"
    return f"{secs}s"
