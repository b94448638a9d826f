"""
Desktop usage data source.

Desktop platforms have no usage-statistics service, so this source samples
the frontmost application and keeps a short history of its own:

- each sample refreshes that application's "last used" timestamp
  (recency records)
- each change of frontmost application is recorded as a
  MOVE_TO_FOREGROUND event (event stream)
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

import config
from screen.foreground import UsageEvent, UsageEventKind, UsageRecord
from screen.window_detector import WindowDetector

logger = logging.getLogger(__name__)


class DesktopUsageSource:
    """
    Usage data synthesised from frontmost-application samples.

    A detector sample is reused for `sample_cache` seconds so the two
    queries made during one poll cost a single platform call.
    """

    def __init__(
        self,
        detector: Optional[WindowDetector] = None,
        clock: Callable[[], float] = time.time,
        sample_cache: float = config.DETECTOR_SAMPLE_CACHE,
        history_size: int = config.USAGE_HISTORY_SIZE,
    ) -> None:
        self.detector = detector or WindowDetector()
        self._clock = clock
        self._sample_cache = sample_cache
        self._lock = threading.Lock()
        self._last_used: Dict[str, float] = {}
        self._events: Deque[UsageEvent] = deque(maxlen=history_size)
        self._current_app: Optional[str] = None
        self._last_sample_at: Optional[float] = None

    def _sample(self) -> None:
        """Record the frontmost application unless a recent sample exists."""
        now = self._clock()
        with self._lock:
            if self._last_sample_at is not None and now - self._last_sample_at < self._sample_cache:
                return
            self._last_sample_at = now

        app = self.detector.get_active_app()

        with self._lock:
            if app is None:
                self._current_app = None
                return
            if app != self._current_app:
                logger.debug(f"Foreground changed: {self._current_app} -> {app}")
                self._events.append(UsageEvent(app, now, UsageEventKind.MOVE_TO_FOREGROUND))
                self._current_app = app
            self._last_used[app] = now

    def query_usage_stats(self, begin: float, end: float) -> List[UsageRecord]:
        self._sample()
        with self._lock:
            return [
                UsageRecord(app, last_used)
                for app, last_used in self._last_used.items()
                if begin <= last_used <= end
            ]

    def query_events(self, begin: float, end: float) -> List[UsageEvent]:
        self._sample()
        with self._lock:
            return [event for event in self._events if begin <= event.timestamp <= end]
