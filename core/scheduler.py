"""
Timer threads for the blocking engine.

PollScheduler drives foreground checks on a fixed cadence, plus one
near-immediate check right after activation so an app that is already open
is caught without waiting a full interval. CountdownTicker drives the
session countdown once per second. Both only call their tick function; all
state changes happen on the coordinator thread.
"""

import logging
import threading
import time
from typing import Callable, Optional

import config

logger = logging.getLogger(__name__)


class _TimerThread:
    """Daemon thread calling `tick` until stopped; a failing tick is logged and skipped."""

    def __init__(self, tick: Callable[[], None], interval: float, name: str) -> None:
        self.tick = tick
        self.interval = interval
        self.name = name
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """
        Start the thread unless it is already running.

        Returns:
            True if a new thread was started.
        """
        if self.is_running:
            return False
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug(f"{self.name} started")
        return True

    def stop(self, timeout: float = 2.0) -> None:
        """Signal the thread to stop and wait for it."""
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return
        if thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"{self.name} did not stop within timeout")
        self._thread = None

    def _safe_tick(self) -> None:
        try:
            self.tick()
        except Exception as e:
            logger.error(f"{self.name} tick failed: {e}")

    def _run(self) -> None:
        raise NotImplementedError


class PollScheduler(_TimerThread):
    """Fixed-cadence foreground polling with an extra check shortly after start."""

    def __init__(
        self,
        tick: Callable[[], None],
        interval: float = config.POLL_INTERVAL,
        immediate_delay: float = config.IMMEDIATE_CHECK_DELAY,
    ) -> None:
        super().__init__(tick, interval, name="poll-scheduler")
        self.immediate_delay = immediate_delay

    def _run(self) -> None:
        stop_event = self._stop_event
        activated = time.monotonic()

        if stop_event.wait(self.immediate_delay):
            return
        self._safe_tick()

        next_tick = activated + self.interval
        while True:
            if stop_event.wait(max(0.0, next_tick - time.monotonic())):
                return
            self._safe_tick()
            next_tick += self.interval
            # Skip ticks missed while a slow query was running
            now = time.monotonic()
            if next_tick < now:
                next_tick = now + self.interval


class CountdownTicker(_TimerThread):
    """
    One-second countdown ticks.

    restart() forces an immediate tick and realigns the cadence to it, so
    a re-configured session clock shows up straight away.
    """

    def __init__(self, tick: Callable[[], None], interval: float = config.COUNTDOWN_INTERVAL) -> None:
        super().__init__(tick, interval, name="countdown")
        self._wake_event = threading.Event()

    def restart(self) -> None:
        if self.is_running:
            self._wake_event.set()
        else:
            self.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        self._wake_event.set()
        super().stop(timeout)

    def _run(self) -> None:
        stop_event = self._stop_event
        self._wake_event.clear()
        self._safe_tick()
        while not stop_event.is_set():
            woken = self._wake_event.wait(self.interval)
            if stop_event.is_set():
                return
            if woken:
                self._wake_event.clear()
            self._safe_tick()
