"""
BlockerEngine — headless app-blocking engine for Tomatonator.

Wires the pieces together:

    PollScheduler ──resolve──▶ ForegroundObserved ─┐
    CountdownTicker ─────────▶ CountdownTick ──────┼──▶ command queue ──▶ Coordinator
    host (start/stop/dismiss) ─────────────────────┘        (one worker thread)

The foreground resolver runs on the poll thread, so a slow platform query
never delays the countdown. Everything that reads or writes the block set,
the session clock or the enforcement state runs on the single worker thread.

This module has ZERO UI dependencies. The host (CLI, overlay window) calls
engine methods and receives updates via callbacks:

    on_state_change(state: EnforcementState)
    on_error(error_type: str, message: str)
    on_session_expired()
"""

import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional, Sequence

import config
from core.coordinator import (
    Coordinator,
    CountdownTick,
    DismissOverlay,
    ForegroundObserved,
    RefreshSession,
    StartSession,
    StatusQuery,
    StopSession,
)
from core.enforcement import EnforcementState
from core.overlay import OverlayGateway
from core.permissions import PermissionGateway
from core.scheduler import CountdownTicker, PollScheduler
from screen.foreground import ForegroundResolver

logger = logging.getLogger(__name__)

_SHUTDOWN = object()


class BlockerEngine:
    """
    Thread-safe facade over the Coordinator.

    Handles:
    - Session commands (start, refresh, stop, dismiss)
    - Poll scheduler and countdown ticker lifecycles
    - Serialising every state change onto one worker thread
    """

    def __init__(
        self,
        resolver: ForegroundResolver,
        overlay: OverlayGateway,
        permissions: Optional[PermissionGateway] = None,
        clock: Callable[[], float] = time.time,
        poll_interval: float = config.POLL_INTERVAL,
        immediate_check_delay: float = config.IMMEDIATE_CHECK_DELAY,
        countdown_interval: float = config.COUNTDOWN_INTERVAL,
        command_timeout: float = 5.0,
    ) -> None:
        self.resolver = resolver
        self.clock = clock
        self.command_timeout = command_timeout
        self.coordinator = Coordinator(overlay, permissions, clock)

        self._commands: "queue.Queue[Any]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()

        self.poll_scheduler = PollScheduler(self._poll_once, poll_interval, immediate_check_delay)
        self.countdown = CountdownTicker(self._countdown_tick, countdown_interval)

    # ------------------------------------------------------------------
    # Callbacks (forwarded to the coordinator)
    # ------------------------------------------------------------------

    @property
    def on_state_change(self) -> Optional[Callable[[EnforcementState], None]]:
        return self.coordinator.on_state_change

    @on_state_change.setter
    def on_state_change(self, callback: Optional[Callable[[EnforcementState], None]]) -> None:
        self.coordinator.on_state_change = callback

    @property
    def on_error(self) -> Optional[Callable[[str, str], None]]:
        return self.coordinator.on_error

    @on_error.setter
    def on_error(self, callback: Optional[Callable[[str, str], None]]) -> None:
        self.coordinator.on_error = callback

    @property
    def on_session_expired(self) -> Optional[Callable[[], None]]:
        return self.coordinator.on_session_expired

    @on_session_expired.setter
    def on_session_expired(self, callback: Optional[Callable[[], None]]) -> None:
        self.coordinator.on_session_expired = callback

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_monitoring(self) -> bool:
        return self.poll_scheduler.is_running

    def start(
        self,
        blocked_apps: Optional[Sequence[str]] = None,
        duration_seconds: Optional[float] = None,
        ends_at: Optional[float] = None,
    ) -> Dict:
        """
        Start or re-configure a blocking session.

        An empty app list keeps the previous block set and a non-positive
        duration keeps the previous session clock. Timers already running
        are left running (never duplicated).

        Args:
            blocked_apps: Application identifiers to block (a single string is one identifier).
            duration_seconds: Session length, counted from now.
            ends_at: Absolute session end (epoch seconds); overrides duration.

        Returns:
            {"success": bool, "block_set_changed": bool, "clock_changed": bool,
             "blocked_apps": list, "ends_at": float | None}
        """
        if isinstance(blocked_apps, str):
            blocked_apps = [blocked_apps]
        result = self._call(StartSession(
            blocked_apps=list(blocked_apps) if blocked_apps else None,
            duration_seconds=duration_seconds,
            ends_at=ends_at,
        ))

        self.poll_scheduler.start()
        if not self.countdown.start() and result.get("clock_changed"):
            self.countdown.restart()
        return result

    def refresh_session(
        self,
        duration_seconds: Optional[float] = None,
        ends_at: Optional[float] = None,
    ) -> Dict:
        """
        Re-configure only the session clock, keeping the block set.

        Returns:
            {"success": bool, "clock_changed": bool, "ends_at": float | None}
        """
        result = self._call(RefreshSession(duration_seconds=duration_seconds, ends_at=ends_at))
        if result.get("clock_changed") and self.countdown.is_running:
            self.countdown.restart()
        return result

    def stop(self) -> Dict:
        """
        Stop the session: cancel both timers, force Idle and hide the overlay.

        Returns:
            {"success": bool, "was_blocking": bool}
        """
        self.poll_scheduler.stop()
        self.countdown.stop()
        return self._call(StopSession())

    def dismiss(self) -> bool:
        """
        Release the current block after the user acknowledged the overlay.

        Monitoring continues; returning to a blocked app blocks it again.

        Returns:
            True if a block was released.
        """
        return self._call(DismissOverlay())

    def get_status(self) -> Dict:
        """
        Snapshot of the engine state (polled by the host).

        Returns:
            dict with keys: is_active, is_monitoring, state, blocked_identifier,
            blocked_apps, remaining_seconds, remaining_text, ends_at.
        """
        status = self._call(StatusQuery())
        status["is_monitoring"] = self.is_monitoring
        return status

    def shutdown(self) -> None:
        """Stop the session and the worker thread."""
        self.stop()
        with self._worker_lock:
            worker = self._worker
            self._worker = None
        if worker is not None and worker.is_alive():
            self._commands.put(_SHUTDOWN)
            if worker is not threading.current_thread():
                worker.join(timeout=2.0)
                if worker.is_alive():
                    logger.warning("Engine worker did not stop within timeout")
        logger.info("Engine shut down")

    # ------------------------------------------------------------------
    # Timer callbacks (run on the timer threads)
    # ------------------------------------------------------------------

    def _poll_once(self) -> None:
        """Resolve the foreground app and hand the result to the coordinator."""
        resolved = self.resolver.resolve_foreground(self.clock())
        self.submit(ForegroundObserved(resolved))

    def _countdown_tick(self) -> None:
        self.submit(CountdownTick())

    # ------------------------------------------------------------------
    # Command queue
    # ------------------------------------------------------------------

    def submit(self, command: Any) -> Future:
        """
        Queue a command for the worker thread.

        Returns:
            Future resolved with the command's result.
        """
        self._ensure_worker()
        future: Future = Future()
        self._commands.put((command, future))
        return future

    def _call(self, command: Any) -> Any:
        """Run a command on the worker thread and wait for its result."""
        if threading.current_thread() is self._worker:
            # Callbacks fired by the coordinator may call back into the engine
            return self.coordinator.handle(command)
        return self.submit(command).result(timeout=self.command_timeout)

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._run_worker, name="blocker-engine", daemon=True)
            self._worker.start()

    def _run_worker(self) -> None:
        while True:
            item = self._commands.get()
            if item is _SHUTDOWN:
                return
            command, future = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = self.coordinator.handle(command)
            except Exception as e:
                logger.error(f"Command {type(command).__name__} failed: {e}", exc_info=True)
                future.set_exception(e)
            else:
                future.set_result(result)
