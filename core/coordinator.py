"""
Coordinator: the single owner of blocking state.

The block set, the session clock and the enforcement state are only ever
touched here, one command at a time. Timer threads and the host application
talk to the coordinator exclusively by sending the command objects below
(see core.engine for the queue that serialises them).
"""

import math
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from core.enforcement import EnforcementState, EnforcementStateMachine
from core.overlay import OverlayGateway
from core.permissions import PermissionGateway
from screen.blocklist import BlockSet, EMPTY_BLOCK_SET
from screen.foreground import ResolvedForeground
from tracking.countdown import SessionClock, format_remaining

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class StartSession:
    """
    Start (or re-configure) a session.

    An empty or missing app list keeps the current block set; a missing or
    non-positive duration keeps the current clock. An absolute ends_at (a
    restarted host re-supplying a stored session) wins over a duration.
    """
    blocked_apps: Optional[Sequence[str]] = None
    duration_seconds: Optional[float] = None
    ends_at: Optional[float] = None


@dataclass(frozen=True)
class RefreshSession:
    """Re-configure only the session clock; the block set is never touched."""
    duration_seconds: Optional[float] = None
    ends_at: Optional[float] = None


@dataclass(frozen=True)
class StopSession:
    pass


@dataclass(frozen=True)
class DismissOverlay:
    pass


@dataclass(frozen=True)
class ForegroundObserved:
    """Result of one poll: the resolved foreground app, or None."""
    resolved: Optional[ResolvedForeground]


@dataclass(frozen=True)
class CountdownTick:
    pass


@dataclass(frozen=True)
class StatusQuery:
    pass


def _valid_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


class Coordinator:
    """
    Serialised command handlers for the blocking engine.

    Callbacks:
        on_state_change(state: EnforcementState)
        on_error(error_type: str, message: str)
        on_session_expired()
    """

    def __init__(
        self,
        overlay: OverlayGateway,
        permissions: Optional[PermissionGateway] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.overlay = overlay
        self.clock = clock
        self.block_set: BlockSet = EMPTY_BLOCK_SET
        self.session_clock: Optional[SessionClock] = None
        self.is_active: bool = False
        self._expiry_notified: bool = False

        self.machine = EnforcementStateMachine(
            overlay, permissions, on_error=self._notify_error
        )

        # ---- Callbacks (set by the host application) ----
        self.on_state_change: Optional[Callable[[EnforcementState], None]] = None
        self.on_error: Optional[Callable[[str, str], None]] = None
        self.on_session_expired: Optional[Callable[[], None]] = None

        self._handlers: Dict[type, Callable[[Any], Any]] = {
            StartSession: self._handle_start,
            RefreshSession: self._handle_refresh,
            StopSession: self._handle_stop,
            DismissOverlay: self._handle_dismiss,
            ForegroundObserved: self._handle_foreground,
            CountdownTick: self._handle_countdown_tick,
            StatusQuery: self._handle_status,
        }

    @property
    def state(self) -> EnforcementState:
        return self.machine.state

    def handle(self, command: Any) -> Any:
        """
        Dispatch one command.

        Args:
            command: One of the command dataclasses of this module.

        Returns:
            The handler's result (see each handler), or None for unknown commands.
        """
        handler = self._handlers.get(type(command))
        if handler is None:
            logger.warning(f"Ignoring unknown command: {command!r}")
            return None
        return handler(command)

    def remaining_seconds(self) -> Optional[float]:
        if self.session_clock is None:
            return None
        return self.session_clock.remaining(self.clock())

    def remaining_text(self) -> str:
        return format_remaining(self.remaining_seconds())

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_start(self, command: StartSession) -> Dict:
        """
        Returns:
            {"success": True, "block_set_changed": bool, "clock_changed": bool,
             "blocked_apps": list, "ends_at": float | None}
        """
        block_set_changed = False
        if command.blocked_apps:
            new_block_set = BlockSet.from_iterable(command.blocked_apps)
            if new_block_set:
                self.block_set = new_block_set
                block_set_changed = True
            else:
                logger.warning("Start command had no usable app identifiers; keeping block set")
        else:
            logger.info("Start command without apps; keeping previous block set")

        clock_changed = self._configure_clock(command.duration_seconds, command.ends_at)

        self.is_active = True
        logger.info(
            f"Session active: blocking {self.block_set.to_list()}, "
            f"{self.remaining_text() or 'no time limit'} remaining"
        )
        return {
            "success": True,
            "block_set_changed": block_set_changed,
            "clock_changed": clock_changed,
            "blocked_apps": self.block_set.to_list(),
            "ends_at": self.session_clock.ends_at if self.session_clock else None,
        }

    def _handle_refresh(self, command: RefreshSession) -> Dict:
        clock_changed = self._configure_clock(command.duration_seconds, command.ends_at)
        return {
            "success": clock_changed,
            "clock_changed": clock_changed,
            "ends_at": self.session_clock.ends_at if self.session_clock else None,
        }

    def _handle_stop(self, command: StopSession) -> Dict:
        self.is_active = False
        was_blocking = self.machine.release("stop")
        if was_blocking:
            self._notify_state_change()
        logger.info("Session stopped")
        return {"success": True, "was_blocking": was_blocking}

    def _handle_dismiss(self, command: DismissOverlay) -> bool:
        released = self.machine.release("dismiss")
        if released:
            self._notify_state_change()
        return released

    def _handle_foreground(self, command: ForegroundObserved) -> EnforcementState:
        # Results of a poll that was in flight when the session stopped
        if not self.is_active:
            return self.state

        identifier = command.resolved.identifier if command.resolved else None
        before = self.state
        after = self.machine.observe(identifier, self.block_set, self.remaining_text())
        if after != before:
            self._notify_state_change()
        return after

    def _handle_countdown_tick(self, command: CountdownTick) -> Optional[str]:
        if not self.is_active or self.session_clock is None:
            return None

        now = self.clock()
        text = format_remaining(self.session_clock.remaining(now))
        try:
            self.overlay.update_countdown_text(text)
        except Exception as e:
            logger.warning(f"Failed to update countdown text: {e}")

        if self.session_clock.is_expired(now) and not self._expiry_notified:
            self._expiry_notified = True
            logger.info("Session time is up")
            if self.on_session_expired:
                try:
                    self.on_session_expired()
                except Exception as e:
                    logger.debug(f"on_session_expired callback error: {e}")
        return text

    def _handle_status(self, command: StatusQuery) -> Dict:
        """
        Returns:
            dict with keys: is_active, state, blocked_identifier, blocked_apps,
            remaining_seconds, remaining_text, ends_at.
        """
        remaining = self.remaining_seconds()
        return {
            "is_active": self.is_active,
            "state": self.state.status.value,
            "blocked_identifier": self.state.identifier,
            "blocked_apps": self.block_set.to_list(),
            "remaining_seconds": int(remaining) if remaining is not None else None,
            "remaining_text": format_remaining(remaining),
            "ends_at": self.session_clock.ends_at if self.session_clock else None,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _configure_clock(self, duration_seconds: Optional[float], ends_at: Optional[float]) -> bool:
        """
        Set the session clock from an absolute end or a duration.

        Returns:
            True if the clock was (re)configured, False if it was kept.
        """
        now = self.clock()
        if ends_at is not None:
            if _valid_number(ends_at):
                if _valid_number(duration_seconds) and duration_seconds > 0:
                    duration = float(duration_seconds)
                else:
                    duration = max(0.0, ends_at - now)
                self.session_clock = SessionClock(ends_at=float(ends_at), duration_seconds=duration)
                self._expiry_notified = False
                return True
            logger.warning(f"Ignoring invalid session end timestamp: {ends_at!r}")

        if duration_seconds is None:
            return False
        if not _valid_number(duration_seconds) or duration_seconds <= 0:
            logger.warning(f"Ignoring invalid session duration: {duration_seconds!r}")
            return False

        self.session_clock = SessionClock.starting_at(now, float(duration_seconds))
        self._expiry_notified = False
        return True

    def _notify_state_change(self) -> None:
        if self.on_state_change:
            try:
                self.on_state_change(self.state)
            except Exception as e:
                logger.debug(f"on_state_change callback error: {e}")

    def _notify_error(self, error_type: str, message: str) -> None:
        if self.on_error:
            try:
                self.on_error(error_type, message)
            except Exception as e:
                logger.debug(f"on_error callback error: {e}")
