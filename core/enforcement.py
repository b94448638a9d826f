"""
Enforcement state machine.

States are Idle and Blocking(identifier). Once Blocking, the latch is sticky:
switching to another app does not lift the overlay. Only an explicit release
(the user dismissing the overlay, or the session being stopped) returns to
Idle.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from core.overlay import OverlayContext, OverlayGateway
from core.permissions import AllowAll, PermissionGateway
from screen.blocklist import BlockSet, should_block

logger = logging.getLogger(__name__)


class EnforcementStatus(str, Enum):
    IDLE = "idle"
    BLOCKING = "blocking"


@dataclass(frozen=True)
class EnforcementState:
    """Current enforcement state; identifier is set only while blocking."""
    status: EnforcementStatus = EnforcementStatus.IDLE
    identifier: Optional[str] = None

    @property
    def is_blocking(self) -> bool:
        return self.status == EnforcementStatus.BLOCKING

    @classmethod
    def blocking(cls, identifier: str) -> 'EnforcementState':
        return cls(EnforcementStatus.BLOCKING, identifier)


IDLE = EnforcementState()


class EnforcementStateMachine:
    """
    Owns the EnforcementState and drives the overlay from it.

    Not thread-safe on its own: the coordinator is its only caller and
    serialises every transition.
    """

    def __init__(
        self,
        overlay: OverlayGateway,
        permissions: Optional[PermissionGateway] = None,
        on_error: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self.overlay = overlay
        self.permissions = permissions or AllowAll()
        self.on_error = on_error
        self._state: EnforcementState = IDLE

    @property
    def state(self) -> EnforcementState:
        return self._state

    def observe(
        self,
        identifier: Optional[str],
        block_set: BlockSet,
        remaining_text: str = "",
    ) -> EnforcementState:
        """
        Apply one poll observation.

        Args:
            identifier: Freshly resolved foreground identifier, or None.
            block_set: Block set in force for this poll.
            remaining_text: Formatted session time, shown on a new overlay.

        Returns:
            The state after the observation.
        """
        if self._state.is_blocking:
            if identifier and identifier not in block_set:
                logger.debug(
                    f"Still blocking {self._state.identifier} (foreground now {identifier})"
                )
            return self._state

        if should_block(identifier, block_set):
            self._latch(identifier, remaining_text)
        return self._state

    def release(self, reason: str) -> bool:
        """
        Leave Blocking and hide the overlay.

        Args:
            reason: Why the latch is released ("dismiss", "stop"), for logs.

        Returns:
            True if a block was released, False if already Idle.
        """
        if not self._state.is_blocking:
            return False

        released = self._state.identifier
        self._state = IDLE
        try:
            self.overlay.hide()
        except Exception as e:
            logger.error(f"Failed to hide overlay: {e}")
            self._notify_error("overlay_failed", f"Could not hide overlay: {e}")
        logger.info(f"Released block on {released} ({reason})")
        return True

    def _latch(self, identifier: str, remaining_text: str) -> None:
        """Enter Blocking and show the overlay, reverting to Idle on failure."""
        if not self.permissions.overlay_permission_granted():
            logger.warning(f"Overlay permission missing - cannot block {identifier}")
            self._notify_error(
                "overlay_permission",
                "Blocking overlay is not permitted on this system.",
            )
            return

        self._state = EnforcementState.blocking(identifier)
        context = OverlayContext(identifier=identifier, remaining_text=remaining_text)
        try:
            shown = self.overlay.show(context)
        except Exception as e:
            logger.error(f"Overlay show failed for {identifier}: {e}")
            shown = False

        if shown is False:
            self._state = IDLE
            self._notify_error("overlay_failed", f"Could not show the blocking overlay for {identifier}.")
            return

        logger.info(f"Blocking {identifier}")

    def _notify_error(self, error_type: str, message: str) -> None:
        if self.on_error:
            try:
                self.on_error(error_type, message)
            except Exception as e:
                logger.debug(f"on_error callback error: {e}")
