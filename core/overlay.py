"""
Overlay gateway contract.

The overlay is the blocking surface drawn over a blocked application. It is
owned by the UI layer; the enforcement state machine only asks it to show,
hide and refresh its countdown text.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlayContext:
    """What the overlay needs to render a block."""
    identifier: str
    remaining_text: str = ""

    @property
    def message(self) -> str:
        return config.OVERLAY_MESSAGE.format(app=self.identifier)


class OverlayGateway(Protocol):
    """
    Blocking surface.

    show() returns False (or raises) when the platform refuses to display
    the overlay; the caller treats both the same way.
    """

    def show(self, context: OverlayContext) -> bool:
        ...

    def hide(self) -> None:
        ...

    def update_countdown_text(self, text: str) -> None:
        ...


class LoggingOverlay:
    """
    Headless overlay that reports blocks through logging and a callback.

    Used by the CLI when no display is wanted, and as a stand-in wherever a
    real window cannot be created.
    """

    def __init__(self, on_message: Optional[Callable[[str], None]] = None) -> None:
        self.on_message = on_message
        self.visible = False
        self.context: Optional[OverlayContext] = None
        self.countdown_text = ""

    def _emit(self, message: str) -> None:
        logger.info(message)
        if self.on_message:
            try:
                self.on_message(message)
            except Exception as e:
                logger.debug(f"on_message callback error: {e}")

    def show(self, context: OverlayContext) -> bool:
        self.visible = True
        self.context = context
        if context.remaining_text:
            self._emit(f"{context.message} ({context.remaining_text} left)")
        else:
            self._emit(context.message)
        return True

    def hide(self) -> None:
        if self.visible:
            self._emit("Overlay hidden")
        self.visible = False
        self.context = None

    def update_countdown_text(self, text: str) -> None:
        # Only announce whole minutes to keep the log readable
        if self.visible and text != self.countdown_text and text.endswith(" 0s"):
            self._emit(f"{text} left")
        self.countdown_text = text
