"""
Full-screen blocking overlay - CustomTkinter Edition

Tk is not thread-safe, so the engine never touches widgets directly:
show/hide/update_countdown_text queue actions that the Tk main loop drains.
show() waits (bounded) for the Tk thread to build the window so that a
window that could not be created is reported back as a failed show.
run() must be called from the main thread.
"""

import queue
import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Callable, Optional

import customtkinter as ctk

import config
from core.overlay import OverlayContext

logger = logging.getLogger(__name__)

_DRAIN_INTERVAL_MS = 50


class OverlayWindow:
    """Overlay gateway backed by a topmost, borderless CustomTkinter window."""

    BG_COLOR = "#111827"
    TEXT_COLOR = "#F9FAFB"
    MUTED_COLOR = "#9CA3AF"
    ACCENT_COLOR = "#EF4444"

    def __init__(
        self,
        on_dismiss: Optional[Callable[[], None]] = None,
        show_timeout: float = config.OVERLAY_SHOW_TIMEOUT,
    ):
        """
        Args:
            on_dismiss: Called (on the Tk thread) when the user acknowledges the overlay.
            show_timeout: Seconds show() waits for the Tk thread to build the window.
        """
        self.on_dismiss = on_dismiss
        self.show_timeout = show_timeout
        self._actions: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self._closed = False
        self._tk_thread: Optional[threading.Thread] = None

        ctk.set_appearance_mode("Dark")
        self.root = ctk.CTk()
        self.root.title(config.APP_NAME)
        self.root.withdraw()

        self._window: Optional[ctk.CTkToplevel] = None
        self._countdown_label: Optional[ctk.CTkLabel] = None
        self._countdown_text = ""

    # ------------------------------------------------------------------
    # Gateway (any thread)
    # ------------------------------------------------------------------

    def show(self, context: OverlayContext) -> bool:
        """
        Build the overlay on the Tk thread and wait for the outcome.

        Returns:
            True once the window exists, False if the Tk thread did not get
            to it within show_timeout. Errors raised while building the
            window propagate to the caller.
        """
        if self._closed:
            return False
        if threading.current_thread() is self._tk_thread:
            return self._show(context)

        future: Future = Future()

        def build() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self._show(context))
            except Exception as e:
                future.set_exception(e)

        self._actions.put(build)
        try:
            return future.result(timeout=self.show_timeout)
        except FutureTimeoutError:
            if future.cancel():
                logger.warning(f"Overlay not shown within {self.show_timeout}s - Tk loop busy or not running")
                return False
            # Already being built; wait for it to finish
            try:
                return future.result(timeout=self.show_timeout)
            except FutureTimeoutError:
                logger.warning("Overlay build did not finish in time; removing it")
                self._actions.put(self._hide)
                return False

    def hide(self) -> None:
        self._actions.put(self._hide)

    def update_countdown_text(self, text: str) -> None:
        self._actions.put(lambda: self._set_countdown(text))

    # ------------------------------------------------------------------
    # Tk thread
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Enter the Tk main loop (blocks until close())."""
        self._tk_thread = threading.current_thread()
        self.root.after(_DRAIN_INTERVAL_MS, self._drain)
        self.root.mainloop()

    def close(self) -> None:
        """Ask the main loop to exit (thread-safe)."""
        self._closed = True
        self._actions.put(self.root.quit)

    def _drain(self) -> None:
        while True:
            try:
                action = self._actions.get_nowait()
            except queue.Empty:
                break
            try:
                action()
            except Exception as e:
                logger.error(f"Overlay action failed: {e}")
        if not self._closed:
            self.root.after(_DRAIN_INTERVAL_MS, self._drain)

    def _show(self, context: OverlayContext) -> bool:
        if self._window is not None:
            return True

        window = ctk.CTkToplevel(self.root, fg_color=self.BG_COLOR)
        try:
            self._build(window, context)
        except Exception:
            self._countdown_label = None
            try:
                window.destroy()
            except Exception as e:
                logger.debug(f"Could not destroy half-built overlay: {e}")
            raise

        self._window = window
        logger.debug(f"Overlay shown for {context.identifier}")
        return True

    def _build(self, window: ctk.CTkToplevel, context: OverlayContext) -> None:
        window.overrideredirect(True)  # Borderless window
        window.attributes('-topmost', True)  # Always on top
        width = window.winfo_screenwidth()
        height = window.winfo_screenheight()
        window.geometry(f"{width}x{height}+0+0")

        frame = ctk.CTkFrame(window, fg_color="transparent")
        frame.place(relx=0.5, rely=0.5, anchor="center")

        ctk.CTkLabel(
            frame,
            text=context.message,
            text_color=self.TEXT_COLOR,
            font=ctk.CTkFont(size=28, weight="bold"),
        ).pack(pady=(0, 16))

        self._countdown_text = context.remaining_text or self._countdown_text
        self._countdown_label = ctk.CTkLabel(
            frame,
            text=self._format_countdown(self._countdown_text),
            text_color=self.MUTED_COLOR,
            font=ctk.CTkFont(size=18),
        )
        self._countdown_label.pack(pady=(0, 32))

        ctk.CTkButton(
            frame,
            text=config.OVERLAY_DISMISS_LABEL,
            fg_color=self.ACCENT_COLOR,
            command=self._on_dismiss_clicked,
        ).pack()

        window.lift()
        window.focus_force()

    def _hide(self) -> None:
        if self._window is None:
            return
        self._window.destroy()
        self._window = None
        self._countdown_label = None
        logger.debug("Overlay hidden")

    def _set_countdown(self, text: str) -> None:
        self._countdown_text = text
        if self._countdown_label is not None:
            self._countdown_label.configure(text=self._format_countdown(text))

    @staticmethod
    def _format_countdown(text: str) -> str:
        return f"Focus session ends in {text}" if text else ""

    def _on_dismiss_clicked(self) -> None:
        if self.on_dismiss:
            try:
                self.on_dismiss()
            except Exception as e:
                logger.error(f"Dismiss failed: {e}")
