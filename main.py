#!/usr/bin/env python3
"""
Tomatonator - Main Entry Point

Blocks distracting applications for the length of a focus session. While a
session runs, any blocked app that comes to the foreground is covered by an
overlay until you acknowledge it.

Usage:
    python main.py start --app Discord --app steam --minutes 25
    python main.py resume    # Continue the stored session after a restart
    python main.py status    # Show the stored session
    python main.py clear     # Forget the stored session
"""

import sys
import time
import logging
import threading
import argparse
from typing import List, Optional

import config
from core.engine import BlockerEngine
from core.overlay import LoggingOverlay
from core.permissions import DesktopPermissions
from instance_lock import InstanceLock
from screen.foreground import ForegroundResolver
from screen.usage_source import DesktopUsageSource
from screen.window_detector import WindowDetector
from tracking.countdown import format_remaining
from tracking.session import SessionRecord, SessionStore

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def _watch_stdin(engine: BlockerEngine, stop: threading.Event) -> None:
    """Log overlay: pressing Enter acknowledges the block."""
    for _ in sys.stdin:
        if stop.is_set():
            return
        if engine.dismiss():
            print("Block dismissed. Stay away from it!")


def run_session(
    blocked_apps: Optional[List[str]],
    duration_seconds: Optional[float] = None,
    ends_at: Optional[float] = None,
    use_gui: bool = True,
) -> int:
    """
    Run the blocker in the foreground until the session ends or Ctrl+C.

    Returns:
        Process exit code.
    """
    lock = InstanceLock()
    if not lock.acquire():
        owner = lock.get_owner_pid()
        pid_info = f" (PID: {owner})" if owner else ""
        print(f"\n{config.APP_NAME} is already running{pid_info}.")
        return 1

    permissions = DesktopPermissions()
    if not permissions.usage_access_granted():
        print("\n⚠️  Cannot read the foreground app yet - blocking will not trigger.")
        print(WindowDetector().get_permission_instructions())

    if use_gui and permissions.overlay_permission_granted():
        from gui.overlay import OverlayWindow
        overlay = OverlayWindow()
    else:
        overlay = LoggingOverlay(on_message=print)
        use_gui = False

    resolver = ForegroundResolver.for_source(DesktopUsageSource())
    engine = BlockerEngine(resolver, overlay, permissions)
    expired = threading.Event()
    stop_waiting = threading.Event()

    engine.on_session_expired = expired.set
    engine.on_error = lambda error_type, message: logger.warning(f"{error_type}: {message}")

    store = SessionStore(config.SESSION_STATE_FILE)
    try:
        result = engine.start(blocked_apps, duration_seconds, ends_at=ends_at)
        if not result["blocked_apps"]:
            print("\nNo apps to block. Pass at least one --app.")
            return 2

        store.save(SessionRecord(
            blocked_apps=result["blocked_apps"],
            ends_at=result["ends_at"],
            duration_seconds=duration_seconds,
        ))
        remaining = engine.get_status()["remaining_text"] or "until stopped"
        print(f"\n🍅 Blocking {', '.join(result['blocked_apps'])} - {remaining}")

        if use_gui:
            overlay.on_dismiss = engine.dismiss

            def close_when_expired() -> None:
                expired.wait()
                overlay.close()

            threading.Thread(target=close_when_expired, daemon=True).start()
            overlay.run()
        else:
            print("Press Enter to acknowledge a block, Ctrl+C to quit.\n")
            threading.Thread(target=_watch_stdin, args=(engine, stop_waiting), daemon=True).start()
            while not expired.wait(0.5):
                pass

        print("\n✓ Focus session complete!")
        store.clear()
        return 0

    except KeyboardInterrupt:
        print("\n\nStopped. Run 'python main.py resume' to continue this session.")
        return 0
    finally:
        stop_waiting.set()
        engine.shutdown()
        lock.release()


def cmd_start(args: argparse.Namespace) -> int:
    duration = None
    if args.minutes is not None:
        duration = args.minutes * 60
    elif args.seconds is not None:
        duration = args.seconds
    return run_session(args.app, duration, use_gui=not args.no_gui)


def cmd_resume(args: argparse.Namespace) -> int:
    store = SessionStore(config.SESSION_STATE_FILE)
    record = store.load()
    if record is None or not record.blocked_apps:
        print("No stored session to resume.")
        return 1
    if record.ends_at is not None and record.ends_at <= time.time():
        print("The stored session has already ended.")
        store.clear()
        return 0
    return run_session(
        record.blocked_apps,
        record.duration_seconds,
        ends_at=record.ends_at,
        use_gui=not args.no_gui,
    )


def cmd_status(args: argparse.Namespace) -> int:
    record = SessionStore(config.SESSION_STATE_FILE).load()
    if record is None:
        print("No stored session.")
        return 0
    print(f"Blocked apps: {', '.join(record.blocked_apps) or '-'}")
    if record.ends_at is None:
        print("Time left:    no limit")
    else:
        print(f"Time left:    {format_remaining(max(0.0, record.ends_at - time.time()))}")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    SessionStore(config.SESSION_STATE_FILE).clear()
    print("Stored session cleared.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"{config.APP_NAME} - block distracting apps during a focus session",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py start --app Discord --minutes 25
  python main.py start --app com.valvesoftware.steam --app Slack --seconds 90 --no-gui
  python main.py resume
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    start = subparsers.add_parser("start", help="Start a blocking session")
    start.add_argument(
        "--app",
        action="append",
        required=True,
        help="Application identifier to block (repeatable)",
    )
    length = start.add_mutually_exclusive_group()
    length.add_argument("--minutes", type=float, help="Session length in minutes")
    length.add_argument("--seconds", type=float, help="Session length in seconds")
    start.add_argument("--no-gui", action="store_true", help="Log blocks instead of drawing an overlay")
    start.set_defaults(func=cmd_start)

    resume = subparsers.add_parser("resume", help="Resume the stored session")
    resume.add_argument("--no-gui", action="store_true", help="Log blocks instead of drawing an overlay")
    resume.set_defaults(func=cmd_resume)

    status = subparsers.add_parser("status", help="Show the stored session")
    status.set_defaults(func=cmd_status)

    clear = subparsers.add_parser("clear", help="Forget the stored session")
    clear.set_defaults(func=cmd_clear)

    return parser


def main() -> None:
    """Main entry point — parses arguments and runs the chosen command."""
    args = build_parser().parse_args()
    try:
        sys.exit(args.func(args))
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
