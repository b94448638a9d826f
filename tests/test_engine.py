"""
Tests for core/engine.py — verifies the BlockerEngine works
independently of any UI framework, with real timer threads on short
intervals and fake platform sources.
"""

import sys
import threading
import time
import unittest
import logging
from pathlib import Path
from unittest.mock import MagicMock

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.engine import BlockerEngine
from core.enforcement import EnforcementStatus
from screen.foreground import ForegroundResolver
from tests.fakes import FakeClock, FakePermissions, FakeUsageSource, RecordingOverlay, T0

logger = logging.getLogger(__name__)


def _wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll `predicate` until it is truthy or the timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


def _threads_named(name):
    return [t for t in threading.enumerate() if t.name == name and t.is_alive()]


class EngineTestCase(unittest.TestCase):
    """Engine with a fixed clock and a slow cadence unless a test overrides it."""

    poll_interval = 10.0
    immediate_check_delay = 0.05
    countdown_interval = 10.0

    def setUp(self):
        self.clock = FakeClock()
        self.overlay = RecordingOverlay()
        self.source = FakeUsageSource(clock=self.clock)
        self.engine = BlockerEngine(
            ForegroundResolver.for_source(self.source),
            self.overlay,
            FakePermissions(),
            clock=self.clock,
            poll_interval=self.poll_interval,
            immediate_check_delay=self.immediate_check_delay,
            countdown_interval=self.countdown_interval,
        )

    def tearDown(self):
        self.engine.shutdown()


class TestBlockerEngineInit(EngineTestCase):
    """Test engine initialisation and default state."""

    def test_init_defaults(self):
        """Engine starts idle, not monitoring, with no callbacks."""
        self.assertFalse(self.engine.is_monitoring)
        self.assertIsNone(self.engine.on_state_change)
        self.assertIsNone(self.engine.on_error)
        self.assertIsNone(self.engine.on_session_expired)

    def test_get_status_idle(self):
        """get_status() returns correct idle state."""
        status = self.engine.get_status()
        self.assertFalse(status["is_active"])
        self.assertFalse(status["is_monitoring"])
        self.assertEqual(status["state"], "idle")
        self.assertEqual(status["blocked_apps"], [])
        self.assertEqual(status["remaining_text"], "")


class TestImmediateCheck(EngineTestCase):
    """An app already open at activation is caught before the first interval."""

    def test_already_open_app_blocked(self):
        self.source.foreground = "com.social.app"
        result = self.engine.start(["com.social.app"], 1500)
        self.assertTrue(result["success"])
        self.assertTrue(self.engine.is_monitoring)

        # Poll interval is 10s; only the immediate check can catch this
        self.assertTrue(_wait_for(lambda: self.overlay.show_count == 1))
        status = self.engine.get_status()
        self.assertEqual(status["state"], "blocking")
        self.assertEqual(status["blocked_identifier"], "com.social.app")
        self.assertEqual(self.overlay.shown[0].remaining_text, "25m 0s")

    def test_not_blocked_app_ignored(self):
        self.source.foreground = "com.other.app"
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(_wait_for(lambda: len(self.source.stats_windows) >= 1))
        self.assertEqual(self.engine.get_status()["state"], "idle")
        self.assertEqual(self.overlay.show_count, 0)


class TestStartStop(EngineTestCase):
    """Session lifecycle."""

    def test_second_start_does_not_duplicate_timers(self):
        """Calling start() twice keeps exactly one poller and one countdown."""
        self.engine.start(["com.social.app"], 60)
        poller = self.engine.poll_scheduler._thread
        ticker = self.engine.countdown._thread

        result = self.engine.start(["steam"], 120)
        self.assertEqual(result["blocked_apps"], ["steam"])
        self.assertIs(self.engine.poll_scheduler._thread, poller)
        self.assertIs(self.engine.countdown._thread, ticker)
        self.assertEqual(len(_threads_named("poll-scheduler")), 1)
        self.assertEqual(len(_threads_named("countdown")), 1)

    def test_stop_hides_and_cancels(self):
        """stop() while blocking hides the overlay once and stops both timers."""
        self.source.foreground = "com.social.app"
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(_wait_for(lambda: self.overlay.show_count == 1))

        result = self.engine.stop()
        self.assertTrue(result["was_blocking"])
        self.assertEqual(self.overlay.hide_count, 1)
        self.assertFalse(self.engine.is_monitoring)
        self.assertFalse(self.engine.countdown.is_running)

        status = self.engine.get_status()
        self.assertFalse(status["is_active"])
        self.assertEqual(status["state"], "idle")

    def test_start_with_single_string(self):
        """start("com.x", …) blocks that one app instead of its characters."""
        self.source.foreground = "com.x"
        result = self.engine.start("com.x", 60)
        self.assertEqual(result["blocked_apps"], ["com.x"])
        self.assertTrue(_wait_for(lambda: self.overlay.show_count == 1))

    def test_stop_when_not_started(self):
        result = self.engine.stop()
        self.assertTrue(result["success"])
        self.assertFalse(result["was_blocking"])
        self.assertEqual(self.overlay.hide_count, 0)

    def test_restart_after_stop(self):
        """A stopped engine can start again; the block set survives stop()."""
        self.engine.start(["com.social.app"], 60)
        self.engine.stop()
        self.source.foreground = "com.social.app"
        self.engine.start([], 60)
        self.assertTrue(_wait_for(lambda: self.overlay.show_count == 1))


class TestDismiss(EngineTestCase):

    def test_dismiss_releases_block(self):
        self.source.foreground = "com.social.app"
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(_wait_for(lambda: self.overlay.show_count == 1))

        self.source.foreground = "com.other.app"
        self.assertTrue(self.engine.dismiss())
        self.assertEqual(self.overlay.hide_count, 1)
        self.assertEqual(self.engine.get_status()["state"], "idle")
        self.assertTrue(self.engine.is_monitoring)

    def test_dismiss_when_idle(self):
        self.assertFalse(self.engine.dismiss())


class TestCountdown(EngineTestCase):
    """Countdown ticks and restarts."""

    def test_immediate_tick_on_start(self):
        self.engine.start(["x"], 100)
        self.assertTrue(_wait_for(lambda: self.overlay.last_countdown_text == "1m 40s"))

    def test_refresh_restarts_countdown(self):
        """A new duration is shown immediately, not on the next scheduled tick."""
        self.engine.start(["x"], 100)
        self.assertTrue(_wait_for(lambda: self.overlay.last_countdown_text == "1m 40s"))

        result = self.engine.refresh_session(duration_seconds=50)
        self.assertTrue(result["clock_changed"])
        self.assertTrue(_wait_for(lambda: self.overlay.last_countdown_text == "50s"))
        self.assertEqual(self.engine.get_status()["blocked_apps"], ["x"])

    def test_start_with_new_duration_restarts_countdown(self):
        self.engine.start(["x"], 100)
        self.assertTrue(_wait_for(lambda: self.overlay.last_countdown_text == "1m 40s"))
        self.engine.start([], 30)
        self.assertTrue(_wait_for(lambda: self.overlay.last_countdown_text == "30s"))

    def test_resupplied_end_timestamp(self):
        """A restarted host passing the stored end sees the same remaining time."""
        self.clock.now = T0 + 590
        self.engine.start(["x"], None, ends_at=T0 + 600)
        self.assertTrue(_wait_for(lambda: self.overlay.last_countdown_text == "10s"))


class TestFastCadence(EngineTestCase):
    """Real cadence with short intervals."""

    poll_interval = 0.05
    immediate_check_delay = 0.01
    countdown_interval = 0.05

    def test_polls_repeat(self):
        self.engine.start(["x"], 60)
        self.assertTrue(_wait_for(lambda: len(self.source.stats_windows) >= 3))

    def test_block_latches_when_app_opened_later(self):
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(_wait_for(lambda: len(self.source.stats_windows) >= 1))
        self.source.foreground = "com.social.app"
        self.assertTrue(_wait_for(lambda: self.overlay.show_count == 1))

    def test_expiry_callback(self):
        expired = MagicMock()
        self.engine.on_session_expired = expired
        self.engine.start(["x"], 60)
        self.clock.advance(61)
        self.assertTrue(_wait_for(lambda: expired.called))
        time.sleep(0.15)
        expired.assert_called_once()

    def test_failing_source_keeps_running(self):
        """A usage source that keeps failing never stops the poller."""
        self.source.stats_error = RuntimeError("boom")
        self.source.events_error = RuntimeError("boom")
        self.engine.start(["x"], 60)
        self.assertTrue(_wait_for(lambda: len(self.source.event_windows) >= 3))
        self.assertTrue(self.engine.is_monitoring)


class _SlowUsageSource(FakeUsageSource):
    """Usage source whose recency query hangs for `delay` seconds."""

    def __init__(self, clock, delay):
        super().__init__(clock=clock)
        self.delay = delay
        self.querying = threading.Event()

    def query_usage_stats(self, begin, end):
        self.querying.set()
        time.sleep(self.delay)
        return super().query_usage_stats(begin, end)


class TestSlowQuery(EngineTestCase):
    """A hanging usage query must not hold up the countdown."""

    poll_interval = 10.0
    immediate_check_delay = 0.01
    countdown_interval = 0.05

    def setUp(self):
        super().setUp()
        self.source = _SlowUsageSource(self.clock, delay=1.0)
        self.engine.resolver = ForegroundResolver.for_source(self.source)

    def test_countdown_ticks_during_slow_query(self):
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(self.source.querying.wait(2.0))
        ticks_before = len(self.overlay.countdown_texts)
        time.sleep(0.5)
        ticks_during = len(self.overlay.countdown_texts) - ticks_before
        self.assertGreaterEqual(ticks_during, 3)

    def test_commands_answered_during_slow_query(self):
        """dismiss/status do not queue behind a poll that is still resolving."""
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(self.source.querying.wait(2.0))
        started = time.monotonic()
        self.assertEqual(self.engine.get_status()["remaining_text"], "1m 0s")
        self.assertLess(time.monotonic() - started, 0.5)


class TestCallbackPattern(EngineTestCase):
    """Callbacks are invoked on state changes."""

    def test_state_change_callback(self):
        states = []
        self.engine.on_state_change = states.append
        self.source.foreground = "com.social.app"
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(_wait_for(lambda: len(states) == 1))
        self.assertEqual(states[0].status, EnforcementStatus.BLOCKING)

        self.engine.dismiss()
        self.assertEqual(states[-1].status, EnforcementStatus.IDLE)

    def test_error_callback(self):
        errors = []
        self.engine.on_error = lambda t, m: errors.append(t)
        self.overlay.show_result = False
        self.source.foreground = "com.social.app"
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(_wait_for(lambda: "overlay_failed" in errors))
        self.assertEqual(self.engine.get_status()["state"], "idle")

    def test_callback_exception_swallowed(self):
        """A broken callback does not break the engine."""
        self.engine.on_state_change = MagicMock(side_effect=RuntimeError("oops"))
        self.source.foreground = "com.social.app"
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(_wait_for(lambda: self.overlay.show_count == 1))
        self.assertEqual(self.engine.get_status()["state"], "blocking")

    def test_callback_may_call_engine(self):
        """Commands issued from inside a callback run inline instead of deadlocking."""
        self.engine.on_state_change = lambda state: (
            self.engine.dismiss() if state.is_blocking else None
        )
        self.source.foreground = "com.social.app"
        self.engine.start(["com.social.app"], 60)
        self.assertTrue(_wait_for(lambda: self.overlay.hide_count == 1))


class TestShutdown(EngineTestCase):

    def test_shutdown_stops_worker(self):
        self.engine.start(["x"], 60)
        worker = self.engine._worker
        self.engine.shutdown()
        self.assertFalse(self.engine.is_monitoring)
        worker.join(timeout=2.0)
        self.assertFalse(worker.is_alive())

    def test_shutdown_twice(self):
        self.engine.shutdown()
        self.engine.shutdown()


if __name__ == "__main__":
    unittest.main()
