"""
Tests for screen/usage_source.py — usage records and foreground events
synthesised from window detector samples.
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from screen.foreground import Confidence, ForegroundResolver, UsageEventKind
from screen.usage_source import DesktopUsageSource
from tests.fakes import FakeClock, T0


class TestDesktopUsageSource(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.detector = MagicMock()
        self.detector.get_active_app.return_value = "com.social.app"
        self.source = DesktopUsageSource(self.detector, clock=self.clock, sample_cache=0.25)

    def test_sample_becomes_usage_record(self):
        records = self.source.query_usage_stats(T0 - 10, T0)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].identifier, "com.social.app")
        self.assertEqual(records[0].last_used, T0)

    def test_foreground_change_recorded_as_event(self):
        """Each change of frontmost app adds one MOVE_TO_FOREGROUND event."""
        self.source.query_events(T0 - 3, T0)
        self.clock.advance(1)
        self.source.query_events(T0 - 3, self.clock())
        self.detector.get_active_app.return_value = "com.other.app"
        self.clock.advance(1)
        events = self.source.query_events(T0 - 3, self.clock())

        self.assertEqual([e.identifier for e in events], ["com.social.app", "com.other.app"])
        self.assertTrue(all(e.kind == UsageEventKind.MOVE_TO_FOREGROUND for e in events))
        self.assertEqual(events[1].timestamp, T0 + 2)

    def test_sample_reused_within_cache_window(self):
        """Both queries of one poll cost a single detector call."""
        self.source.query_usage_stats(T0 - 10, T0)
        self.source.query_events(T0 - 3, T0)
        self.assertEqual(self.detector.get_active_app.call_count, 1)

        self.clock.advance(0.5)
        self.source.query_usage_stats(T0 - 10, self.clock())
        self.assertEqual(self.detector.get_active_app.call_count, 2)

    def test_no_foreground_app(self):
        self.detector.get_active_app.return_value = None
        self.assertEqual(self.source.query_usage_stats(T0 - 10, T0), [])
        self.assertEqual(self.source.query_events(T0 - 3, T0), [])

    def test_window_filtering(self):
        self.source.query_usage_stats(T0 - 10, T0)
        self.clock.advance(20)
        self.detector.get_active_app.return_value = None
        self.assertEqual(self.source.query_usage_stats(self.clock() - 10, self.clock()), [])

    def test_resolver_over_desktop_source(self):
        """The standard resolver picks the sampled app as a primary hit."""
        resolver = ForegroundResolver.for_source(self.source)
        resolved = resolver.resolve_foreground(self.clock())
        self.assertEqual(resolved.identifier, "com.social.app")
        self.assertEqual(resolved.confidence, Confidence.PRIMARY)

    def test_detector_failure_propagates(self):
        """Query errors reach the resolver, which treats them as a failed strategy."""
        self.detector.get_active_app.side_effect = OSError("no display")
        with self.assertRaises(OSError):
            self.source.query_usage_stats(T0 - 10, T0)
        resolver = ForegroundResolver.for_source(self.source)
        self.clock.advance(1)
        self.assertIsNone(resolver.resolve_foreground(self.clock()))


if __name__ == "__main__":
    unittest.main()
