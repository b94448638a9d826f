"""
Foreground application resolution.

Answers "which application is in the foreground right now?" from two usage
data sources:

1. Recency ranking (primary): the usage record with the most recent
   "last used" timestamp over a short look-back window, trusted only if it
   is fresh. Usage snapshots can lag by several seconds, so stale hits are
   discarded.
2. Event stream (fallback): the latest "moved to foreground" or
   "activity resumed" event over an even shorter window. Lower latency but
   noisier.

Reading failures never propagate: a strategy that raises contributes
"nothing resolved" for that poll.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence

import config

logger = logging.getLogger(__name__)


class Confidence(str, Enum):
    """Which signal produced a resolved foreground application."""
    PRIMARY = "primary"
    FALLBACK = "fallback"


class UsageEventKind(str, Enum):
    """Discrete usage events reported by the platform."""
    MOVE_TO_FOREGROUND = "move_to_foreground"
    ACTIVITY_RESUMED = "activity_resumed"
    MOVE_TO_BACKGROUND = "move_to_background"
    ACTIVITY_PAUSED = "activity_paused"


FOREGROUND_EVENT_KINDS = (UsageEventKind.MOVE_TO_FOREGROUND, UsageEventKind.ACTIVITY_RESUMED)


@dataclass(frozen=True)
class UsageRecord:
    """Aggregated usage of one application; last_used is epoch seconds."""
    identifier: str
    last_used: float


@dataclass(frozen=True)
class UsageEvent:
    """A single usage event; timestamp is epoch seconds."""
    identifier: str
    timestamp: float
    kind: UsageEventKind = UsageEventKind.MOVE_TO_FOREGROUND


@dataclass(frozen=True)
class ResolvedForeground:
    """Transient result of one resolution; recomputed every poll."""
    identifier: str
    observed_at: float
    confidence: Confidence


class UsageDataSource(Protocol):
    """Read-only platform usage data, queried over [begin, end] in epoch seconds."""

    def query_usage_stats(self, begin: float, end: float) -> Sequence[UsageRecord]:
        ...

    def query_events(self, begin: float, end: float) -> Sequence[UsageEvent]:
        ...


class ForegroundStrategy(Protocol):
    """One way of finding the foreground application."""

    name: str

    def lookup(self, now: float) -> Optional[ResolvedForeground]:
        ...


class RecencyStrategy:
    """Primary strategy: most recently used application, if fresh enough."""

    name = "recency"

    def __init__(
        self,
        source: UsageDataSource,
        lookback: float = config.RECENCY_LOOKBACK,
        freshness_threshold: float = config.FRESHNESS_THRESHOLD,
    ) -> None:
        self.source = source
        self.lookback = lookback
        self.freshness_threshold = freshness_threshold

    def lookup(self, now: float) -> Optional[ResolvedForeground]:
        records = self.source.query_usage_stats(now - self.lookback, now)
        latest: Optional[UsageRecord] = None
        for record in records:
            if not record.identifier:
                continue
            if latest is None or record.last_used > latest.last_used:
                latest = record

        if latest is None:
            return None

        age = now - latest.last_used
        if age > self.freshness_threshold:
            logger.debug(
                f"Discarding stale recency hit {latest.identifier} ({age:.3f}s old)"
            )
            return None

        return ResolvedForeground(latest.identifier, latest.last_used, Confidence.PRIMARY)


class EventStreamStrategy:
    """Fallback strategy: latest foreground event in a short window."""

    name = "event_stream"

    def __init__(self, source: UsageDataSource, lookback: float = config.EVENT_LOOKBACK) -> None:
        self.source = source
        self.lookback = lookback

    def lookup(self, now: float) -> Optional[ResolvedForeground]:
        latest: Optional[UsageEvent] = None
        for event in self.source.query_events(now - self.lookback, now):
            if event.kind not in FOREGROUND_EVENT_KINDS or not event.identifier:
                continue
            if latest is None or event.timestamp > latest.timestamp:
                latest = event

        if latest is None:
            return None
        return ResolvedForeground(latest.identifier, latest.timestamp, Confidence.FALLBACK)


class ForegroundResolver:
    """
    Composes foreground strategies in priority order.

    The first strategy that yields a result wins. Exceptions are logged and
    treated as "no result" from that strategy, so a broken usage source
    degrades to no enforcement instead of a crashed monitor.
    """

    def __init__(self, strategies: List[ForegroundStrategy]) -> None:
        self.strategies = list(strategies)

    @classmethod
    def for_source(cls, source: UsageDataSource) -> 'ForegroundResolver':
        """Standard primary + fallback resolver over one usage source."""
        return cls([RecencyStrategy(source), EventStreamStrategy(source)])

    def resolve_foreground(self, now: float) -> Optional[ResolvedForeground]:
        for strategy in self.strategies:
            try:
                resolved = strategy.lookup(now)
            except Exception as e:
                logger.warning(f"Foreground lookup via {strategy.name} failed: {e}")
                continue
            if resolved is not None:
                return resolved
        return None

    def resolve(self, now: float) -> Optional[str]:
        """Identifier of the foreground application, or None."""
        resolved = self.resolve_foreground(now)
        return resolved.identifier if resolved else None
