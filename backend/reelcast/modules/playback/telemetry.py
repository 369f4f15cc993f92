"""Playback telemetry.

Derives buffering statistics for the current playback session from the
stream of player status ticks.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Reduce: repeated stalls, or stalled for a large share of the session
REDUCE_MIN_DURATION_FOR_COUNT = 20.0  # seconds
REDUCE_BUFFERING_COUNT = 3
REDUCE_MIN_DURATION_FOR_RATIO = 10.0  # seconds
REDUCE_BUFFERING_RATIO = 0.25

# Increase: a long, almost stall-free session
INCREASE_MIN_DURATION = 60.0  # seconds
INCREASE_MAX_BUFFERING_COUNT = 1
INCREASE_MAX_BUFFERING_RATIO = 0.05


@dataclass(frozen=True)
class PlaybackStatus:
    """One player status tick."""
    is_loaded: bool
    is_buffering: bool


@dataclass
class PlaybackStats:
    """Buffering statistics since the last reset."""
    buffering_count: int
    total_buffering_time: float  # seconds
    playback_duration: float  # seconds
    buffering_ratio: float


@dataclass
class PerformanceAnalysis:
    """Quality recommendation derived from the session statistics."""
    should_reduce: bool
    should_increase: bool
    stats: PlaybackStats


class PlaybackTelemetryMonitor:
    """Tracks buffering events for one playback session."""

    def __init__(self, clock: Clock = time.monotonic):
        """Initialize monitor.

        Args:
            clock: Monotonic clock returning seconds
        """
        self._clock = clock
        self._processing = False
        self.session_start = clock()
        self.buffering_count = 0
        self.buffering_start_time: Optional[float] = None
        self.total_buffering_time = 0.0

    @property
    def is_buffering(self) -> bool:
        return self.buffering_start_time is not None

    def reset(self) -> None:
        """Start a new session: clear counters and restart the session clock."""
        self.buffering_count = 0
        self.buffering_start_time = None
        self.total_buffering_time = 0.0
        self.session_start = self._clock()

    def on_status(self, status: PlaybackStatus) -> None:
        """Consume one player status tick.

        Only transitions count: repeated identical states are ignored.
        """
        if self._processing:
            logger.warning("Status update received while another is in progress; dropped")
            return

        self._processing = True
        try:
            if not status.is_loaded:
                return

            now = self._clock()

            if status.is_buffering and not self.is_buffering:
                self.buffering_count += 1
                self.buffering_start_time = now
                logger.debug(f"Buffering started ({self.buffering_count})")

            elif not status.is_buffering and self.is_buffering:
                elapsed = max(0.0, now - self.buffering_start_time)
                self.total_buffering_time += elapsed
                self.buffering_start_time = None
                logger.debug(f"Buffering ended after {elapsed:.2f}s")
        finally:
            self._processing = False

    def get_stats(self) -> PlaybackStats:
        """Statistics for the session so far.

        A stall still in progress counts toward the buffering time.
        """
        now = self._clock()
        duration = max(0.0, now - self.session_start)

        buffering_time = self.total_buffering_time
        if self.buffering_start_time is not None:
            buffering_time += max(0.0, now - self.buffering_start_time)

        ratio = buffering_time / duration if duration > 0 else 0.0

        return PlaybackStats(
            buffering_count=self.buffering_count,
            total_buffering_time=buffering_time,
            playback_duration=duration,
            buffering_ratio=ratio,
        )

    def analyze(self) -> PerformanceAnalysis:
        """Decide whether the session calls for a lower or higher quality."""
        stats = self.get_stats()
        duration = stats.playback_duration

        should_reduce = (
            (duration > REDUCE_MIN_DURATION_FOR_COUNT and stats.buffering_count >= REDUCE_BUFFERING_COUNT)
            or (duration > REDUCE_MIN_DURATION_FOR_RATIO and stats.buffering_ratio > REDUCE_BUFFERING_RATIO)
        )

        should_increase = (
            duration > INCREASE_MIN_DURATION
            and stats.buffering_count <= INCREASE_MAX_BUFFERING_COUNT
            and stats.buffering_ratio < INCREASE_MAX_BUFFERING_RATIO
        )

        if should_reduce and should_increase:
            logger.error(f"Contradictory playback analysis, keeping quality down: {stats}")
            should_increase = False

        return PerformanceAnalysis(
            should_reduce=should_reduce,
            should_increase=should_increase,
            stats=stats,
        )
