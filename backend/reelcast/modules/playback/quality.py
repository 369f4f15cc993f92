"""Adaptive quality decision engine.

Owns the current rendition tier and revises it from playback telemetry on
a periodic tick. Changes move one tier at a time and every change restarts
the telemetry session, so a new decision always needs a fresh window of
evidence. The chosen tier applies to the next playback attempt.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from reelcast.core.config import settings as app_settings
from reelcast.modules.playback.network import ConnectivityReading, NetworkClassifier
from reelcast.modules.playback.telemetry import (
    PlaybackStats,
    PlaybackStatus,
    PlaybackTelemetryMonitor,
)
from reelcast.modules.transcoding.presets import (
    QUALITY_LADDER,
    Quality,
    parse_quality,
    step_down,
    step_up,
)

logger = logging.getLogger(__name__)

QualityChangeCallback = Callable[[Quality], None]

DEFAULT_CHECK_INTERVAL = app_settings.QUALITY_CHECK_INTERVAL_SECONDS


@dataclass(frozen=True)
class QualitySettings:
    """Player settings for a quality tier."""
    progress_update_interval_ms: int
    label: str
    description: str


QUALITY_SETTINGS: dict[Quality, QualitySettings] = {
    Quality.HIGH: QualitySettings(
        progress_update_interval_ms=500,
        label="High quality",
        description="Best picture (Wi-Fi recommended)",
    ),
    Quality.MEDIUM: QualitySettings(
        progress_update_interval_ms=1000,
        label="Medium quality",
        description="Balance between quality and data usage",
    ),
    Quality.LOW: QualitySettings(
        progress_update_interval_ms=2000,
        label="Data saver",
        description="Reduced quality for slow connections",
    ),
}

# Fallback order when the requested rendition is missing
_RENDITION_FALLBACK: dict[Quality, tuple[Quality, ...]] = {
    Quality.HIGH: (Quality.HIGH, Quality.MEDIUM, Quality.LOW),
    Quality.MEDIUM: (Quality.MEDIUM, Quality.LOW, Quality.HIGH),
    Quality.LOW: (Quality.LOW, Quality.MEDIUM, Quality.HIGH),
}


def _is_valid_url(url: Optional[str]) -> bool:
    return bool(url) and "null" not in url


def select_rendition_url(record: Any, quality: Quality) -> Optional[str]:
    """Pick the URL to play for a quality tier.

    Falls back to the nearest available rendition, then to the source
    upload when the video has not been transcoded.

    Args:
        record: Object with video_url and video_url_<tier> attributes
        quality: Requested tier

    Returns:
        URL to play, or None when the video has no playable file
    """
    for candidate in _RENDITION_FALLBACK[quality]:
        url = getattr(record, f"video_url_{candidate.value}", None)
        if _is_valid_url(url):
            return url

    source = getattr(record, "video_url", None)
    return source if _is_valid_url(source) else None


class QualityDecisionEngine:
    """Hysteresis-based rendition quality controller."""

    def __init__(
        self,
        initial_quality: Quality = Quality.MEDIUM,
        monitor: Optional[PlaybackTelemetryMonitor] = None,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
    ):
        """Initialize engine.

        Args:
            initial_quality: Starting tier, e.g. NetworkClassifier.recommend()
            monitor: Telemetry monitor; a new one is created when omitted
            check_interval: Seconds between evaluation ticks
        """
        self.current_quality = parse_quality(initial_quality) or Quality.MEDIUM
        self.monitor = monitor or PlaybackTelemetryMonitor()
        self.check_interval = check_interval
        self._on_change: Optional[QualityChangeCallback] = None
        self._task: Optional[asyncio.Task] = None
        self.monitor.reset()
        logger.info(f"Initial quality: {self.current_quality.value}")

    @classmethod
    def from_network(
        cls,
        classifier: NetworkClassifier,
        reading: Optional[ConnectivityReading] = None,
        **kwargs: Any,
    ) -> "QualityDecisionEngine":
        """Create an engine starting at the tier recommended for the network.

        The network class only seeds the initial tier; later changes come
        from playback telemetry alone.
        """
        network_class = classifier.classify(reading)
        logger.info(f"Network class: {network_class.value}")
        return cls(initial_quality=classifier.recommend(network_class), **kwargs)

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_monitoring(self, on_change: QualityChangeCallback) -> None:
        """Start the periodic evaluation tick on the running event loop.

        Calling it again while running only replaces the callback.
        """
        self._on_change = on_change
        if self.is_monitoring:
            return

        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Quality monitoring started")

    def stop_monitoring(self) -> None:
        """Cancel the evaluation tick. Safe to call at any time."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("Quality monitoring stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            self.evaluate()

    def evaluate(self) -> Optional[Quality]:
        """Run one evaluation tick.

        Returns:
            The new quality when a transition happened, else None
        """
        analysis = self.monitor.analyze()
        stats = analysis.stats
        logger.debug(
            f"Performance check: quality={self.current_quality.value} "
            f"bufferings={stats.buffering_count} ratio={stats.buffering_ratio * 100:.1f}%"
        )

        if analysis.should_reduce and self.current_quality != Quality.LOW:
            new_quality = step_down(self.current_quality)
            logger.info(f"Reducing quality: {self.current_quality.value} -> {new_quality.value}")
        elif analysis.should_increase and self.current_quality != Quality.HIGH:
            new_quality = step_up(self.current_quality)
            logger.info(f"Increasing quality: {self.current_quality.value} -> {new_quality.value}")
        else:
            return None

        self._set_quality(new_quality)
        return new_quality

    def manual_override(self, quality: "Quality | str") -> bool:
        """Apply an explicit user choice, bypassing the analysis.

        Args:
            quality: Target tier

        Returns:
            True when applied, False when the target is not a valid tier
        """
        target = parse_quality(quality)
        if target is None:
            logger.warning(f"Rejected manual quality override to {quality!r}")
            return False

        logger.info(f"Manual quality change: {self.current_quality.value} -> {target.value}")
        self._set_quality(target)
        return True

    def _set_quality(self, quality: Quality) -> None:
        self.current_quality = quality
        self.monitor.reset()

        if self._on_change is not None:
            try:
                self._on_change(quality)
            except Exception:
                logger.exception("Quality change callback failed")

    def on_playback_status(self, status: PlaybackStatus) -> None:
        """Forward a player status tick to the telemetry monitor."""
        self.monitor.on_status(status)

    @property
    def settings(self) -> QualitySettings:
        """Player settings for the current tier."""
        return QUALITY_SETTINGS[self.current_quality]

    def select_url(self, record: Any) -> Optional[str]:
        """URL of the current tier's rendition for a video record."""
        return select_rendition_url(record, self.current_quality)

    def get_stats(self) -> dict:
        """Current quality and session statistics."""
        stats: PlaybackStats = self.monitor.get_stats()
        return {
            "current_quality": self.current_quality.value,
            "tier_index": QUALITY_LADDER.index(self.current_quality),
            "buffering_count": stats.buffering_count,
            "total_buffering_time": stats.total_buffering_time,
            "playback_duration": stats.playback_duration,
            "buffering_ratio": stats.buffering_ratio,
        }

    def destroy(self) -> None:
        self.stop_monitoring()
        self._on_change = None
