"""Adaptive playback control.

Client-side logic: classify the network for the starting tier, watch
buffering during playback, and step the rendition tier up or down.
"""

from reelcast.modules.playback.network import (
    ConnectivityReading,
    NetworkClass,
    NetworkClassifier,
)
from reelcast.modules.playback.telemetry import (
    PerformanceAnalysis,
    PlaybackStats,
    PlaybackStatus,
    PlaybackTelemetryMonitor,
)
from reelcast.modules.playback.quality import (
    QUALITY_SETTINGS,
    QualityDecisionEngine,
    select_rendition_url,
)

__all__ = [
    "ConnectivityReading",
    "NetworkClass",
    "NetworkClassifier",
    "PerformanceAnalysis",
    "PlaybackStats",
    "PlaybackStatus",
    "PlaybackTelemetryMonitor",
    "QUALITY_SETTINGS",
    "QualityDecisionEngine",
    "select_rendition_url",
]
