"""Transcoding module.

Turns one uploaded video into high / medium / low renditions with FFmpeg,
extracts a poster frame, and migrates legacy uploads that were stored
before renditions existed.
"""

from reelcast.modules.transcoding.presets import (
    ENCODE_ORDER,
    QUALITY_LADDER,
    QUALITY_PRESETS,
    Quality,
    QualityPreset,
    get_preset,
)
from reelcast.modules.transcoding.ffmpeg import FFmpegEncoder, RenditionOutput, VideoInfo
from reelcast.modules.transcoding.schemas import (
    CleanupOutcome,
    MigrationReport,
    TranscodeJob,
    TranscodeResult,
    TranscodeStatus,
)
from reelcast.modules.transcoding.service import (
    EncodeError,
    TranscodingError,
    TranscodingOrchestrator,
)

__all__ = [
    # Presets
    "ENCODE_ORDER",
    "QUALITY_LADDER",
    "QUALITY_PRESETS",
    "Quality",
    "QualityPreset",
    "get_preset",
    # Encoder
    "FFmpegEncoder",
    "RenditionOutput",
    "VideoInfo",
    # Schemas
    "CleanupOutcome",
    "MigrationReport",
    "TranscodeJob",
    "TranscodeResult",
    "TranscodeStatus",
    # Service
    "EncodeError",
    "TranscodingError",
    "TranscodingOrchestrator",
]
