"""Video records and rendition lookup."""

from reelcast.modules.video.models import Video, VideoTranscodeStatus
from reelcast.modules.video.repository import VideoRepository

__all__ = [
    "Video",
    "VideoTranscodeStatus",
    "VideoRepository",
]
