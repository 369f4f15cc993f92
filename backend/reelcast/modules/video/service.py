"""Video service for rendition lookup."""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from reelcast.modules.playback.network import NetworkClass, NetworkClassifier
from reelcast.modules.playback.quality import select_rendition_url
from reelcast.modules.transcoding.schemas import calculate_reduction_percent
from reelcast.modules.video.models import Video
from reelcast.modules.video.repository import VideoRepository
from reelcast.modules.video.schemas import VideoRenditionsResponse


class VideoServiceError(Exception):
    """Base exception for video service errors."""
    pass


class VideoNotFoundError(VideoServiceError):
    """Raised when video is not found."""
    pass


class VideoService:
    """Service for video rendition queries."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.video_repo = VideoRepository(session)

    async def get_video(self, video_id: uuid.UUID) -> Video:
        """Get a video or raise VideoNotFoundError."""
        video = await self.video_repo.get_by_id(video_id)
        if not video:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return video

    async def get_renditions(
        self,
        video_id: uuid.UUID,
        network: NetworkClass = NetworkClass.UNKNOWN,
    ) -> VideoRenditionsResponse:
        """Rendition URLs with the starting tier recommended for a network.

        Args:
            video_id: Video UUID
            network: Client network class

        Returns:
            VideoRenditionsResponse
        """
        video = await self.get_video(video_id)
        quality = NetworkClassifier.recommend(network)

        savings = None
        if video.original_size and video.compressed_size:
            savings = calculate_reduction_percent(video.original_size, video.compressed_size)

        return VideoRenditionsResponse(
            id=video.id,
            video_url=video.video_url,
            thumbnail_url=video.thumbnail_url,
            video_url_high=video.video_url_high,
            video_url_medium=video.video_url_medium,
            video_url_low=video.video_url_low,
            transcode_status=video.transcode_status,
            network=network,
            recommended_quality=quality,
            selected_url=select_rendition_url(video, quality),
            compression_savings_percent=savings,
        )
