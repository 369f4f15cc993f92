"""Video repository for database operations."""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelcast.modules.video.models import Video, VideoTranscodeStatus


class VideoRepository:
    """Repository for Video rendition bookkeeping."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_by_id(self, video_id: uuid.UUID) -> Optional[Video]:
        """Get a video by ID."""
        result = await self.session.execute(
            select(Video).where(Video.id == video_id)
        )
        return result.scalar_one_or_none()

    async def get_pending_transcode(self) -> list[Video]:
        """Get all videos with a source URL but no high quality rendition."""
        result = await self.session.execute(
            select(Video)
            .where(Video.video_url.is_not(None))
            .where(Video.video_url_high.is_(None))
            .order_by(Video.created_at)
        )
        return list(result.scalars().all())

    async def set_transcode_status(
        self,
        video: Video,
        status: VideoTranscodeStatus,
        error: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> None:
        """Update the transcoding state of a video.

        The worker task id is stored while processing and cleared otherwise.
        """
        video.transcode_status = status.value
        video.transcode_error = error
        video.transcode_task_id = task_id if status == VideoTranscodeStatus.PROCESSING else None
        await self.session.commit()

    async def update_renditions(
        self,
        video: Video,
        high: Optional[str],
        medium: Optional[str],
        low: Optional[str],
        original_size: Optional[int] = None,
        compressed_size: Optional[int] = None,
    ) -> None:
        """Persist rendition URLs after a successful transcode.

        Args:
            video: Video to update
            high: URL of the high rendition
            medium: URL of the medium rendition
            low: URL of the low rendition
            original_size: Source size in bytes
            compressed_size: Total size of all renditions in bytes
        """
        video.video_url_high = high
        video.video_url_medium = medium
        video.video_url_low = low
        video.original_size = original_size
        video.compressed_size = compressed_size
        video.transcode_status = VideoTranscodeStatus.COMPLETED.value
        video.transcode_error = None
        video.transcode_task_id = None
        await self.session.commit()

    async def set_thumbnail(self, video: Video, thumbnail_url: str) -> None:
        """Store the generated thumbnail URL."""
        video.thumbnail_url = thumbnail_url
        await self.session.commit()

    async def rollback(self) -> None:
        """Discard a failed transaction so the session can be reused."""
        await self.session.rollback()
