"""Video models.

The video metadata store keeps the uploaded source URL and, once the
transcoding pipeline succeeds, one URL per rendition tier.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from reelcast.core.database import Base


class VideoTranscodeStatus(str, Enum):
    """Transcoding state of a video."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class Video(Base):
    """Uploaded video and its rendition URLs."""

    __tablename__ = "videos"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Source upload, relative to the uploads root (e.g. /uploads/videos/abc.mp4)
    video_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Renditions, populated only when every tier encoded successfully
    video_url_high: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    video_url_medium: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    video_url_low: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    transcode_status: Mapped[str] = mapped_column(
        String(50), default=VideoTranscodeStatus.PENDING.value
    )
    transcode_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Worker task currently holding the processing claim
    transcode_task_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    original_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    compressed_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Video {self.id} - {self.transcode_status}>"

    @property
    def has_renditions(self) -> bool:
        return bool(self.video_url_high and self.video_url_medium and self.video_url_low)
