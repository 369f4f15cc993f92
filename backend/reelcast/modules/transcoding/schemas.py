"""Pydantic schemas for the transcoding service."""

import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from reelcast.modules.transcoding.presets import Quality


class TranscodeStatus(str, Enum):
    """Status of a transcoding job."""
    PENDING = "pending"
    ENCODING = "encoding"
    COMPLETED = "completed"
    FAILED = "failed"


class CleanupOutcome(str, Enum):
    """Outcome of the secondary source-deletion step."""
    DELETED = "deleted"
    SKIPPED = "skipped"  # delete_original was False, or the job failed
    FAILED = "failed"


class TranscodeJob(BaseModel):
    """One source video being turned into the rendition ladder."""
    source_path: str = Field(..., description="Path to source video file")
    output_dir: str = Field(..., description="Directory receiving the renditions")
    base_filename: str = Field(..., description="Rendition file name stem")
    delete_original: bool = True
    status: TranscodeStatus = TranscodeStatus.PENDING
    current_quality: Optional[Quality] = None
    renditions: dict[Quality, Optional[str]] = Field(
        default_factory=lambda: {q: None for q in Quality}
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (TranscodeStatus.COMPLETED, TranscodeStatus.FAILED)


class RenditionInfo(BaseModel):
    """A written rendition and its size."""
    quality: Quality
    path: str
    url: str
    file_size: int
    reduction_percent: float


class TranscodeResult(BaseModel):
    """Result of a full ladder transcode."""
    success: bool
    original: str
    original_size: int = 0
    renditions: dict[Quality, Optional[str]] = Field(
        default_factory=lambda: {q: None for q in Quality}
    )
    urls: dict[Quality, Optional[str]] = Field(
        default_factory=lambda: {q: None for q in Quality}
    )
    outputs: list[RenditionInfo] = Field(default_factory=list)
    total_compressed_size: int = 0
    failed_quality: Optional[Quality] = None
    error_message: Optional[str] = None
    cleanup: CleanupOutcome = CleanupOutcome.SKIPPED
    cleanup_error: Optional[str] = None

    @property
    def reduction_percent(self) -> Optional[float]:
        """Total saving of all renditions against the original, in percent."""
        return calculate_reduction_percent(self.original_size, self.total_compressed_size)


class MigrationReport(BaseModel):
    """Summary of a legacy-content migration batch."""
    total: int = 0
    transcoded: list[uuid.UUID] = Field(default_factory=list)
    skipped: list[uuid.UUID] = Field(default_factory=list)
    failed: list[uuid.UUID] = Field(default_factory=list)


class ThumbnailResult(BaseModel):
    """Result of thumbnail generation."""
    success: bool
    output_path: str
    error_message: Optional[str] = None


class PresetResponse(BaseModel):
    """Schema for exposing a quality preset."""
    name: Quality
    width: int
    height: int
    video_bitrate: str
    audio_bitrate: str
    crf: int
    filename_suffix: str


class TranscodeQueuedResponse(BaseModel):
    """Schema returned when a background job is queued."""
    task_id: str
    video_id: Optional[uuid.UUID] = None
    status: str = "queued"


def calculate_reduction_percent(original_size: int, compressed_size: int) -> Optional[float]:
    """Size reduction as a percentage: (1 - compressed / original) * 100.

    Args:
        original_size: Source size in bytes
        compressed_size: Output size in bytes

    Returns:
        Reduction percentage, or None when the original size is unknown
    """
    if original_size <= 0:
        return None
    return (1 - compressed_size / original_size) * 100
