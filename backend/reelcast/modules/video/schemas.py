"""Pydantic schemas for video rendition lookup."""

import uuid
from typing import Optional

from pydantic import BaseModel

from reelcast.modules.playback.network import NetworkClass
from reelcast.modules.transcoding.presets import Quality


class VideoRenditionsResponse(BaseModel):
    """Rendition URLs of a video plus the tier picked for the client."""
    id: uuid.UUID
    video_url: Optional[str]
    thumbnail_url: Optional[str]
    video_url_high: Optional[str]
    video_url_medium: Optional[str]
    video_url_low: Optional[str]
    transcode_status: str
    network: NetworkClass
    recommended_quality: Quality
    selected_url: Optional[str]
    compression_savings_percent: Optional[float] = None

    class Config:
        from_attributes = True
