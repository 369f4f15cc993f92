"""Video API router."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from reelcast.core.database import get_db
from reelcast.modules.playback.network import NetworkClass
from reelcast.modules.video.schemas import VideoRenditionsResponse
from reelcast.modules.video.service import VideoNotFoundError, VideoService

router = APIRouter(prefix="/videos", tags=["videos"])


@router.get("/{video_id}/renditions", response_model=VideoRenditionsResponse)
async def get_video_renditions(
    video_id: uuid.UUID,
    network: NetworkClass = Query(NetworkClass.UNKNOWN, description="Client network class"),
    db: AsyncSession = Depends(get_db),
):
    """Get rendition URLs and the starting quality for the client's network."""
    service = VideoService(db)
    try:
        return await service.get_renditions(video_id, network)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
