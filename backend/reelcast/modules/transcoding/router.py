"""Transcoding API router."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from reelcast.core.database import get_db
from reelcast.modules.transcoding.presets import all_presets
from reelcast.modules.transcoding.schemas import PresetResponse, TranscodeQueuedResponse
from reelcast.modules.transcoding.tasks import migrate_existing_videos_task, transcode_video_task
from reelcast.modules.video.service import VideoNotFoundError, VideoService

router = APIRouter(prefix="/transcoding", tags=["transcoding"])


@router.get("/presets", response_model=list[PresetResponse])
async def list_presets():
    """List the rendition ladder in encode order."""
    return [
        PresetResponse(
            name=p.name,
            width=p.width,
            height=p.height,
            video_bitrate=p.video_bitrate,
            audio_bitrate=p.audio_bitrate,
            crf=p.crf,
            filename_suffix=p.filename_suffix,
        )
        for p in all_presets()
    ]


@router.post(
    "/videos/{video_id}",
    response_model=TranscodeQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_video_transcode(
    video_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Queue a video for transcoding into the rendition ladder."""
    service = VideoService(db)
    try:
        await service.get_video(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    task = transcode_video_task.delay(str(video_id))
    return TranscodeQueuedResponse(task_id=task.id, video_id=video_id)


@router.post(
    "/migrate",
    response_model=TranscodeQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_migration():
    """Queue transcoding of every legacy video without renditions."""
    task = migrate_existing_videos_task.delay()
    return TranscodeQueuedResponse(task_id=task.id)
