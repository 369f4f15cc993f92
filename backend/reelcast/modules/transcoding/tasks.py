"""Celery tasks for the transcoding service.

Each task transcodes whole videos on a worker of the bounded Celery pool;
presets inside one job are still encoded sequentially by the orchestrator.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from celery import Task

from reelcast.core.celery_app import celery_app
from reelcast.core.config import settings
from reelcast.core.database import async_session_maker
from reelcast.core.logging import clear_correlation_id, log_error, set_correlation_id
from reelcast.modules.transcoding.service import EncodeError, TranscodingOrchestrator
from reelcast.modules.video.models import Video, VideoTranscodeStatus
from reelcast.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)

# A processing claim older than this is treated as abandoned
DEFAULT_CLAIM_TIMEOUT_SECONDS = 3600


class TranscodeTask(Task):
    """Base task for transcoding operations."""
    abstract = True
    max_retries = 0

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Mark the video failed when the task itself crashed."""
        video_id = args[0] if args else kwargs.get("video_id")
        if isinstance(exc, EncodeError):
            # Already recorded on the video by the orchestrator
            return

        log_error(logger, f"Transcode task {task_id} crashed", exception=exc, video_id=video_id)
        if video_id:
            asyncio.run(_mark_video_failed(video_id, str(exc)))


async def _mark_video_failed(video_id: str, error: str) -> None:
    async with async_session_maker() as session:
        repo = VideoRepository(session)
        video = await repo.get_by_id(uuid.UUID(video_id))
        if video:
            await repo.set_transcode_status(video, VideoTranscodeStatus.FAILED, error)


def is_claimed_by_other_task(
    video: Video,
    task_id: Optional[str],
    now: Optional[datetime] = None,
    timeout_seconds: Optional[float] = None,
) -> bool:
    """Whether another live task holds the processing claim on a video.

    A redelivered task carries the same id and may resume its own claim.
    A claim whose row has not been touched within the timeout is stale.

    Args:
        video: Video record
        task_id: Id of the task asking
        now: Current time (UTC)
        timeout_seconds: Age after which a claim is stale

    Returns:
        True when the caller must not process the video
    """
    if video.transcode_status != VideoTranscodeStatus.PROCESSING.value:
        return False
    if task_id is not None and video.transcode_task_id == task_id:
        return False
    if video.updated_at is None:
        return False

    if timeout_seconds is None:
        timeout_seconds = settings.TRANSCODE_TIMEOUT_SECONDS or DEFAULT_CLAIM_TIMEOUT_SECONDS
    now = now or datetime.now(timezone.utc)
    age = (now - video.updated_at).total_seconds()
    return age < timeout_seconds


def raise_for_failed_job(result: dict) -> dict:
    """Raise EncodeError for a failed encode so Celery records the failure.

    Results that never reached the encoder (missing video, busy video) are
    returned unchanged.
    """
    if not result.get("success") and "failed_quality" in result:
        raise EncodeError(result["failed_quality"], result.get("error") or "unknown error")
    return result


@celery_app.task(bind=True, base=TranscodeTask)
def transcode_video_task(self: TranscodeTask, video_id: str) -> dict:
    """Transcode one uploaded video into the rendition ladder.

    Args:
        video_id: UUID of the video

    Returns:
        dict: Transcoding result

    Raises:
        EncodeError: When a preset failed to encode
    """
    set_correlation_id(self.request.id or f"video-{video_id}")
    try:
        result = asyncio.run(_transcode_video_async(video_id, task_id=self.request.id))
    finally:
        clear_correlation_id()
    return raise_for_failed_job(result)


async def _transcode_video_async(video_id: str, task_id: Optional[str] = None) -> dict:
    """Async implementation of video transcoding."""
    orchestrator = TranscodingOrchestrator.from_settings()
    if not orchestrator.encoder.is_available():
        return {"success": False, "video_id": video_id, "error": "FFmpeg not available"}

    async with async_session_maker() as session:
        repo = VideoRepository(session)

        video = await repo.get_by_id(uuid.UUID(video_id))
        if not video:
            return {"success": False, "video_id": video_id, "error": "Video not found"}

        if not video.video_url:
            await repo.set_transcode_status(video, VideoTranscodeStatus.SKIPPED)
            return {"success": False, "video_id": video_id, "error": "Video has no source file"}

        if is_claimed_by_other_task(video, task_id):
            return {"success": False, "video_id": video_id, "error": "Video already processing"}

        result = await orchestrator.transcode_video(video, repo, task_id=task_id)

        if not result.success:
            return {
                "success": False,
                "video_id": video_id,
                "failed_quality": result.failed_quality.value if result.failed_quality else None,
                "error": result.error_message,
            }

        return {
            "success": True,
            "video_id": video_id,
            "urls": {q.value: url for q, url in result.urls.items()},
            "original_size": result.original_size,
            "compressed_size": result.total_compressed_size,
            "reduction_percent": result.reduction_percent,
            "original_cleanup": result.cleanup.value,
        }


@celery_app.task(bind=True, base=Task)
def migrate_existing_videos_task(self: Task) -> dict:
    """Transcode all legacy videos that have no renditions.

    Returns:
        dict: Migration summary
    """
    set_correlation_id(self.request.id or "migration")
    try:
        return asyncio.run(_migrate_existing_async())
    finally:
        clear_correlation_id()


async def _migrate_existing_async() -> dict:
    """Async implementation of the migration batch."""
    orchestrator = TranscodingOrchestrator.from_settings()
    if not orchestrator.encoder.is_available():
        return {"success": False, "error": "FFmpeg not available"}

    async with async_session_maker() as session:
        report = await orchestrator.migrate_existing(VideoRepository(session))

    return {
        "success": True,
        "total": report.total,
        "transcoded": [str(v) for v in report.transcoded],
        "skipped": [str(v) for v in report.skipped],
        "failed": [str(v) for v in report.failed],
    }
