"""Service layer for transcoding operations.

The orchestrator turns one source upload into the three-tier rendition
ladder. Presets are encoded one after another; the first failure ends the
job, removes whatever renditions the job already wrote and keeps the
source. The source is deleted only after every tier succeeded, as a
separate cleanup step whose failure does not affect the job.
"""

import logging
import os
import uuid
from typing import Optional

from reelcast.core.config import settings
from reelcast.core.logging import log_error, log_info, log_warning, set_correlation_id
from reelcast.modules.transcoding.ffmpeg import FFmpegEncoder, ProgressCallback
from reelcast.modules.transcoding.presets import ENCODE_ORDER, Quality, get_preset, parse_quality
from reelcast.modules.transcoding.schemas import (
    CleanupOutcome,
    MigrationReport,
    RenditionInfo,
    ThumbnailResult,
    TranscodeJob,
    TranscodeResult,
    TranscodeStatus,
    calculate_reduction_percent,
)
from reelcast.modules.video.models import Video, VideoTranscodeStatus
from reelcast.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class TranscodingError(Exception):
    """Base exception for transcoding errors."""
    pass


class EncodeError(TranscodingError):
    """A rendition could not be encoded."""

    def __init__(self, quality: Optional["Quality | str"], message: str):
        self.quality = parse_quality(quality) if quality is not None else None
        self.message = message
        # Plain args so the exception survives the Celery result backend
        super().__init__(quality, message)

    def __str__(self) -> str:
        tier = self.quality.value if self.quality else "source"
        return f"Transcoding {tier} failed: {self.message}"


def _collect_partial(written: list[str], output_path: Optional[str]) -> None:
    """Add a half-written file of the failing preset to the cleanup list."""
    if output_path and output_path not in written and os.path.exists(output_path):
        written.append(output_path)


class TranscodingOrchestrator:
    """Drives the encoder across the preset ladder for one video at a time."""

    def __init__(
        self,
        encoder: FFmpegEncoder,
        uploads_dir: str,
        uploads_url_root: str = "/uploads",
        delete_original: bool = True,
        thumbnail_timestamp: float = 1.0,
    ):
        """Initialize orchestrator.

        Args:
            encoder: Encoder capability used for every rendition
            uploads_dir: Filesystem root served under uploads_url_root
            uploads_url_root: Public URL root of the uploads directory
            delete_original: Default for jobs created by this orchestrator
            thumbnail_timestamp: Default thumbnail offset in seconds
        """
        self.encoder = encoder
        self.uploads_dir = uploads_dir
        self.uploads_url_root = uploads_url_root.rstrip("/")
        self.delete_original = delete_original
        self.thumbnail_timestamp = thumbnail_timestamp

    @classmethod
    def from_settings(cls, encoder: Optional[FFmpegEncoder] = None) -> "TranscodingOrchestrator":
        """Build an orchestrator from application settings."""
        return cls(
            encoder=encoder or FFmpegEncoder(
                settings.FFMPEG_PATH,
                settings.FFPROBE_PATH,
                encode_timeout=settings.TRANSCODE_ENCODE_TIMEOUT_SECONDS,
            ),
            uploads_dir=settings.UPLOADS_DIR,
            uploads_url_root=settings.UPLOADS_URL_ROOT,
            delete_original=settings.TRANSCODE_DELETE_ORIGINAL,
            thumbnail_timestamp=settings.THUMBNAIL_TIMESTAMP_SECONDS,
        )

    @property
    def videos_dir(self) -> str:
        return os.path.join(self.uploads_dir, "videos")

    def rendition_url(self, filename: str) -> str:
        """Public URL of a file in the videos directory."""
        return f"{self.uploads_url_root}/videos/{os.path.basename(filename)}"

    def resolve_source_path(self, video_url: str) -> str:
        """Map a stored upload URL (/uploads/videos/x.mp4) to a file path."""
        relative = video_url
        if relative.startswith(self.uploads_url_root + "/"):
            relative = relative[len(self.uploads_url_root):]
        return os.path.join(self.uploads_dir, relative.lstrip("/"))

    def create_job(
        self,
        source_path: str,
        base_filename: Optional[str] = None,
        output_dir: Optional[str] = None,
        delete_original: Optional[bool] = None,
    ) -> TranscodeJob:
        """Create a job for a source file with orchestrator defaults."""
        if base_filename is None:
            base_filename = os.path.splitext(os.path.basename(source_path))[0]

        return TranscodeJob(
            source_path=source_path,
            output_dir=output_dir or self.videos_dir,
            base_filename=base_filename,
            delete_original=self.delete_original if delete_original is None else delete_original,
        )

    def transcode(
        self,
        job: TranscodeJob,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TranscodeResult:
        """Encode every preset for one job.

        Args:
            job: Job to run; mutated as presets complete
            progress_callback: Optional callback receiving (quality, percent)

        Returns:
            TranscodeResult; on failure no rendition paths are reported
        """
        log_info(logger, f"Starting transcode of {job.base_filename}", source=job.source_path)
        result = TranscodeResult(success=False, original=job.source_path)
        job.status = TranscodeStatus.ENCODING

        try:
            os.makedirs(job.output_dir, exist_ok=True)
            result.original_size = os.path.getsize(job.source_path)
        except OSError as e:
            return self._fail(job, result, None, str(e), written=[])

        logger.info(f"Original size: {result.original_size / MB:.2f} MB")

        # Read once per job; every preset reports progress against it
        duration = None
        if progress_callback:
            info = self.encoder.get_video_info(job.source_path)
            duration = info.duration if info else 0.0

        written: list[str] = []
        output_path: Optional[str] = None
        try:
            for quality in ENCODE_ORDER:
                preset = get_preset(quality)
                output_path = os.path.join(job.output_dir, preset.output_filename(job.base_filename))
                job.current_quality = quality

                logger.info(f"Encoding {quality.value} rendition of {job.base_filename}")
                output = self.encoder.encode_rendition(
                    job.source_path,
                    output_path,
                    preset,
                    progress_callback=progress_callback,
                    duration=duration,
                )

                if not output.success:
                    _collect_partial(written, output_path)
                    return self._fail(job, result, quality, output.error_message or "unknown error", written)

                written.append(output.output_path)
                job.renditions[quality] = output.output_path
                result.total_compressed_size += output.file_size

                reduction = calculate_reduction_percent(result.original_size, output.file_size) or 0.0
                result.outputs.append(
                    RenditionInfo(
                        quality=quality,
                        path=output.output_path,
                        url=self.rendition_url(output.output_path),
                        file_size=output.file_size,
                        reduction_percent=reduction,
                    )
                )
                logger.info(
                    f"{quality.value} done: {output.file_size / MB:.2f} MB ({reduction:.1f}% reduction)"
                )
        except Exception as e:
            _collect_partial(written, output_path)
            return self._fail(job, result, job.current_quality, f"{type(e).__name__}: {e}", written)

        job.current_quality = None
        job.status = TranscodeStatus.COMPLETED
        result.success = True
        for info in result.outputs:
            result.renditions[info.quality] = info.path
            result.urls[info.quality] = info.url

        if job.delete_original:
            result.cleanup, result.cleanup_error = self._delete_original(job.source_path)

        total_reduction = result.reduction_percent or 0.0
        saved = (result.original_size - result.total_compressed_size) / MB
        log_info(
            logger,
            f"Transcode of {job.base_filename} complete: {total_reduction:.1f}% total saving ({saved:.2f} MB)",
            original_size=result.original_size,
            compressed_size=result.total_compressed_size,
        )
        return result

    def _fail(
        self,
        job: TranscodeJob,
        result: TranscodeResult,
        quality: Optional[Quality],
        message: str,
        written: list[str],
    ) -> TranscodeResult:
        """Mark the job failed and remove the renditions it produced."""
        job.status = TranscodeStatus.FAILED
        job.current_quality = quality
        job.renditions = {q: None for q in Quality}

        tier = quality.value if quality else "source"
        log_error(logger, f"Transcoding {tier} failed: {message}", source=job.source_path)

        self.cleanup_files(written)

        result.success = False
        result.failed_quality = quality
        result.error_message = message
        result.outputs = []
        result.total_compressed_size = 0
        result.cleanup = CleanupOutcome.SKIPPED
        return result

    def _delete_original(self, source_path: str) -> tuple[CleanupOutcome, Optional[str]]:
        """Remove the source after a successful job. Never raises."""
        try:
            os.remove(source_path)
        except OSError as e:
            log_warning(logger, f"Could not delete original {source_path}: {e}")
            return CleanupOutcome.FAILED, str(e)

        logger.info(f"Original deleted: {source_path}")
        return CleanupOutcome.DELETED, None

    def cleanup_files(self, paths: list[str]) -> list[str]:
        """Best-effort removal of files.

        Args:
            paths: Files to remove

        Returns:
            Paths that were removed
        """
        removed = []
        for path in paths:
            try:
                os.remove(path)
                removed.append(path)
                logger.info(f"Removed file: {path}")
            except FileNotFoundError:
                continue
            except OSError as e:
                log_warning(logger, f"Could not remove {path}: {e}")
        return removed

    def generate_thumbnail(
        self,
        source_path: str,
        output_path: Optional[str] = None,
        timestamp: Optional[float] = None,
    ) -> ThumbnailResult:
        """Extract the poster frame of a video.

        Args:
            source_path: Source video
            output_path: Image to write; defaults to <source stem>_thumb.jpg
            timestamp: Offset into the clip in seconds

        Returns:
            ThumbnailResult; failure is reported, never raised
        """
        if output_path is None:
            stem = os.path.splitext(source_path)[0]
            output_path = f"{stem}_thumb.jpg"
        elif not os.path.splitext(output_path)[1]:
            output_path = f"{output_path}.jpg"

        output_dir = os.path.dirname(output_path)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)

        output = self.encoder.extract_thumbnail(
            source_path,
            output_path,
            self.thumbnail_timestamp if timestamp is None else timestamp,
        )

        if output.success:
            logger.info(f"Thumbnail generated: {output.output_path}")
        else:
            log_warning(logger, f"Thumbnail generation failed for {source_path}: {output.error_message}")

        return ThumbnailResult(
            success=output.success,
            output_path=output.output_path,
            error_message=output.error_message,
        )

    async def transcode_video(
        self,
        video: Video,
        repository: VideoRepository,
        task_id: Optional[str] = None,
    ) -> TranscodeResult:
        """Transcode a stored video and persist its rendition URLs on success.

        Any exception after the video was claimed marks it failed before it
        propagates, so the row never stays in processing.

        Args:
            video: Video to transcode
            repository: Video repository
            task_id: Id of the worker task claiming the video

        Returns:
            TranscodeResult
        """
        video_id = video.id
        set_correlation_id(f"video-{video_id}")
        source_path = self.resolve_source_path(video.video_url)
        job = self.create_job(source_path, output_dir=self.videos_dir)

        try:
            await repository.set_transcode_status(
                video, VideoTranscodeStatus.PROCESSING, task_id=task_id
            )

            # The source may be deleted by the transcode, so grab the poster first
            if not video.thumbnail_url:
                await self._attach_thumbnail(video, repository, source_path, job.base_filename)

            result = self.transcode(job)

            if result.success:
                await repository.update_renditions(
                    video,
                    high=result.urls[Quality.HIGH],
                    medium=result.urls[Quality.MEDIUM],
                    low=result.urls[Quality.LOW],
                    original_size=result.original_size,
                    compressed_size=result.total_compressed_size,
                )
            else:
                await repository.set_transcode_status(
                    video, VideoTranscodeStatus.FAILED, result.error_message
                )
        except Exception as e:
            await self._mark_failed(video, video_id, repository, f"{type(e).__name__}: {e}")
            raise

        return result

    async def _attach_thumbnail(
        self,
        video: Video,
        repository: VideoRepository,
        source_path: str,
        base_filename: str,
    ) -> None:
        """Generate and store the poster frame. Failures only log a warning."""
        thumb_path = os.path.join(self.uploads_dir, "thumbnails", f"{base_filename}_thumb.jpg")
        try:
            thumbnail = self.generate_thumbnail(source_path, thumb_path)
            if thumbnail.success:
                await repository.set_thumbnail(
                    video, f"{self.uploads_url_root}/thumbnails/{os.path.basename(thumb_path)}"
                )
        except Exception as e:
            log_warning(logger, f"Thumbnail step failed for {base_filename}: {e}")
            await repository.rollback()

    async def _mark_failed(
        self,
        video: Video,
        video_id: uuid.UUID,
        repository: VideoRepository,
        error: str,
    ) -> None:
        """Roll back the session and record the failure on the video."""
        try:
            await repository.rollback()
            await repository.set_transcode_status(video, VideoTranscodeStatus.FAILED, error)
        except Exception as e:
            log_error(logger, f"Could not mark video {video_id} failed", exception=e)

    async def migrate_existing(self, repository: VideoRepository) -> MigrationReport:
        """Transcode every legacy video that has no renditions yet.

        Videos are processed one at a time; a missing source is skipped and
        any other failure is recorded, neither stops the batch. Each video is
        reloaded before processing, since a rollback after an earlier
        failure expires every instance in the session.

        Args:
            repository: Video repository

        Returns:
            MigrationReport with per-video outcome
        """
        pending = [video.id for video in await repository.get_pending_transcode()]
        report = MigrationReport(total=len(pending))
        log_info(logger, f"{len(pending)} videos to transcode")

        for video_id in pending:
            try:
                video = await repository.get_by_id(video_id)
                if video is None:
                    report.skipped.append(video_id)
                    continue

                source_path = self.resolve_source_path(video.video_url)
                if not os.path.exists(source_path):
                    log_warning(logger, f"Video {video_id} source not found: {source_path}")
                    report.skipped.append(video_id)
                    continue

                result = await self.transcode_video(video, repository)
                if result.success:
                    report.transcoded.append(video_id)
                    logger.info(f"Video {video_id} transcoded and updated")
                else:
                    report.failed.append(video_id)
            except Exception as e:
                log_error(logger, f"Migration of video {video_id} failed", exception=e)
                report.failed.append(video_id)
                await self._rollback(repository)

        log_info(
            logger,
            "Migration finished",
            transcoded=len(report.transcoded),
            skipped=len(report.skipped),
            failed=len(report.failed),
        )
        return report

    async def _rollback(self, repository: VideoRepository) -> None:
        try:
            await repository.rollback()
        except Exception as e:
            log_error(logger, "Session rollback failed", exception=e)
