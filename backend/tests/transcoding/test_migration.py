"""Tests for legacy-content migration and the transcoding tasks.

**Feature: video-delivery, Property 3: Migration Skips Missing Sources**
"""

import os
import sys
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Mock celery_app before importing task modules
sys.modules["reelcast.core.celery_app"] = MagicMock()

from conftest import MB, FakeEncoder, make_sparse_file
from reelcast.modules.transcoding import tasks
from reelcast.modules.transcoding.presets import Quality
from reelcast.modules.transcoding.service import EncodeError, TranscodingOrchestrator
from reelcast.modules.video.models import VideoTranscodeStatus


def _video(name: str, thumbnail_url=None, **fields) -> SimpleNamespace:
    values = dict(
        id=uuid.uuid4(),
        video_url=f"/uploads/videos/{name}.mp4",
        thumbnail_url=thumbnail_url,
        transcode_status=VideoTranscodeStatus.PENDING.value,
        transcode_task_id=None,
        updated_at=None,
    )
    values.update(fields)
    return SimpleNamespace(**values)


def _repository(videos) -> AsyncMock:
    repo = AsyncMock()
    by_id = {video.id: video for video in videos}
    repo.get_pending_transcode.return_value = videos
    repo.get_by_id.side_effect = lambda video_id: by_id.get(video_id)
    return repo


def _status_calls(repo, status: VideoTranscodeStatus) -> list:
    return [c for c in repo.set_transcode_status.await_args_list if c.args[1] == status]


def _session_maker() -> MagicMock:
    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=AsyncMock())
    session_cm.__aexit__ = AsyncMock(return_value=None)
    return session_cm


class TestMigrateExisting:
    """migrate_existing processes each pending video independently."""

    @pytest.mark.asyncio
    async def test_missing_source_is_skipped(self, uploads_dir) -> None:
        videos = [_video(f"legacy{i}") for i in range(4)]
        for i in range(1, 4):
            make_sparse_file(os.path.join(uploads_dir, "videos", f"legacy{i}.mp4"), 5 * MB)
        repo = _repository(videos)
        orchestrator = TranscodingOrchestrator(FakeEncoder(), uploads_dir)

        report = await orchestrator.migrate_existing(repo)

        assert report.total == 4
        assert report.skipped == [videos[0].id]
        assert report.transcoded == [v.id for v in videos[1:]]
        assert report.failed == []
        assert repo.update_renditions.await_count == 3

    @pytest.mark.asyncio
    async def test_updates_carry_rendition_urls(self, uploads_dir, sparse_file) -> None:
        video = _video("clip9")
        sparse_file(os.path.join(uploads_dir, "videos", "clip9.mp4"), 20 * MB)
        repo = _repository([video])

        await TranscodingOrchestrator(FakeEncoder(), uploads_dir).migrate_existing(repo)

        kwargs = repo.update_renditions.await_args.kwargs
        assert kwargs["high"] == "/uploads/videos/clip9_high.mp4"
        assert kwargs["medium"] == "/uploads/videos/clip9_medium.mp4"
        assert kwargs["low"] == "/uploads/videos/clip9_low.mp4"
        assert kwargs["original_size"] == 20 * MB
        assert kwargs["compressed_size"] == 16 * MB

    @pytest.mark.asyncio
    async def test_encode_failure_recorded_and_batch_continues(self, uploads_dir, sparse_file) -> None:
        videos = [_video("a"), _video("b")]
        for name in ("a", "b"):
            sparse_file(os.path.join(uploads_dir, "videos", f"{name}.mp4"), 5 * MB)
        repo = _repository(videos)
        encoder = FakeEncoder(fail_on=Quality.LOW)

        report = await TranscodingOrchestrator(encoder, uploads_dir).migrate_existing(repo)

        assert report.failed == [v.id for v in videos]
        assert repo.update_renditions.await_count == 0
        failed_calls = [
            c for c in repo.set_transcode_status.await_args_list
            if c.args[1] == VideoTranscodeStatus.FAILED
        ]
        assert len(failed_calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_stop_batch(self, uploads_dir, sparse_file) -> None:
        videos = [_video("a"), _video("b")]
        for name in ("a", "b"):
            sparse_file(os.path.join(uploads_dir, "videos", f"{name}.mp4"), 5 * MB)
        repo = _repository(videos)

        async def flaky_status(video, status, *args, **kwargs):
            if video is videos[0] and status == VideoTranscodeStatus.PROCESSING:
                raise RuntimeError("db down")

        repo.set_transcode_status.side_effect = flaky_status

        report = await TranscodingOrchestrator(FakeEncoder(), uploads_dir).migrate_existing(repo)

        assert report.failed == [videos[0].id]
        assert report.transcoded == [videos[1].id]
        repo.rollback.assert_awaited()
        failed = _status_calls(repo, VideoTranscodeStatus.FAILED)
        assert [c.args[0] for c in failed] == [videos[0]]
        assert "db down" in failed[0].args[2]

    @pytest.mark.asyncio
    async def test_session_rolled_back_before_next_video(self, uploads_dir, sparse_file) -> None:
        videos = [_video("a"), _video("b")]
        for name in ("a", "b"):
            sparse_file(os.path.join(uploads_dir, "videos", f"{name}.mp4"), 5 * MB)
        repo = _repository(videos)
        by_id = {video.id: video for video in videos}
        events = []

        async def get_by_id(video_id):
            events.append(("load", video_id))
            if video_id == videos[0].id:
                raise RuntimeError("flush failed")
            return by_id[video_id]

        repo.get_by_id.side_effect = get_by_id
        repo.rollback.side_effect = lambda: events.append(("rollback", None))

        report = await TranscodingOrchestrator(FakeEncoder(), uploads_dir).migrate_existing(repo)

        assert report.failed == [videos[0].id]
        assert report.transcoded == [videos[1].id]
        repo.rollback.assert_awaited_once()
        assert events == [("load", videos[0].id), ("rollback", None), ("load", videos[1].id)]

    @pytest.mark.asyncio
    async def test_persistence_error_marks_video_failed(self, uploads_dir, sparse_file) -> None:
        video = _video("a")
        sparse_file(os.path.join(uploads_dir, "videos", "a.mp4"), 5 * MB)
        repo = _repository([video])
        repo.update_renditions.side_effect = RuntimeError("commit failed")

        report = await TranscodingOrchestrator(FakeEncoder(), uploads_dir).migrate_existing(repo)

        assert report.failed == [video.id]
        repo.rollback.assert_awaited()
        failed = _status_calls(repo, VideoTranscodeStatus.FAILED)
        assert len(failed) == 1
        assert failed[0].args[0] is video
        assert "commit failed" in failed[0].args[2]

    @pytest.mark.asyncio
    async def test_reloads_each_video(self, uploads_dir, sparse_file) -> None:
        videos = [_video("a"), _video("b")]
        for name in ("a", "b"):
            sparse_file(os.path.join(uploads_dir, "videos", f"{name}.mp4"), 5 * MB)
        repo = _repository(videos)

        await TranscodingOrchestrator(FakeEncoder(), uploads_dir).migrate_existing(repo)

        assert [c.args[0] for c in repo.get_by_id.await_args_list] == [v.id for v in videos]

    @pytest.mark.asyncio
    async def test_deleted_row_is_skipped(self, uploads_dir) -> None:
        video = _video("gone")
        repo = _repository([video])
        repo.get_by_id.side_effect = None
        repo.get_by_id.return_value = None

        report = await TranscodingOrchestrator(FakeEncoder(), uploads_dir).migrate_existing(repo)

        assert report.skipped == [video.id]
        assert report.failed == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, uploads_dir) -> None:
        report = await TranscodingOrchestrator(FakeEncoder(), uploads_dir).migrate_existing(_repository([]))

        assert report.total == 0
        assert report.transcoded == report.skipped == report.failed == []


class TestTranscodeVideo:
    """transcode_video persists results on the video record."""

    @pytest.mark.asyncio
    async def test_thumbnail_generated_before_source_deleted(self, uploads_dir, source_video) -> None:
        video = _video("clip123")
        repo = _repository([])
        encoder = FakeEncoder()

        result = await TranscodingOrchestrator(encoder, uploads_dir).transcode_video(video, repo)

        assert result.success is True
        repo.set_thumbnail.assert_awaited_once_with(video, "/uploads/thumbnails/clip123_thumb.jpg")
        assert encoder.thumbnail_calls[0][0] == source_video
        assert not os.path.exists(source_video)

    @pytest.mark.asyncio
    async def test_existing_thumbnail_kept(self, uploads_dir, source_video) -> None:
        video = _video("clip123", thumbnail_url="/uploads/thumbnails/custom.jpg")
        repo = _repository([])
        encoder = FakeEncoder()

        await TranscodingOrchestrator(encoder, uploads_dir).transcode_video(video, repo)

        assert encoder.thumbnail_calls == []
        repo.set_thumbnail.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_thumbnail_failure_does_not_block_transcode(self, uploads_dir, source_video) -> None:
        video = _video("clip123")
        repo = _repository([])

        result = await TranscodingOrchestrator(
            FakeEncoder(thumbnail_fails=True), uploads_dir
        ).transcode_video(video, repo)

        assert result.success is True
        repo.set_thumbnail.assert_not_awaited()
        repo.update_renditions.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_thumbnail_store_error_does_not_block_transcode(self, uploads_dir, source_video) -> None:
        video = _video("clip123")
        repo = _repository([])
        repo.set_thumbnail.side_effect = RuntimeError("db blip")

        result = await TranscodingOrchestrator(FakeEncoder(), uploads_dir).transcode_video(video, repo)

        assert result.success is True
        repo.rollback.assert_awaited_once()
        repo.update_renditions.assert_awaited_once()
        assert _status_calls(repo, VideoTranscodeStatus.FAILED) == []

    @pytest.mark.asyncio
    async def test_claim_carries_task_id(self, uploads_dir, source_video) -> None:
        video = _video("clip123")
        repo = _repository([])

        await TranscodingOrchestrator(FakeEncoder(), uploads_dir).transcode_video(video, repo, task_id="task-7")

        processing = _status_calls(repo, VideoTranscodeStatus.PROCESSING)
        assert processing[0].kwargs["task_id"] == "task-7"

    @pytest.mark.asyncio
    async def test_error_after_claim_is_recorded_and_raised(self, uploads_dir, source_video) -> None:
        video = _video("clip123")
        repo = _repository([])
        repo.update_renditions.side_effect = RuntimeError("connection reset")

        with pytest.raises(RuntimeError):
            await TranscodingOrchestrator(FakeEncoder(), uploads_dir).transcode_video(video, repo)

        repo.rollback.assert_awaited_once()
        failed = _status_calls(repo, VideoTranscodeStatus.FAILED)
        assert failed[0].args[2] == "RuntimeError: connection reset"


class TestTranscodeTask:
    """Tests for the async body of the Celery task."""

    @pytest.mark.asyncio
    async def test_encoder_unavailable(self) -> None:
        orchestrator = MagicMock()
        orchestrator.encoder.is_available.return_value = False

        with patch.object(tasks.TranscodingOrchestrator, "from_settings", return_value=orchestrator):
            result = await tasks._transcode_video_async(str(uuid.uuid4()))

        assert result["success"] is False
        assert result["error"] == "FFmpeg not available"

    @pytest.mark.asyncio
    async def test_video_not_found(self) -> None:
        orchestrator = MagicMock()
        orchestrator.encoder.is_available.return_value = True
        session = AsyncMock()
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=session)
        session_cm.__aexit__ = AsyncMock(return_value=None)
        repo = AsyncMock()
        repo.get_by_id.return_value = None

        with patch.object(tasks.TranscodingOrchestrator, "from_settings", return_value=orchestrator), \
                patch.object(tasks, "async_session_maker", return_value=session_cm), \
                patch.object(tasks, "VideoRepository", return_value=repo):
            result = await tasks._transcode_video_async(str(uuid.uuid4()))

        assert result == {"success": False, "video_id": result["video_id"], "error": "Video not found"}

    @pytest.mark.asyncio
    async def test_failed_quality_reported(self, uploads_dir, source_video) -> None:
        video = _video("clip123")
        orchestrator = TranscodingOrchestrator(FakeEncoder(fail_on=Quality.MEDIUM), uploads_dir)
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=AsyncMock())
        session_cm.__aexit__ = AsyncMock(return_value=None)
        repo = AsyncMock()
        repo.get_by_id.return_value = video

        with patch.object(tasks.TranscodingOrchestrator, "from_settings", return_value=orchestrator), \
                patch.object(tasks, "async_session_maker", return_value=session_cm), \
                patch.object(tasks, "VideoRepository", return_value=repo):
            result = await tasks._transcode_video_async(str(video.id))

        assert result["success"] is False
        assert result["failed_quality"] == "medium"
        assert os.path.exists(source_video)

    @pytest.mark.asyncio
    async def test_redelivered_task_resumes_own_claim(self, uploads_dir, source_video) -> None:
        video = _video(
            "clip123",
            transcode_status=VideoTranscodeStatus.PROCESSING.value,
            transcode_task_id="task-1",
            updated_at=datetime.now(timezone.utc),
        )
        orchestrator = TranscodingOrchestrator(FakeEncoder(), uploads_dir)
        repo = _repository([video])

        with patch.object(tasks.TranscodingOrchestrator, "from_settings", return_value=orchestrator), \
                patch.object(tasks, "async_session_maker", return_value=_session_maker()), \
                patch.object(tasks, "VideoRepository", return_value=repo):
            result = await tasks._transcode_video_async(str(video.id), task_id="task-1")

        assert result["success"] is True
        repo.update_renditions.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_live_claim_of_other_task_is_respected(self, uploads_dir, source_video) -> None:
        video = _video(
            "clip123",
            transcode_status=VideoTranscodeStatus.PROCESSING.value,
            transcode_task_id="task-1",
            updated_at=datetime.now(timezone.utc),
        )
        encoder = FakeEncoder()
        repo = _repository([video])

        with patch.object(
            tasks.TranscodingOrchestrator, "from_settings",
            return_value=TranscodingOrchestrator(encoder, uploads_dir),
        ), patch.object(tasks, "async_session_maker", return_value=_session_maker()), \
                patch.object(tasks, "VideoRepository", return_value=repo):
            result = await tasks._transcode_video_async(str(video.id), task_id="task-2")

        assert result["error"] == "Video already processing"
        assert encoder.calls == []


class TestProcessingClaim:
    """is_claimed_by_other_task decides whether a worker may take a video."""

    NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    def _processing(self, task_id="task-1", age_seconds=10) -> SimpleNamespace:
        return _video(
            "a",
            transcode_status=VideoTranscodeStatus.PROCESSING.value,
            transcode_task_id=task_id,
            updated_at=self.NOW - timedelta(seconds=age_seconds),
        )

    @pytest.mark.parametrize(
        "status",
        [VideoTranscodeStatus.PENDING, VideoTranscodeStatus.FAILED, VideoTranscodeStatus.COMPLETED],
    )
    def test_not_processing(self, status: VideoTranscodeStatus) -> None:
        video = _video("a", transcode_status=status.value, transcode_task_id="task-1", updated_at=self.NOW)
        assert tasks.is_claimed_by_other_task(video, "task-2", now=self.NOW) is False

    def test_same_task_may_resume(self) -> None:
        assert tasks.is_claimed_by_other_task(self._processing(), "task-1", now=self.NOW) is False

    def test_fresh_claim_of_other_task(self) -> None:
        video = self._processing()
        assert tasks.is_claimed_by_other_task(video, "task-2", now=self.NOW, timeout_seconds=60) is True

    def test_stale_claim_expires(self) -> None:
        video = self._processing(age_seconds=120)
        assert tasks.is_claimed_by_other_task(video, "task-2", now=self.NOW, timeout_seconds=60) is False

    def test_claim_without_task_id(self) -> None:
        video = self._processing(task_id=None)
        assert tasks.is_claimed_by_other_task(video, None, now=self.NOW, timeout_seconds=60) is True

    def test_unknown_update_time(self) -> None:
        video = _video("a", transcode_status=VideoTranscodeStatus.PROCESSING.value, transcode_task_id="x")
        assert tasks.is_claimed_by_other_task(video, "task-2", now=self.NOW) is False


class TestTaskFailureReporting:
    """Failed encodes surface to Celery as EncodeError."""

    def test_failed_job_raises(self) -> None:
        result = {"success": False, "video_id": "v", "failed_quality": "medium", "error": "encoder crashed"}

        with pytest.raises(EncodeError) as excinfo:
            tasks.raise_for_failed_job(result)

        assert excinfo.value.quality == Quality.MEDIUM
        assert excinfo.value.message == "encoder crashed"
        assert str(excinfo.value) == "Transcoding medium failed: encoder crashed"

    def test_source_failure_raises_without_quality(self) -> None:
        result = {"success": False, "video_id": "v", "failed_quality": None, "error": "No such file"}

        with pytest.raises(EncodeError) as excinfo:
            tasks.raise_for_failed_job(result)

        assert excinfo.value.quality is None
        assert str(excinfo.value) == "Transcoding source failed: No such file"

    @pytest.mark.parametrize("error", ["Video not found", "Video already processing", "FFmpeg not available"])
    def test_results_before_encoding_pass_through(self, error: str) -> None:
        result = {"success": False, "video_id": "v", "error": error}
        assert tasks.raise_for_failed_job(result) is result

    def test_success_passes_through(self) -> None:
        result = {"success": True, "video_id": "v"}
        assert tasks.raise_for_failed_job(result) is result

    def test_error_args_are_plain_values(self) -> None:
        error = EncodeError(Quality.LOW, "boom")
        assert error.args == (Quality.LOW, "boom")
        assert EncodeError(*error.args).quality == Quality.LOW

    def test_on_failure_skips_encode_errors(self) -> None:
        with patch.object(tasks.asyncio, "run") as run, \
                patch.object(tasks, "_mark_video_failed", MagicMock()):
            tasks.TranscodeTask.on_failure(
                MagicMock(), EncodeError("high", "boom"), "task-1", ("video-1",), {}, None
            )

        run.assert_not_called()

    def test_on_failure_marks_crashed_task(self) -> None:
        with patch.object(tasks.asyncio, "run") as run, \
                patch.object(tasks, "_mark_video_failed", MagicMock(return_value="coro")) as mark:
            tasks.TranscodeTask.on_failure(
                MagicMock(), RuntimeError("worker lost"), "task-1", ("video-1",), {}, None
            )

        mark.assert_called_once_with("video-1", "worker lost")
        run.assert_called_once_with("coro")
