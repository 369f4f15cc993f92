"""Shared fixtures for transcoding tests."""

import os
from typing import Optional

import pytest

from reelcast.modules.transcoding.ffmpeg import (
    FFmpegEncoder,
    RenditionOutput,
    ThumbnailOutput,
    VideoInfo,
)
from reelcast.modules.transcoding.presets import Quality, QualityPreset

MB = 1024 * 1024

# Rendition sizes written by the fake encoder, per tier
FAKE_RENDITION_SIZES = {
    Quality.HIGH: 9 * MB,
    Quality.MEDIUM: 5 * MB,
    Quality.LOW: 2 * MB,
}


def make_sparse_file(path: str, size: int) -> str:
    """Create a file of the given size without writing its content."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return path


class FakeEncoder(FFmpegEncoder):
    """Encoder that writes sparse files instead of running ffmpeg."""

    def __init__(
        self,
        fail_on: Optional[Quality] = None,
        leave_partial: bool = False,
        thumbnail_fails: bool = False,
        raise_on: Optional[Quality] = None,
    ):
        super().__init__(ffmpeg_path="fake-ffmpeg", ffprobe_path="fake-ffprobe")
        self.fail_on = fail_on
        self.leave_partial = leave_partial
        self.thumbnail_fails = thumbnail_fails
        self.raise_on = raise_on
        self.info_calls: list[str] = []
        self.durations: list[Optional[float]] = []
        self.calls: list[Quality] = []
        self.thumbnail_calls: list[tuple[str, str, float]] = []

    def is_available(self) -> bool:
        return True

    def get_video_info(self, input_path):
        self.info_calls.append(input_path)
        return VideoInfo(duration=30.0, width=1080, height=1920, bitrate=0, size=0)

    def encode_rendition(self, input_path, output_path, preset: QualityPreset, progress_callback=None, duration=None):
        self.calls.append(preset.name)
        self.durations.append(duration)

        if preset.name == self.raise_on:
            make_sparse_file(output_path, 1024)
            raise OSError(f"disk full while writing {preset.name.value}")

        if preset.name == self.fail_on:
            if self.leave_partial:
                make_sparse_file(output_path, 1024)
            return RenditionOutput(
                success=False,
                quality=preset.name,
                output_path=output_path,
                error_message=f"encoder crashed on {preset.name.value}",
            )

        if progress_callback:
            for percent in (0.0, 50.0, 100.0):
                progress_callback(preset.name, percent)

        size = FAKE_RENDITION_SIZES[preset.name]
        make_sparse_file(output_path, size)
        return RenditionOutput(
            success=True,
            quality=preset.name,
            output_path=output_path,
            file_size=size,
        )

    def extract_thumbnail(self, input_path, output_path, timestamp=1.0):
        self.thumbnail_calls.append((input_path, output_path, timestamp))
        if self.thumbnail_fails:
            return ThumbnailOutput(success=False, output_path=output_path, error_message="no frame")
        make_sparse_file(output_path, 2048)
        return ThumbnailOutput(success=True, output_path=output_path)


@pytest.fixture
def uploads_dir(tmp_path):
    path = tmp_path / "uploads"
    (path / "videos").mkdir(parents=True)
    return str(path)


@pytest.fixture
def source_video(uploads_dir):
    """A 50 MB source upload."""
    return make_sparse_file(os.path.join(uploads_dir, "videos", "clip123.mp4"), 50 * MB)


@pytest.fixture
def encoder_factory():
    """Build fake encoders: encoder_factory(fail_on=Quality.MEDIUM, ...)."""
    return FakeEncoder


@pytest.fixture
def sparse_file():
    return make_sparse_file
