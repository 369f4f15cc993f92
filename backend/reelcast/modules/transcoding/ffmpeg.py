"""FFmpeg encoding utilities.

The encoder is an explicit capability object: it is constructed once with
its binary paths and injected into the orchestrator, instead of being
looked up ad hoc by callers.
"""

import json
import logging
import os
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from reelcast.modules.transcoding.presets import Quality, QualityPreset

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Quality, float], None]

# Portrait still used as the video poster
THUMBNAIL_WIDTH = 720
THUMBNAIL_HEIGHT = 1280

# GOP settings shared by every rendition
KEYFRAME_INTERVAL = 60
MIN_KEYFRAME_INTERVAL = 30

# Only the end of ffmpeg stderr is kept as the error message
STDERR_TAIL_CHARS = 4000


@dataclass
class VideoInfo:
    """Information about a video file."""
    duration: float
    width: int
    height: int
    bitrate: int
    size: int


@dataclass
class RenditionOutput:
    """Result of encoding one rendition. Binary: either written or failed."""
    success: bool
    quality: Quality
    output_path: str
    file_size: int = 0
    error_message: Optional[str] = None


@dataclass
class ThumbnailOutput:
    """Result of a thumbnail extraction."""
    success: bool
    output_path: str
    error_message: Optional[str] = None


class FFmpegEncoder:
    """FFmpeg-based rendition encoder and frame extractor."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        encode_timeout: Optional[float] = None,
    ):
        """Initialize encoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            encode_timeout: Seconds one rendition may take before ffmpeg is
                killed; None disables the limit
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.encode_timeout = encode_timeout
        self._available: Optional[bool] = None

    def is_available(self) -> bool:
        """Check once whether the ffmpeg binary can be executed."""
        if self._available is None:
            try:
                result = subprocess.run(
                    [self.ffmpeg_path, "-version"],
                    capture_output=True,
                    text=True,
                    timeout=10,
                )
                self._available = result.returncode == 0
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.error(f"FFmpeg not found at {self.ffmpeg_path}: {e}")
                self._available = False

            if self._available:
                logger.info("FFmpeg available")
        return self._available

    def get_video_info(self, input_path: str) -> Optional[VideoInfo]:
        """Get video information using ffprobe.

        Args:
            input_path: Path to input video

        Returns:
            VideoInfo or None if ffprobe fails
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            input_path,
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=30)
            data = json.loads(result.stdout)
        except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired, json.JSONDecodeError) as e:
            logger.warning(f"ffprobe failed for {input_path}: {e}")
            return None

        fmt = data.get("format", {})
        video_stream = next(
            (s for s in data.get("streams", []) if s.get("codec_type") == "video"),
            {},
        )

        return VideoInfo(
            duration=float(fmt.get("duration") or 0),
            width=int(video_stream.get("width") or 0),
            height=int(video_stream.get("height") or 0),
            bitrate=int(fmt.get("bit_rate") or 0),
            size=int(fmt.get("size") or 0),
        )

    def build_rendition_command(
        self,
        input_path: str,
        output_path: str,
        preset: QualityPreset,
    ) -> list[str]:
        """Build FFmpeg command for one rendition.

        Args:
            input_path: Source video
            output_path: Rendition file to write
            preset: Quality preset

        Returns:
            FFmpeg command as list of arguments
        """
        return [
            self.ffmpeg_path,
            "-y",  # Overwrite output
            "-hide_banner",
            "-loglevel", "error",
            "-i", input_path,
            # Video settings
            "-s", preset.size,
            "-c:v", "libx264",
            "-preset", "medium",
            "-tune", "film",
            "-crf", str(preset.crf),
            "-b:v", preset.video_bitrate,
            "-maxrate", preset.video_bitrate,
            "-bufsize", f"{preset.video_bitrate_kbps * 2}k",
            "-profile:v", "main",
            "-level", "4.0",
            "-pix_fmt", "yuv420p",
            "-x264-params", f"keyint={KEYFRAME_INTERVAL}:min-keyint={MIN_KEYFRAME_INTERVAL}",
            # Audio settings
            "-c:a", "aac",
            "-b:a", preset.audio_bitrate,
            # Output format
            "-movflags", "+faststart+use_metadata_tags",
            "-f", "mp4",
            "-progress", "pipe:1",
            "-nostats",
            output_path,
        ]

    def build_thumbnail_command(
        self,
        input_path: str,
        output_path: str,
        timestamp: float = 1.0,
    ) -> list[str]:
        """Build FFmpeg command extracting a single frame."""
        return [
            self.ffmpeg_path,
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-ss", f"{timestamp:.3f}",
            "-i", input_path,
            "-frames:v", "1",
            "-s", f"{THUMBNAIL_WIDTH}x{THUMBNAIL_HEIGHT}",
            output_path,
        ]

    def encode_rendition(
        self,
        input_path: str,
        output_path: str,
        preset: QualityPreset,
        progress_callback: Optional[ProgressCallback] = None,
        duration: Optional[float] = None,
    ) -> RenditionOutput:
        """Encode one rendition of the source.

        stderr goes to a temporary file so a chatty ffmpeg can never block
        on a full pipe while stdout is being read. The process is killed
        whenever the progress loop exits early or the encode timeout fires.

        Args:
            input_path: Source video
            output_path: Rendition file to write
            preset: Quality preset
            progress_callback: Optional callback receiving (quality, percent)
            duration: Source duration in seconds; read with ffprobe when omitted and a
                progress callback is given

        Returns:
            RenditionOutput with result
        """
        cmd = self.build_rendition_command(input_path, output_path, preset)
        logger.debug(f"FFmpeg command: {' '.join(cmd)}")

        if duration is None and progress_callback:
            info = self.get_video_info(input_path)
            duration = info.duration if info else 0.0

        timed_out = threading.Event()
        last_percent = -1.0

        with tempfile.TemporaryFile() as stderr_file:
            try:
                process = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=stderr_file,
                    universal_newlines=True,
                )
            except OSError as e:
                return RenditionOutput(
                    success=False,
                    quality=preset.name,
                    output_path=output_path,
                    error_message=str(e),
                )

            timer = None
            if self.encode_timeout:
                timer = threading.Timer(self.encode_timeout, _kill_on_timeout, args=(process, timed_out))
                timer.daemon = True
                timer.start()

            with process:
                try:
                    for line in process.stdout:
                        percent = parse_progress_line(line, duration or 0.0)
                        if percent is None or not progress_callback:
                            continue
                        if percent - last_percent >= 1.0 or percent >= 100.0:
                            last_percent = percent
                            progress_callback(preset.name, percent)

                    returncode = process.wait()
                finally:
                    if timer is not None:
                        timer.cancel()
                    if process.poll() is None:
                        process.kill()
                        process.wait()

            stderr_file.seek(0)
            stderr = stderr_file.read().decode("utf-8", errors="replace")

        if timed_out.is_set():
            return RenditionOutput(
                success=False,
                quality=preset.name,
                output_path=output_path,
                error_message=f"ffmpeg timed out after {self.encode_timeout:g}s",
            )

        if returncode != 0:
            message = stderr.strip()[-STDERR_TAIL_CHARS:]
            return RenditionOutput(
                success=False,
                quality=preset.name,
                output_path=output_path,
                error_message=message or f"ffmpeg exited with {returncode}",
            )

        if not os.path.exists(output_path):
            return RenditionOutput(
                success=False,
                quality=preset.name,
                output_path=output_path,
                error_message="ffmpeg reported success but wrote no output",
            )

        if progress_callback and last_percent < 100.0:
            progress_callback(preset.name, 100.0)

        return RenditionOutput(
            success=True,
            quality=preset.name,
            output_path=output_path,
            file_size=os.path.getsize(output_path),
        )

    def extract_thumbnail(
        self,
        input_path: str,
        output_path: str,
        timestamp: float = 1.0,
    ) -> ThumbnailOutput:
        """Extract a single 720x1280 frame from the source.

        Args:
            input_path: Source video
            output_path: Image file to write
            timestamp: Offset into the clip in seconds

        Returns:
            ThumbnailOutput with result
        """
        cmd = self.build_thumbnail_command(input_path, output_path, timestamp)

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
        except (OSError, subprocess.TimeoutExpired) as e:
            return ThumbnailOutput(success=False, output_path=output_path, error_message=str(e))

        if result.returncode != 0 or not os.path.exists(output_path):
            return ThumbnailOutput(
                success=False,
                output_path=output_path,
                error_message=result.stderr.strip() or "no frame extracted",
            )

        return ThumbnailOutput(success=True, output_path=output_path)


def parse_progress_line(line: str, duration: float) -> Optional[float]:
    """Convert one `-progress` line into a percentage.

    ffmpeg writes key=value pairs; `out_time_us` (and the misnamed
    `out_time_ms`, also microseconds) carry the encoded position.

    Args:
        line: Raw line from ffmpeg's progress output
        duration: Source duration in seconds

    Returns:
        Percentage in [0, 100], or None when the line carries no position
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None

    if key == "progress" and value == "end":
        return 100.0

    if key not in ("out_time_us", "out_time_ms") or duration <= 0:
        return None

    try:
        position = int(value) / 1_000_000
    except ValueError:
        return None

    return max(0.0, min(100.0, position / duration * 100))


def _kill_on_timeout(process: subprocess.Popen, timed_out: threading.Event) -> None:
    if process.poll() is None:
        timed_out.set()
        logger.warning(f"Killing ffmpeg (pid {process.pid}) after encode timeout")
        process.kill()
