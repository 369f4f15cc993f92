"""Quality preset table for the rendition ladder.

Three portrait (9:16) tiers tuned for mobile playback. Bitrates are ceilings
(the encoder runs in constant-quality mode with the tier's CRF).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Quality(str, Enum):
    """Rendition quality tiers."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class QualityPreset:
    """Encoding parameters for one quality tier."""
    name: Quality
    width: int
    height: int
    video_bitrate: str  # e.g. "2000k"
    audio_bitrate: str  # e.g. "96k"
    crf: int  # lower is better quality / larger file
    filename_suffix: str

    @property
    def size(self) -> str:
        """Output size as WIDTHxHEIGHT."""
        return f"{self.width}x{self.height}"

    @property
    def video_bitrate_kbps(self) -> int:
        return parse_bitrate_kbps(self.video_bitrate)

    @property
    def audio_bitrate_kbps(self) -> int:
        return parse_bitrate_kbps(self.audio_bitrate)

    def output_filename(self, base_filename: str) -> str:
        """Rendition filename for a source base name."""
        return f"{base_filename}{self.filename_suffix}.mp4"


QUALITY_PRESETS: dict[Quality, QualityPreset] = {
    Quality.HIGH: QualityPreset(
        name=Quality.HIGH,
        width=1080,
        height=1920,
        video_bitrate="2000k",
        audio_bitrate="96k",
        crf=23,
        filename_suffix="_high",
    ),
    Quality.MEDIUM: QualityPreset(
        name=Quality.MEDIUM,
        width=720,
        height=1280,
        video_bitrate="1200k",
        audio_bitrate="80k",
        crf=24,
        filename_suffix="_medium",
    ),
    Quality.LOW: QualityPreset(
        name=Quality.LOW,
        width=480,
        height=854,
        video_bitrate="600k",
        audio_bitrate="64k",
        crf=26,
        filename_suffix="_low",
    ),
}

# Order in which a job encodes its renditions
ENCODE_ORDER: tuple[Quality, ...] = (Quality.HIGH, Quality.MEDIUM, Quality.LOW)

# Quality ladder from lowest to highest
QUALITY_LADDER: tuple[Quality, ...] = (Quality.LOW, Quality.MEDIUM, Quality.HIGH)


def parse_bitrate_kbps(bitrate: str) -> int:
    """Parse an ffmpeg style bitrate ("600k", "2M") into kbps."""
    value = bitrate.strip().lower()
    if value.endswith("k"):
        return int(float(value[:-1]))
    if value.endswith("m"):
        return int(float(value[:-1]) * 1000)
    return int(float(value) / 1000)


def get_preset(quality: "Quality | str") -> QualityPreset:
    """Get the preset for a quality tier.

    Args:
        quality: Quality enum member or its string value

    Returns:
        QualityPreset for the tier

    Raises:
        ValueError: If the quality name is not one of low/medium/high
    """
    return QUALITY_PRESETS[Quality(quality)]


def all_presets() -> list[QualityPreset]:
    """All presets in encode order."""
    return [QUALITY_PRESETS[q] for q in ENCODE_ORDER]


def parse_quality(value: object) -> Optional[Quality]:
    """Return the Quality for a value, or None when it is not a valid tier."""
    try:
        return Quality(value)
    except ValueError:
        return None


def step_down(quality: Quality) -> Quality:
    """One tier lower, clamped at low."""
    index = QUALITY_LADDER.index(quality)
    return QUALITY_LADDER[max(index - 1, 0)]


def step_up(quality: Quality) -> Quality:
    """One tier higher, clamped at high."""
    index = QUALITY_LADDER.index(quality)
    return QUALITY_LADDER[min(index + 1, len(QUALITY_LADDER) - 1)]


def validate_preset_table(presets: dict[Quality, QualityPreset]) -> tuple[bool, list[str]]:
    """Validate the ladder ordering.

    Bitrates must strictly increase and CRF must strictly decrease from low
    to high.

    Args:
        presets: Preset table to validate

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []

    missing = [q.value for q in QUALITY_LADDER if q not in presets]
    if missing or len(presets) != len(QUALITY_LADDER):
        errors.append(f"Preset table must define exactly low, medium and high (missing: {missing})")
        return False, errors

    ordered = [presets[q] for q in QUALITY_LADDER]
    for lower, higher in zip(ordered, ordered[1:]):
        if higher.video_bitrate_kbps <= lower.video_bitrate_kbps:
            errors.append(f"Video bitrate of {higher.name.value} must exceed {lower.name.value}")
        if higher.crf >= lower.crf:
            errors.append(f"CRF of {higher.name.value} must be below {lower.name.value}")

    return len(errors) == 0, errors
