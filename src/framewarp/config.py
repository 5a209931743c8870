"""Configuration settings for FrameWarp."""

import os
from dataclasses import dataclass, field
from typing import Any

from .parallel import ParallelConfig

STILL_FORMATS = ("png", "jpeg", "gif", "webp")


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


@dataclass
class LimitsConfig:
    """Resource budget enforced before frame buffers are allocated."""

    # Upper bound for frames * width * height * 4 bytes.
    # Override with: FRAMEWARP_MAX_DECODED_MB
    MAX_DECODED_BYTES: int = 512 * 1024 * 1024

    # Upper bound for the number of frames in one animation.
    # Override with: FRAMEWARP_MAX_FRAMES
    MAX_FRAMES: int = 5000

    def __post_init__(self) -> None:
        """Apply environment variable overrides and validate."""
        env_mb = _env_int("FRAMEWARP_MAX_DECODED_MB")
        if env_mb is not None:
            self.MAX_DECODED_BYTES = env_mb * 1024 * 1024

        env_frames = _env_int("FRAMEWARP_MAX_FRAMES")
        if env_frames is not None:
            self.MAX_FRAMES = env_frames

        if self.MAX_DECODED_BYTES <= 0:
            raise ValueError(
                f"MAX_DECODED_BYTES must be positive, got {self.MAX_DECODED_BYTES}"
            )
        if self.MAX_FRAMES <= 0:
            raise ValueError(f"MAX_FRAMES must be positive, got {self.MAX_FRAMES}")


@dataclass
class TransformConfig:
    """Parameters shared by the frame transforms."""

    # Shortest delay (centiseconds) an accelerated frame may be held for.
    # Browsers clamp anything shorter, so merged frames never go below it.
    MIN_DELAY_CS: int = 2

    # Speed factor used when a speed request carries no factor.
    DEFAULT_SPEED_FACTOR: float = 2.0

    def __post_init__(self) -> None:
        if self.MIN_DELAY_CS < 1:
            raise ValueError(f"MIN_DELAY_CS must be at least 1, got {self.MIN_DELAY_CS}")
        if self.DEFAULT_SPEED_FACTOR <= 0:
            raise ValueError(
                f"DEFAULT_SPEED_FACTOR must be positive, got {self.DEFAULT_SPEED_FACTOR}"
            )


@dataclass
class EncodeConfig:
    """Encoder settings handed to Pillow."""

    GIF_DISPOSAL: int = 2  # restore to background between frames
    GIF_OPTIMIZE: bool = False

    # Override with: FRAMEWARP_WEBP_QUALITY / FRAMEWARP_WEBP_LOSSLESS
    WEBP_QUALITY: int = 80
    WEBP_LOSSLESS: bool = False

    JPEG_QUALITY: int = 90

    # Still format used when the source format cannot be written back.
    DEFAULT_STILL_FORMAT: str = "png"

    def __post_init__(self) -> None:
        """Apply environment variable overrides and validate."""
        env_quality = _env_int("FRAMEWARP_WEBP_QUALITY")
        if env_quality is not None:
            self.WEBP_QUALITY = env_quality

        env_lossless = os.getenv("FRAMEWARP_WEBP_LOSSLESS")
        if env_lossless:
            self.WEBP_LOSSLESS = env_lossless.lower() in ("1", "true", "yes")

        if self.GIF_DISPOSAL not in (0, 1, 2, 3):
            raise ValueError(f"GIF_DISPOSAL must be 0-3, got {self.GIF_DISPOSAL}")
        if not 0 <= self.WEBP_QUALITY <= 100:
            raise ValueError(
                f"WEBP_QUALITY must be between 0 and 100, got {self.WEBP_QUALITY}"
            )
        if not 1 <= self.JPEG_QUALITY <= 95:
            raise ValueError(
                f"JPEG_QUALITY must be between 1 and 95, got {self.JPEG_QUALITY}"
            )
        self.DEFAULT_STILL_FORMAT = self.DEFAULT_STILL_FORMAT.lower()
        if self.DEFAULT_STILL_FORMAT not in STILL_FORMATS:
            raise ValueError(
                f"DEFAULT_STILL_FORMAT must be one of {STILL_FORMATS}, "
                f"got {self.DEFAULT_STILL_FORMAT}"
            )


@dataclass
class PipelineConfig:
    """Everything one pipeline run needs, bundled for injection."""

    limits: LimitsConfig = field(default_factory=LimitsConfig)
    transform: TransformConfig = field(default_factory=TransformConfig)
    encode: EncodeConfig = field(default_factory=EncodeConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)

    def as_dict(self) -> dict[str, Any]:
        return {
            "max_decoded_bytes": self.limits.MAX_DECODED_BYTES,
            "max_frames": self.limits.MAX_FRAMES,
            "min_delay_cs": self.transform.MIN_DELAY_CS,
            "default_still_format": self.encode.DEFAULT_STILL_FORMAT,
            "max_workers": self.parallel.max_workers,
        }


# Default configuration instances
DEFAULT_LIMITS_CONFIG = LimitsConfig()
DEFAULT_TRANSFORM_CONFIG = TransformConfig()
DEFAULT_ENCODE_CONFIG = EncodeConfig()
