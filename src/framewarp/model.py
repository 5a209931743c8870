"""Frame and animation data model shared by the codec and the transforms."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .errors import InvalidArgumentError

CHANNELS = 4


class ImageFormat(Enum):
    """Source container tag; drives encoder selection."""

    GIF = "gif"
    WEBP = "webp"
    OTHER = "other"

    @classmethod
    def from_pillow(cls, pillow_format: str | None) -> ImageFormat:
        name = (pillow_format or "").lower()
        if name == "gif":
            return cls.GIF
        if name == "webp":
            return cls.WEBP
        return cls.OTHER


@dataclass
class Frame:
    """One RGBA raster of an animation with its display delay.

    ``pixels`` has shape (height, width, 4), dtype uint8, row-major with a
    top-left origin. ``delay_cs`` is in hundredths of a second.
    """

    pixels: np.ndarray
    delay_cs: int = 0

    def finalized_delay(self) -> int:
        """Delay usable by an encoder (renderers disagree on what 0 means)."""
        return max(1, int(self.delay_cs))

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])


@dataclass
class AnimatedImage:
    """Ordered frames plus container metadata.

    Frame order is playback order. Every frame shares the canvas size and
    carries 4 channels. ``loop_count`` 0 means loop forever and None means
    play once (the container had no loop setting). ``lossless`` marks a
    WebP source stored without lossy compression.
    """

    frames: list[Frame]
    width: int
    height: int
    format: ImageFormat = ImageFormat.OTHER
    loop_count: int | None = 0
    source_format: str | None = None
    lossless: bool = False

    def __post_init__(self) -> None:
        if not self.frames:
            raise InvalidArgumentError(
                "AnimatedImage needs at least one frame", context={"frames": 0}
            )
        if self.width <= 0 or self.height <= 0:
            raise InvalidArgumentError(
                f"Image dimensions must be positive, got {self.width}x{self.height}",
                context={"width": self.width, "height": self.height},
            )
        if self.loop_count is not None and self.loop_count < 0:
            raise InvalidArgumentError(
                f"loop_count must be non-negative, got {self.loop_count}",
                context={"loop_count": self.loop_count},
            )

        expected_shape = (self.height, self.width, CHANNELS)
        for index, frame in enumerate(self.frames):
            if frame.pixels.shape != expected_shape:
                raise InvalidArgumentError(
                    f"Frame {index} has shape {frame.pixels.shape}, expected {expected_shape}",
                    context={"frame": index, "shape": frame.pixels.shape},
                )
            if frame.pixels.dtype != np.uint8:
                raise InvalidArgumentError(
                    f"Frame {index} has dtype {frame.pixels.dtype}, expected uint8",
                    context={"frame": index, "dtype": str(frame.pixels.dtype)},
                )
            if frame.delay_cs < 0:
                raise InvalidArgumentError(
                    f"Frame {index} has negative delay {frame.delay_cs}",
                    context={"frame": index, "delay_cs": frame.delay_cs},
                )

    @property
    def channels(self) -> int:
        return CHANNELS

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def is_animated(self) -> bool:
        return len(self.frames) > 1

    @property
    def delays(self) -> list[int]:
        return [frame.delay_cs for frame in self.frames]

    @property
    def total_duration(self) -> int:
        """Total display time in centiseconds."""
        return sum(self.delays)

    def stack(self) -> np.ndarray:
        """Copy every frame into a fresh (frames, height, width, 4) array."""
        return np.stack([frame.pixels for frame in self.frames])

    @classmethod
    def from_arena(
        cls,
        arena: np.ndarray,
        delays: Sequence[int],
        *,
        format: ImageFormat = ImageFormat.OTHER,
        loop_count: int | None = 0,
        source_format: str | None = None,
        lossless: bool = False,
    ) -> AnimatedImage:
        """Build an image whose frames are views into one contiguous arena.

        Args:
            arena: uint8 array of shape (frames, height, width, 4)
            delays: One delay per frame, in centiseconds

        Raises:
            InvalidArgumentError: If the arena shape and delays disagree
        """
        if arena.ndim != 4 or arena.shape[3] != CHANNELS:
            raise InvalidArgumentError(
                f"Arena must have shape (frames, height, width, {CHANNELS}), got {arena.shape}",
                context={"shape": arena.shape},
            )
        if arena.shape[0] != len(delays):
            raise InvalidArgumentError(
                f"Got {len(delays)} delays for {arena.shape[0]} frames",
                context={"frames": arena.shape[0], "delays": len(delays)},
            )

        frames = [Frame(arena[i], int(delays[i])) for i in range(arena.shape[0])]
        return cls(
            frames=frames,
            width=int(arena.shape[2]),
            height=int(arena.shape[1]),
            format=format,
            loop_count=loop_count,
            source_format=source_format,
            lossless=lossless,
        )

    def derive(self, arena: np.ndarray, delays: Sequence[int]) -> AnimatedImage:
        """Build a transformed image from ``arena`` carrying this image's metadata.

        Width and height come from the arena, so transforms that crop do not
        need to restate them.
        """
        return AnimatedImage.from_arena(
            arena,
            delays,
            format=self.format,
            loop_count=self.loop_count,
            source_format=self.source_format,
            lossless=self.lossless,
        )
