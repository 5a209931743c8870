"""Axis mirror symmetry for every frame of an animation.

One half of each frame is kept and a flipped copy of it replaces the other
half. When the mirrored dimension is odd, only the largest even region
starting at offset 0 is used, so the last column (or row) is dropped and the
two halves are exactly the same size.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum

import numpy as np

from .errors import InvalidArgumentError
from .model import CHANNELS, AnimatedImage
from .parallel import ParallelConfig, map_frames

logger = logging.getLogger(__name__)


class MirrorAxis(Enum):
    """Which half of the frame is kept."""

    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"

    @classmethod
    def parse(cls, value: MirrorAxis | str) -> MirrorAxis:
        """Accept an axis or its case-insensitive name.

        Raises:
            InvalidArgumentError: If the value is not a known axis
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidArgumentError(
            f"Unknown mirror axis: {value!r}",
            context={"axis": value, "supported": [axis.value for axis in cls]},
        )

    @property
    def is_horizontal(self) -> bool:
        """True when mirroring across the vertical midline (left/right)."""
        return self in (MirrorAxis.LEFT, MirrorAxis.RIGHT)


def mirrored_size(width: int, height: int, axis: MirrorAxis) -> tuple[int, int]:
    """Output (width, height) after cropping the mirrored dimension to even.

    Raises:
        InvalidArgumentError: If the mirrored dimension is smaller than 2
    """
    extent = width if axis.is_horizontal else height
    if extent < 2:
        dimension = "width" if axis.is_horizontal else "height"
        raise InvalidArgumentError(
            f"Cannot mirror {axis.value}: {dimension} is {extent}, need at least 2",
            context={"axis": axis.value, dimension: extent},
        )
    even = extent - extent % 2
    if axis.is_horizontal:
        return even, height
    return width, even


def mirror_frame(
    pixels: np.ndarray, axis: MirrorAxis | str, out: np.ndarray | None = None
) -> np.ndarray:
    """Mirror one RGBA frame.

    Args:
        pixels: (height, width, 4) uint8 frame, never modified
        axis: Half to keep
        out: Optional destination of the output shape to write into

    Returns:
        The mirrored frame (``out`` when given)
    """
    axis = MirrorAxis.parse(axis)
    height, width = pixels.shape[:2]
    out_width, out_height = mirrored_size(width, height, axis)

    if out is None:
        out = np.empty((out_height, out_width, CHANNELS), dtype=np.uint8)
    elif out.shape != (out_height, out_width, CHANNELS):
        raise InvalidArgumentError(
            f"Destination has shape {out.shape}, expected {(out_height, out_width, CHANNELS)}",
            context={"shape": out.shape},
        )

    if axis.is_horizontal:
        half = out_width // 2
        region = pixels[:, :out_width]
        kept = region[:, :half] if axis is MirrorAxis.LEFT else region[:, half:]
        if axis is MirrorAxis.LEFT:
            out[:, :half] = kept
            out[:, half:] = kept[:, ::-1]
        else:
            out[:, half:] = kept
            out[:, :half] = kept[:, ::-1]
    else:
        half = out_height // 2
        region = pixels[:out_height]
        kept = region[:half] if axis is MirrorAxis.TOP else region[half:]
        if axis is MirrorAxis.TOP:
            out[:half] = kept
            out[half:] = kept[::-1]
        else:
            out[half:] = kept
            out[:half] = kept[::-1]

    return out


def mirror(
    image: AnimatedImage,
    axis: MirrorAxis | str,
    *,
    parallel: ParallelConfig | None = None,
    cancel_event: threading.Event | None = None,
) -> AnimatedImage:
    """Mirror every frame of ``image`` about ``axis``.

    Frame count, delays and loop count are unchanged; width or height shrink
    by one when the mirrored dimension is odd.

    Raises:
        InvalidArgumentError: Unknown axis or a mirrored dimension below 2
        OperationCancelled: If ``cancel_event`` is set between frames
    """
    axis = MirrorAxis.parse(axis)
    out_width, out_height = mirrored_size(image.width, image.height, axis)

    if (out_width, out_height) != (image.width, image.height):
        logger.debug(
            f"Mirror {axis.value}: cropping {image.width}x{image.height} "
            f"to {out_width}x{out_height}"
        )

    arena = np.empty((image.frame_count, out_height, out_width, CHANNELS), dtype=np.uint8)

    def _mirror_into(index: int) -> None:
        mirror_frame(image.frames[index].pixels, axis, out=arena[index])

    map_frames(_mirror_into, range(image.frame_count), parallel, cancel_event)

    return image.derive(arena, image.delays)
