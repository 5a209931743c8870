"""Temporal transforms: playback speed remapping and sequence reversal.

Speed remapping rescales frame delays. Slowing down (factor <= 1) keeps every
frame. Speeding up (factor > 1) would push delays below what renderers can
show, so consecutive source frames are merged: their scaled delays are summed
and the most recent source frame is held for the merged time. Pixels are
never blended.

Example:
    delays [10, 10, 10] at factor 3 -> [3, 4, 3] (total 10)
    delays [2, 2, 2, 2] at factor 4 -> [2] holding the first frame (total 2)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import numpy as np

from .config import DEFAULT_TRANSFORM_CONFIG
from .errors import InvalidArgumentError
from .model import AnimatedImage

logger = logging.getLogger(__name__)

MIN_DELAY = DEFAULT_TRANSFORM_CONFIG.MIN_DELAY_CS


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def validate_speed_factor(factor: float) -> float:
    """Return ``factor`` as a float, rejecting non-positive or non-finite values.

    Raises:
        InvalidArgumentError: If the factor is not a positive finite number
    """
    try:
        value = float(factor)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(
            f"Speed factor must be a number, got {factor!r}",
            cause=e,
            context={"factor": factor},
        ) from e

    if not math.isfinite(value) or value <= 0:
        raise InvalidArgumentError(
            f"Speed factor must be a positive finite number, got {factor!r}",
            context={"factor": factor},
        )
    return value


def scale_delays(delays: Sequence[int], factor: float) -> list[int]:
    """Divide every delay by ``factor``, keeping each at least 1cs."""
    factor = validate_speed_factor(factor)
    return [max(1, round_half_up(delay / factor)) for delay in delays]


def plan_speed_merge(
    delays: Sequence[int], factor: float, min_delay: int = MIN_DELAY
) -> list[tuple[int, int]]:
    """Plan which source frames survive an acceleration and for how long.

    Walks the delays accumulating ``delay / factor``. A frame is emitted when
    the accumulator reaches ``min_delay`` (or when nothing has been emitted
    yet), holding the most recently accumulated source frame for
    ``max(min_delay, round(accumulated))``. The accumulator keeps the rounding
    remainder, so time held too long by one emitted frame is taken back from
    the next. Whatever is left at the end goes to the last emitted frame.

    Args:
        delays: Source delays in centiseconds
        factor: Speed factor, greater than 1 for a real acceleration
        min_delay: Shortest delay an emitted frame may have

    Returns:
        List of (source_index, delay_cs) pairs in playback order
    """
    factor = validate_speed_factor(factor)
    if min_delay < 1:
        raise InvalidArgumentError(
            f"min_delay must be at least 1, got {min_delay}",
            context={"min_delay": min_delay},
        )
    if not delays:
        return []

    plan: list[tuple[int, int]] = []
    accumulated = 0.0

    for index, delay in enumerate(delays):
        accumulated += delay / factor
        if accumulated >= min_delay or not plan:
            emitted = max(min_delay, round_half_up(accumulated))
            plan.append((index, emitted))
            accumulated -= emitted

    if accumulated:
        last_index, last_delay = plan[-1]
        plan[-1] = (last_index, max(min_delay, round_half_up(last_delay + accumulated)))

    return plan


def remap_speed(
    image: AnimatedImage, factor: float, *, min_delay: int | None = None
) -> AnimatedImage:
    """Change playback speed by ``factor`` (> 1 faster, < 1 slower).

    Args:
        image: Source animation
        factor: Positive speed factor
        min_delay: Floor for merged frame delays, defaults to MIN_DELAY

    Returns:
        New AnimatedImage; the input itself for a single-frame image

    Raises:
        InvalidArgumentError: If ``factor`` is not a positive finite number
    """
    factor = validate_speed_factor(factor)
    min_delay = MIN_DELAY if min_delay is None else min_delay

    if image.frame_count <= 1:
        logger.debug("Speed remap on a single frame is a no-op")
        return image

    # 0cs frames are shown for 1cs, so they contribute time to the merge.
    delays = [frame.finalized_delay() for frame in image.frames]

    if factor <= 1:
        return image.derive(image.stack(), scale_delays(delays, factor))

    plan = plan_speed_merge(delays, factor, min_delay)
    arena = np.stack([image.frames[index].pixels for index, _ in plan])

    logger.debug(
        f"Speed x{factor}: {image.frame_count} frames ({sum(delays)}cs) "
        f"-> {len(plan)} frames ({sum(delay for _, delay in plan)}cs)"
    )

    return image.derive(arena, [delay for _, delay in plan])


def reverse(image: AnimatedImage) -> AnimatedImage:
    """Play the frames backwards; each delay stays with its frame.

    Returns:
        New AnimatedImage with copied pixels; the input itself for a
        single-frame image
    """
    if image.frame_count <= 1:
        logger.debug("Reverse on a single frame is a no-op")
        return image

    arena = np.stack([frame.pixels for frame in reversed(image.frames)])
    return image.derive(arena, list(reversed(image.delays)))
