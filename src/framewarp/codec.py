"""Boundary between compressed image bytes and the AnimatedImage model.

Decoding goes through Pillow and always produces RGBA frames packed into one
contiguous arena. Encoding dispatches on an OutputFormat variant:

- GifOutput / WebpOutput: multi-frame container with per-frame delays and loop
- StillOutput: first frame only, in png, jpeg, gif or webp

Pillow works in milliseconds; the model works in centiseconds.
"""

from __future__ import annotations

import io
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from PIL import Image

from .config import DEFAULT_ENCODE_CONFIG, DEFAULT_LIMITS_CONFIG, EncodeConfig, LimitsConfig
from .errors import (
    DecodeError,
    EncodeError,
    ResourceLimitExceeded,
    error_context,
)
from .model import CHANNELS, AnimatedImage, ImageFormat

logger = logging.getLogger(__name__)

# Largest canvas each container can store.
MAX_GIF_DIMENSION = 65535
MAX_WEBP_DIMENSION = 16383

CONTENT_TYPES = {
    "gif": "image/gif",
    "webp": "image/webp",
    "png": "image/png",
    "jpeg": "image/jpeg",
}


@dataclass(frozen=True)
class GifOutput:
    """Animated GIF with one delay (centiseconds) per frame.

    ``loop`` None writes no loop extension, so the GIF plays once.
    """

    delays: tuple[int, ...]
    loop: int | None = 0


@dataclass(frozen=True)
class WebpOutput:
    """Animated WebP with one delay (centiseconds) per frame.

    WebP always stores a loop count; None is written as 1 (play once).
    """

    delays: tuple[int, ...]
    loop: int | None = 0


@dataclass(frozen=True)
class StillOutput:
    """Single still frame in ``format`` (png, jpeg, gif or webp)."""

    format: str = "png"


OutputFormat = GifOutput | WebpOutput | StillOutput


def content_type(output: OutputFormat) -> str:
    """MIME type produced by encoding to ``output``."""
    if isinstance(output, GifOutput):
        return CONTENT_TYPES["gif"]
    if isinstance(output, WebpOutput):
        return CONTENT_TYPES["webp"]
    if isinstance(output, StillOutput):
        fmt = normalize_still_format(output.format)
        return CONTENT_TYPES[fmt]
    raise EncodeError(
        f"Unknown output format variant: {type(output).__name__}",
        context={"output": repr(output)},
    )


def normalize_still_format(name: str) -> str:
    """Map a format name to one of png/jpeg/gif/webp.

    Raises:
        EncodeError: If the name is not a supported still format
    """
    fmt = name.lower().strip()
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt not in CONTENT_TYPES:
        raise EncodeError(
            f"Unsupported output format: {name}",
            context={"format": name, "supported": sorted(CONTENT_TYPES)},
        )
    return fmt


def animated_output_for(image: AnimatedImage) -> GifOutput | WebpOutput | None:
    """Build the animated variant matching the image's source container.

    Returns None when the source container cannot be written back as an
    animation.
    """
    delays = tuple(frame.finalized_delay() for frame in image.frames)
    if image.format is ImageFormat.GIF:
        return GifOutput(delays=delays, loop=image.loop_count)
    if image.format is ImageFormat.WEBP:
        return WebpOutput(delays=delays, loop=image.loop_count)
    return None


def _ms_to_cs(duration_ms: float | None) -> int:
    if not duration_ms or duration_ms < 0:
        return 0
    return int(math.floor(duration_ms / 10.0 + 0.5))


def _collect_webp_bitstreams(data: bytes, offset: int, end: int, found: set[bytes]) -> None:
    while offset + 8 <= end:
        fourcc = data[offset : offset + 4]
        size = int.from_bytes(data[offset + 4 : offset + 8], "little")
        body = offset + 8
        if fourcc in (b"VP8 ", b"VP8L"):
            found.add(fourcc)
        elif fourcc == b"ANMF":
            # 16-byte frame header, then the frame's own chunks
            _collect_webp_bitstreams(data, body + 16, min(body + size, end), found)
        offset = body + size + (size & 1)


def _is_lossless_webp(data: bytes) -> bool:
    """True when every image bitstream in a RIFF WebP is VP8L (lossless)."""
    if data[:4] != b"RIFF" or data[8:12] != b"WEBP":
        return False
    found: set[bytes] = set()
    _collect_webp_bitstreams(data, 12, len(data), found)
    return found == {b"VP8L"}


def check_resource_limits(
    frame_count: int, width: int, height: int, limits: LimitsConfig | None = None
) -> int:
    """Fail fast when the decoded arena would exceed the configured budget.

    Returns:
        Number of bytes the arena will need

    Raises:
        ResourceLimitExceeded: If frames or bytes are over budget
    """
    limits = limits or DEFAULT_LIMITS_CONFIG
    required = frame_count * width * height * CHANNELS
    context = {
        "frames": frame_count,
        "width": width,
        "height": height,
        "required_bytes": required,
        "max_bytes": limits.MAX_DECODED_BYTES,
        "max_frames": limits.MAX_FRAMES,
    }

    if frame_count > limits.MAX_FRAMES:
        raise ResourceLimitExceeded(
            f"Animation has {frame_count} frames, limit is {limits.MAX_FRAMES}",
            context=context,
        )
    if required > limits.MAX_DECODED_BYTES:
        raise ResourceLimitExceeded(
            f"Decoding {frame_count} frames of {width}x{height} needs {required} bytes, "
            f"limit is {limits.MAX_DECODED_BYTES}",
            context=context,
        )
    return required


def decode(data: bytes, limits: LimitsConfig | None = None) -> AnimatedImage:
    """Decode compressed image bytes into RGBA frames.

    Args:
        data: Raw GIF, WebP or any other Pillow-readable image
        limits: Resource budget, defaults to DEFAULT_LIMITS_CONFIG

    Returns:
        AnimatedImage with one frame per container page

    Raises:
        DecodeError: If the bytes are not a readable, consistent image
        ResourceLimitExceeded: If the frames would not fit the budget
    """
    if not data:
        raise DecodeError("Cannot decode empty input", context={"bytes": 0})

    context = {"bytes": len(data)}

    try:
        with error_context("decode image", DecodeError, context=context, logger=logger):
            with Image.open(io.BytesIO(data)) as img:
                return _decode_opened(img, data, limits)
    except DecodeError as e:
        # Pillow refuses oversized canvases itself; report those as a budget issue.
        if isinstance(e.cause, Image.DecompressionBombError):
            raise ResourceLimitExceeded(
                f"Image exceeds the decoder pixel limit: {e.cause}",
                cause=e.cause,
                context=context,
            ) from e.cause
        raise


def _decode_opened(
    img: Image.Image, data: bytes, limits: LimitsConfig | None
) -> AnimatedImage:
    width, height = img.size
    source_format = (img.format or "").lower() or None
    image_format = ImageFormat.from_pillow(img.format)

    if width <= 0 or height <= 0:
        raise DecodeError(
            f"Image has invalid dimensions {width}x{height}",
            context={"width": width, "height": height, "format": source_format},
        )

    frame_count = int(getattr(img, "n_frames", 1) or 1)
    check_resource_limits(frame_count, width, height, limits)

    # No loop setting in the container means the animation plays once.
    loop = img.info.get("loop")
    loop_count = int(loop) if isinstance(loop, int) and loop >= 0 else None

    arena = np.empty((frame_count, height, width, CHANNELS), dtype=np.uint8)
    delays: list[int] = []

    for index in range(frame_count):
        img.seek(index)
        rgba = img.convert("RGBA")
        if rgba.size != (width, height):
            raise DecodeError(
                f"Frame {index} is {rgba.size[0]}x{rgba.size[1]}, canvas is {width}x{height}",
                context={"frame": index, "format": source_format},
            )
        arena[index] = np.asarray(rgba, dtype=np.uint8)
        delays.append(_ms_to_cs(img.info.get("duration")))

    logger.debug(
        f"Decoded {source_format} {width}x{height}, {frame_count} frames, "
        f"{sum(delays)}cs, loop={loop_count}"
    )

    return AnimatedImage.from_arena(
        arena,
        delays,
        format=image_format,
        loop_count=loop_count,
        source_format=source_format,
        lossless=image_format is ImageFormat.WEBP and _is_lossless_webp(data),
    )


def _expand_to_rgba(strip: np.ndarray, channels: int) -> np.ndarray:
    """Normalize an (h, w, channels) strip to RGBA."""
    height, width = strip.shape[:2]
    rgba = np.empty((height, width, CHANNELS), dtype=np.uint8)
    if channels == 1:
        rgba[..., :3] = strip[..., :1]
        rgba[..., 3] = 255
    elif channels == 2:
        rgba[..., :3] = strip[..., :1]
        rgba[..., 3] = strip[..., 1]
    elif channels == 3:
        rgba[..., :3] = strip
        rgba[..., 3] = 255
    else:
        rgba[...] = strip
    return rgba


def decode_raw(
    data: bytes,
    width: int,
    height: int,
    channels: int,
    pages: int = 1,
    page_height: int | None = None,
    delays: Sequence[int] | None = None,
    loop_count: int | None = 0,
    image_format: ImageFormat = ImageFormat.OTHER,
    limits: LimitsConfig | None = None,
) -> AnimatedImage:
    """Decode an uncompressed strip of frames stacked vertically on one canvas.

    An explicit ``page_height`` wins over ``height // pages``; the canvas
    height must be an exact multiple of the page height.

    Args:
        data: Row-major pixel bytes, ``width * height * channels`` long
        width: Canvas width
        height: Total canvas height (all pages)
        channels: 1 (grey), 2 (grey+alpha), 3 (RGB) or 4 (RGBA)
        pages: Number of frames declared by the container
        page_height: Per-frame height, when the container reports it
        delays: Per-frame delays in centiseconds (defaults to zeros)
        loop_count: Loop count, 0 = infinite, None = play once
        image_format: Container tag carried onto the result
        limits: Resource budget

    Raises:
        DecodeError: If the declared layout is inconsistent with the buffer
        ResourceLimitExceeded: If the frames would not fit the budget
    """
    context = {
        "width": width,
        "height": height,
        "channels": channels,
        "pages": pages,
        "page_height": page_height,
        "bytes": len(data),
    }

    if width <= 0 or height <= 0:
        raise DecodeError(f"Raw image has invalid dimensions {width}x{height}", context=context)
    if channels not in (1, 2, 3, 4):
        raise DecodeError(f"Unsupported channel count {channels}", context=context)
    if pages <= 0:
        raise DecodeError(f"Page count must be positive, got {pages}", context=context)

    frame_height = page_height if page_height else height // pages
    if frame_height <= 0 or height % frame_height != 0:
        raise DecodeError(
            f"Canvas height {height} is not a multiple of page height {frame_height}",
            context=context,
        )
    frame_count = height // frame_height

    expected = width * height * channels
    if len(data) != expected:
        raise DecodeError(
            f"Raw buffer is {len(data)} bytes, layout needs {expected}",
            context=context,
        )

    if delays is None:
        delays = [0] * frame_count
    if len(delays) != frame_count:
        raise DecodeError(
            f"Got {len(delays)} delays for {frame_count} frames", context=context
        )
    if any(d < 0 for d in delays):
        raise DecodeError("Frame delays must be non-negative", context=context)

    check_resource_limits(frame_count, width, frame_height, limits)

    strip = np.frombuffer(data, dtype=np.uint8).reshape(height, width, channels)
    arena = np.empty((frame_count, frame_height, width, CHANNELS), dtype=np.uint8)
    for index in range(frame_count):
        top = index * frame_height
        arena[index] = _expand_to_rgba(strip[top : top + frame_height], channels)

    return AnimatedImage.from_arena(
        arena,
        list(delays),
        format=image_format,
        loop_count=loop_count,
        source_format=None,
    )


def _to_pillow(pixels: np.ndarray) -> Image.Image:
    return Image.fromarray(np.ascontiguousarray(pixels))


def _check_dimensions(image: AnimatedImage, fmt: str) -> None:
    context = {"format": fmt, "width": image.width, "height": image.height}
    if image.width <= 0 or image.height <= 0:
        raise EncodeError(
            f"Cannot encode {fmt} with dimensions {image.width}x{image.height}",
            context=context,
        )
    limit = {"gif": MAX_GIF_DIMENSION, "webp": MAX_WEBP_DIMENSION}.get(fmt)
    if limit is not None and max(image.width, image.height) > limit:
        raise EncodeError(
            f"{fmt} cannot store {image.width}x{image.height}, maximum side is {limit}",
            context=context,
        )


def encode(
    image: AnimatedImage,
    target: OutputFormat,
    config: EncodeConfig | None = None,
) -> bytes:
    """Encode an AnimatedImage for ``target``.

    Multi-frame images with an animated target produce an animation; a single
    frame, or a StillOutput target, produces the first frame as a still.

    Raises:
        EncodeError: If the target cannot represent the frames
    """
    config = config or DEFAULT_ENCODE_CONFIG

    if isinstance(target, (GifOutput, WebpOutput)):
        fmt = "gif" if isinstance(target, GifOutput) else "webp"
        if image.frame_count > 1:
            return _encode_animated(image, target, fmt, config)
        return _encode_still(image, fmt, config)
    if isinstance(target, StillOutput):
        return _encode_still(image, normalize_still_format(target.format), config)

    raise EncodeError(
        f"Unknown output format variant: {type(target).__name__}",
        context={"output": repr(target)},
    )


def _encode_animated(
    image: AnimatedImage,
    target: GifOutput | WebpOutput,
    fmt: str,
    config: EncodeConfig,
) -> bytes:
    _check_dimensions(image, fmt)

    context = {
        "format": fmt,
        "frames": image.frame_count,
        "width": image.width,
        "height": image.height,
    }
    if len(target.delays) != image.frame_count:
        raise EncodeError(
            f"Got {len(target.delays)} delays for {image.frame_count} frames",
            context=context,
        )
    if target.loop is not None and target.loop < 0:
        raise EncodeError(f"Loop count must be non-negative, got {target.loop}", context=context)

    durations_ms = [max(1, int(d)) * 10 for d in target.delays]
    buffer = io.BytesIO()

    with error_context(f"encode animated {fmt}", EncodeError, context=context, logger=logger):
        pil_frames = [_to_pillow(frame.pixels) for frame in image.frames]
        first, rest = pil_frames[0], pil_frames[1:]
        if fmt == "gif":
            # Without a loop argument Pillow writes no NETSCAPE block.
            loop_args = {} if target.loop is None else {"loop": target.loop}
            first.save(
                buffer,
                format="GIF",
                save_all=True,
                append_images=rest,
                duration=durations_ms,
                disposal=config.GIF_DISPOSAL,
                optimize=config.GIF_OPTIMIZE,
                **loop_args,
            )
        else:
            first.save(
                buffer,
                format="WEBP",
                save_all=True,
                append_images=rest,
                duration=durations_ms,
                loop=1 if target.loop is None else target.loop,
                quality=config.WEBP_QUALITY,
                lossless=config.WEBP_LOSSLESS or image.lossless,
            )

    logger.debug(f"Encoded animated {fmt}: {image.frame_count} frames, {buffer.tell()} bytes")
    return buffer.getvalue()


def _encode_still(image: AnimatedImage, fmt: str, config: EncodeConfig) -> bytes:
    _check_dimensions(image, fmt)

    pixels = image.frames[0].pixels
    context = {"format": fmt, "width": image.width, "height": image.height}

    if fmt == "jpeg" and int(pixels[..., 3].min()) < 255:
        raise EncodeError(
            "JPEG cannot represent transparent pixels",
            context={**context, "channels": CHANNELS},
        )

    buffer = io.BytesIO()
    with error_context(f"encode still {fmt}", EncodeError, context=context, logger=logger):
        frame = _to_pillow(pixels)
        if fmt == "png":
            frame.save(buffer, format="PNG")
        elif fmt == "jpeg":
            frame.convert("RGB").save(buffer, format="JPEG", quality=config.JPEG_QUALITY)
        elif fmt == "gif":
            frame.save(buffer, format="GIF")
        else:
            frame.save(
                buffer,
                format="WEBP",
                quality=config.WEBP_QUALITY,
                lossless=config.WEBP_LOSSLESS or image.lossless,
            )

    return buffer.getvalue()
