"""Shared fixtures: small in-memory GIF, WebP, PNG and JPEG inputs."""

import io

import numpy as np
import pytest
from PIL import Image

from framewarp.model import AnimatedImage

# Distinct, palette-friendly colours so GIF quantisation keeps them exact and
# Pillow never merges neighbouring frames as duplicates.
FRAME_COLORS = [
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (255, 0, 255),
    (0, 255, 255),
    (128, 128, 128),
    (255, 255, 255),
]


def _encode_frames(frames, fmt, durations_ms=100, loop=0):
    buffer = io.BytesIO()
    first, rest = frames[0], frames[1:]
    kwargs = {"format": fmt}
    if rest:
        kwargs.update(save_all=True, append_images=rest, duration=durations_ms)
        if loop is not None:
            kwargs["loop"] = loop
    first.save(buffer, **kwargs)
    return buffer.getvalue()


@pytest.fixture
def solid_frames():
    """Factory: ``n`` solid RGB PIL frames of ``size`` in cycling colours."""

    def _make(n=4, size=(10, 8)):
        return [Image.new("RGB", size, FRAME_COLORS[i % len(FRAME_COLORS)]) for i in range(n)]

    return _make


@pytest.fixture
def gif_bytes(solid_frames):
    """Factory for animated GIF bytes."""

    def _make(n=4, size=(10, 8), durations_ms=100, loop=0):
        return _encode_frames(solid_frames(n, size), "GIF", durations_ms, loop)

    return _make


@pytest.fixture
def webp_bytes(solid_frames):
    """Factory for animated WebP bytes."""

    def _make(n=4, size=(10, 8), durations_ms=100, loop=0):
        frames = [frame.convert("RGBA") for frame in solid_frames(n, size)]
        return _encode_frames(frames, "WEBP", durations_ms, loop)

    return _make


@pytest.fixture
def apng_bytes(solid_frames):
    """Animated PNG bytes: multi-frame, but not a GIF/WebP container."""
    return _encode_frames(solid_frames(3, (6, 6)), "PNG", 100, 0)


@pytest.fixture
def animated_gif(gif_bytes):
    """Four 10x8 frames, 100ms each, looping forever."""
    return gif_bytes()


@pytest.fixture
def png_bytes():
    """Random 7x5 RGBA still with partial transparency."""
    rng = np.random.default_rng(1234)
    pixels = rng.integers(0, 256, size=(5, 7, 4), dtype=np.uint8)
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    """Opaque 8x6 JPEG still."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 6), (200, 30, 30)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def bmp_bytes():
    """Opaque 6x4 BMP still (a format the encoder cannot write back)."""
    buffer = io.BytesIO()
    Image.new("RGB", (6, 4), (10, 20, 30)).save(buffer, format="BMP")
    return buffer.getvalue()


@pytest.fixture
def make_image():
    """Factory building an AnimatedImage straight from numpy frames."""

    def _make(frames, delays=None, loop_count=0, **kwargs):
        arena = np.stack([np.asarray(frame, dtype=np.uint8) for frame in frames])
        if delays is None:
            delays = [10] * len(frames)
        return AnimatedImage.from_arena(arena, delays, loop_count=loop_count, **kwargs)

    return _make


@pytest.fixture
def solid_rgba():
    """Factory for one solid (h, w, 4) RGBA frame."""

    def _make(color, size=(4, 4)):
        height, width = size
        frame = np.empty((height, width, 4), dtype=np.uint8)
        frame[...] = (*color, 255) if len(color) == 3 else color
        return frame

    return _make
