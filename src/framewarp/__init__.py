"""FrameWarp - frame-level transforms for animated GIF and WebP images."""

__version__: str = "0.1.0"
__author__: str = "FrameWarp Team"
__email__: str = "team@framewarp.example"

# Public re-exports for convenience ---------------------------------------------------

from .codec import GifOutput, StillOutput, WebpOutput, decode, decode_raw, encode
from .config import EncodeConfig, LimitsConfig, PipelineConfig, TransformConfig
from .errors import (
    BusyError,
    DecodeError,
    EncodeError,
    FrameWarpError,
    InvalidArgumentError,
    OperationCancelled,
    ResourceLimitExceeded,
)
from .geometry import MirrorAxis, mirror
from .model import AnimatedImage, Frame, ImageFormat
from .parallel import ParallelConfig
from .pipeline import TransformKind, TransformRequest, TransformResult, run
from .temporal import MIN_DELAY, remap_speed, reverse

__all__ = [
    "AnimatedImage",
    "BusyError",
    "DecodeError",
    "EncodeConfig",
    "EncodeError",
    "Frame",
    "FrameWarpError",
    "GifOutput",
    "ImageFormat",
    "InvalidArgumentError",
    "LimitsConfig",
    "MIN_DELAY",
    "MirrorAxis",
    "OperationCancelled",
    "ParallelConfig",
    "PipelineConfig",
    "ResourceLimitExceeded",
    "StillOutput",
    "TransformConfig",
    "TransformKind",
    "TransformRequest",
    "TransformResult",
    "WebpOutput",
    "decode",
    "decode_raw",
    "encode",
    "mirror",
    "remap_speed",
    "reverse",
    "run",
]
