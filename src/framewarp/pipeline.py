"""Decode -> transform -> encode orchestration.

The pipeline validates the request before touching the input bytes, decodes
once, dispatches to the geometry or temporal transform and picks the output
container:

- animated result from a GIF/WebP source: same container, animated
- animated result from any other container: first frame as a still PNG
- static result: the source still format when writable, PNG otherwise
- an explicit ``target_format`` overrides the inference

Static images make ``speed`` and ``reverse`` no-ops; when the source is
already in a writable format the original bytes are returned untouched.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from . import codec, geometry, temporal
from .codec import GifOutput, OutputFormat, StillOutput, WebpOutput
from .config import DEFAULT_TRANSFORM_CONFIG, STILL_FORMATS, EncodeConfig, PipelineConfig
from .errors import (
    EncodeError,
    InvalidArgumentError,
    log_info_with_context,
    log_warning_with_context,
)
from .geometry import MirrorAxis
from .model import AnimatedImage

logger = logging.getLogger(__name__)


class TransformKind(Enum):
    """Transform families supported by the pipeline."""

    MIRROR = "mirror"
    SPEED = "speed"
    REVERSE = "reverse"

    @classmethod
    def parse(cls, value: TransformKind | str) -> TransformKind:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidArgumentError(
            f"Unknown transform kind: {value!r}",
            context={"kind": value, "supported": [kind.value for kind in cls]},
        )


@dataclass(frozen=True)
class TransformRequest:
    """A validated transform descriptor.

    ``axis`` is required for mirror, ``factor`` is used by speed (defaulting
    to TransformConfig.DEFAULT_SPEED_FACTOR); both are ignored otherwise.
    Strings are accepted for ``kind`` and ``axis`` and normalized here.
    """

    kind: TransformKind
    axis: MirrorAxis | None = None
    factor: float | None = None

    def __post_init__(self) -> None:
        kind = TransformKind.parse(self.kind)
        object.__setattr__(self, "kind", kind)

        if kind is TransformKind.MIRROR:
            if self.axis is None:
                raise InvalidArgumentError(
                    "Mirror transform requires an axis",
                    context={"kind": kind.value, "supported": [a.value for a in MirrorAxis]},
                )
            object.__setattr__(self, "axis", MirrorAxis.parse(self.axis))
        elif kind is TransformKind.SPEED:
            factor = (
                DEFAULT_TRANSFORM_CONFIG.DEFAULT_SPEED_FACTOR
                if self.factor is None
                else self.factor
            )
            object.__setattr__(self, "factor", temporal.validate_speed_factor(factor))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TransformRequest:
        """Build a request from ``{"kind": ..., "axis": ..., "factor": ...}``."""
        if "kind" not in data:
            raise InvalidArgumentError(
                "Transform descriptor is missing 'kind'", context={"keys": sorted(data)}
            )
        return cls(kind=data["kind"], axis=data.get("axis"), factor=data.get("factor"))


@dataclass
class TransformResult:
    """Encoded output of one pipeline run."""

    buffer: bytes
    content_type: str
    width: int
    height: int
    frame_count: int

    def as_dict(self) -> dict[str, Any]:
        return {"buffer": self.buffer, "contentType": self.content_type}


def normalize_target_format(target_format: str | None) -> str | None:
    """Validate an explicitly requested output format.

    Raises:
        InvalidArgumentError: If the format is not png, jpeg, gif or webp
    """
    if target_format is None:
        return None
    fmt = str(target_format).strip().lower()
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt not in STILL_FORMATS:
        raise InvalidArgumentError(
            f"Unsupported target format: {target_format!r}",
            context={"target_format": target_format, "supported": list(STILL_FORMATS)},
        )
    return fmt


def apply_transform(
    image: AnimatedImage,
    request: TransformRequest,
    config: PipelineConfig | None = None,
    cancel_event: threading.Event | None = None,
) -> AnimatedImage:
    """Dispatch ``image`` to the transform named by ``request``."""
    config = config or PipelineConfig()

    if request.kind is TransformKind.MIRROR:
        return geometry.mirror(
            image, request.axis, parallel=config.parallel, cancel_event=cancel_event
        )
    if request.kind is TransformKind.SPEED:
        return temporal.remap_speed(
            image, request.factor, min_delay=config.transform.MIN_DELAY_CS
        )
    return temporal.reverse(image)


def select_output_format(
    image: AnimatedImage,
    target_format: str | None = None,
    config: EncodeConfig | None = None,
) -> OutputFormat:
    """Choose the encoder variant for a transformed image."""
    default_still = config.DEFAULT_STILL_FORMAT if config else "png"

    if target_format is not None:
        if image.is_animated and target_format in ("gif", "webp"):
            delays = tuple(frame.finalized_delay() for frame in image.frames)
            if target_format == "gif":
                return GifOutput(delays=delays, loop=image.loop_count)
            return WebpOutput(delays=delays, loop=image.loop_count)
        return StillOutput(target_format)

    if image.is_animated:
        animated = codec.animated_output_for(image)
        if animated is not None:
            return animated
        logger.info(
            f"Source format {image.source_format} cannot be re-encoded as an animation, "
            f"falling back to a still {default_still}"
        )
        return StillOutput(default_still)

    if image.source_format in STILL_FORMATS:
        return StillOutput(image.source_format)
    return StillOutput(default_still)


def _encode(
    image: AnimatedImage,
    output: OutputFormat,
    explicit: bool,
    config: EncodeConfig,
) -> tuple[bytes, OutputFormat]:
    try:
        return codec.encode(image, output, config), output
    except EncodeError as e:
        if explicit or not isinstance(output, StillOutput) or output.format == "png":
            raise
        log_warning_with_context(
            f"Could not encode still {output.format}, degrading to png: {e.message}",
            context=e.context,
            logger=logger,
        )
        fallback = StillOutput("png")
        return codec.encode(image, fallback, config), fallback


def run(
    data: bytes,
    request: TransformRequest | Mapping[str, Any],
    *,
    target_format: str | None = None,
    config: PipelineConfig | None = None,
    cancel_event: threading.Event | None = None,
) -> TransformResult:
    """Decode ``data``, apply ``request`` and encode the result.

    Args:
        data: Compressed input image
        request: TransformRequest or a ``{"kind", "axis", "factor"}`` mapping
        target_format: Force png, jpeg, gif or webp output
        config: Pipeline configuration
        cancel_event: Cooperative cancellation flag checked between frames

    Returns:
        TransformResult with the encoded buffer and its MIME type

    Raises:
        InvalidArgumentError: Bad request or target format (before decoding)
        DecodeError: Input is not a supported image
        ResourceLimitExceeded: Input would exceed the decode budget
        EncodeError: The result cannot be written in the requested format
        OperationCancelled: ``cancel_event`` was set mid-run
    """
    config = config or PipelineConfig()

    if isinstance(request, Mapping):
        request = TransformRequest.from_dict(request)
    elif not isinstance(request, TransformRequest):
        raise InvalidArgumentError(
            f"Unsupported transform descriptor: {type(request).__name__}",
            context={"request": repr(request)},
        )
    explicit_format = normalize_target_format(target_format)

    start_time = time.perf_counter()
    image = codec.decode(data, config.limits)
    decode_ms = (time.perf_counter() - start_time) * 1000

    if (
        not image.is_animated
        and request.kind in (TransformKind.SPEED, TransformKind.REVERSE)
        and explicit_format is None
        and image.source_format in STILL_FORMATS
    ):
        logger.debug(f"{request.kind.value} on a static {image.source_format}: returning input")
        return TransformResult(
            buffer=bytes(data),
            content_type=codec.CONTENT_TYPES[image.source_format],
            width=image.width,
            height=image.height,
            frame_count=1,
        )

    transformed = apply_transform(image, request, config, cancel_event)
    transform_ms = (time.perf_counter() - start_time) * 1000 - decode_ms

    output = select_output_format(transformed, explicit_format, config.encode)
    buffer, output = _encode(transformed, output, explicit_format is not None, config.encode)
    total_ms = (time.perf_counter() - start_time) * 1000

    logger.debug(
        f"Pipeline timings: decode {decode_ms:.1f}ms, transform {transform_ms:.1f}ms, "
        f"total {total_ms:.1f}ms"
    )

    frame_count = transformed.frame_count if isinstance(output, (GifOutput, WebpOutput)) else 1
    log_info_with_context(
        f"Applied {request.kind.value} transform",
        context={
            "source": image.source_format,
            "frames_in": image.frame_count,
            "frames_out": frame_count,
            "size": f"{transformed.width}x{transformed.height}",
            "bytes_out": len(buffer),
        },
        logger=logger,
    )

    return TransformResult(
        buffer=buffer,
        content_type=codec.content_type(output),
        width=transformed.width,
        height=transformed.height,
        frame_count=frame_count,
    )
