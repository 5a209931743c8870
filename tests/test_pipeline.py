"""End-to-end tests for framewarp.pipeline."""

import io
import threading
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from framewarp import codec
from framewarp.codec import GifOutput, StillOutput, WebpOutput, decode
from framewarp.config import EncodeConfig, LimitsConfig, PipelineConfig
from framewarp.errors import (
    DecodeError,
    EncodeError,
    InvalidArgumentError,
    OperationCancelled,
    ResourceLimitExceeded,
)
from framewarp.geometry import MirrorAxis, mirror_frame
from framewarp.model import ImageFormat
from framewarp.parallel import ParallelConfig
from framewarp.pipeline import (
    TransformKind,
    TransformRequest,
    TransformResult,
    _encode,
    normalize_target_format,
    run,
    select_output_format,
)


class TestTransformRequest:
    """Tests for request validation."""

    @pytest.mark.fast
    def test_strings_are_normalized(self):
        """Kind and axis names become enum members."""
        request = TransformRequest("Mirror", axis="LEFT")
        assert request.kind is TransformKind.MIRROR
        assert request.axis is MirrorAxis.LEFT

    @pytest.mark.fast
    def test_mirror_requires_axis(self):
        """A mirror without an axis is invalid."""
        with pytest.raises(InvalidArgumentError, match="requires an axis"):
            TransformRequest(TransformKind.MIRROR)

    @pytest.mark.fast
    def test_speed_defaults_factor(self):
        """Speed without a factor uses the default of 2."""
        assert TransformRequest("speed").factor == 2.0

    @pytest.mark.fast
    def test_speed_rejects_bad_factor(self):
        """Negative factors are rejected at construction."""
        with pytest.raises(InvalidArgumentError):
            TransformRequest("speed", factor=-2)

    @pytest.mark.fast
    def test_unknown_kind(self):
        """Unknown transform kinds are rejected."""
        with pytest.raises(InvalidArgumentError, match="Unknown transform kind"):
            TransformRequest("rotate")

    @pytest.mark.fast
    def test_from_dict(self):
        """Mappings are accepted and missing kind is reported."""
        request = TransformRequest.from_dict({"kind": "speed", "factor": 3})
        assert request.kind is TransformKind.SPEED
        assert request.factor == 3.0

        with pytest.raises(InvalidArgumentError, match="missing 'kind'"):
            TransformRequest.from_dict({"axis": "left"})

    @pytest.mark.fast
    def test_reverse_ignores_parameters(self):
        """Reverse accepts and ignores axis and factor."""
        request = TransformRequest("reverse", axis="nonsense", factor=-1)
        assert request.kind is TransformKind.REVERSE


class TestSelectOutputFormat:
    """Tests for output container inference."""

    @pytest.mark.fast
    def test_animated_gif_stays_gif(self, make_image, solid_rgba):
        """An animated GIF result is encoded as an animated GIF."""
        image = make_image(
            [solid_rgba((1, 1, 1)), solid_rgba((2, 2, 2))],
            delays=[0, 5],
            loop_count=2,
            format=ImageFormat.GIF,
        )
        assert select_output_format(image) == GifOutput(delays=(1, 5), loop=2)

    @pytest.mark.fast
    def test_animated_other_container_becomes_png(self, make_image, solid_rgba):
        """Animated sources that cannot be written back fall back to PNG."""
        image = make_image(
            [solid_rgba((1, 1, 1)), solid_rgba((2, 2, 2))], source_format="png"
        )
        assert select_output_format(image) == StillOutput("png")

    @pytest.mark.fast
    def test_configured_default_still(self, make_image, solid_rgba):
        """The fallback still format is configurable."""
        image = make_image([solid_rgba((1, 1, 1))], source_format="bmp")
        config = EncodeConfig(DEFAULT_STILL_FORMAT="webp")
        assert select_output_format(image, config=config) == StillOutput("webp")

    @pytest.mark.fast
    def test_static_keeps_writable_source(self, make_image, solid_rgba):
        """A still from a writable format keeps that format."""
        image = make_image([solid_rgba((1, 1, 1))], source_format="jpeg")
        assert select_output_format(image) == StillOutput("jpeg")

    @pytest.mark.fast
    def test_explicit_target_overrides(self, make_image, solid_rgba):
        """An explicit target wins over the inferred container."""
        frames = [solid_rgba((1, 1, 1)), solid_rgba((2, 2, 2))]
        image = make_image(frames, format=ImageFormat.GIF)

        assert isinstance(select_output_format(image, "webp"), WebpOutput)
        assert select_output_format(image, "png") == StillOutput("png")

    @pytest.mark.fast
    def test_normalize_target_format(self):
        """Target names are normalized and unknown ones rejected."""
        assert normalize_target_format("JPG") == "jpeg"
        assert normalize_target_format(None) is None
        with pytest.raises(InvalidArgumentError, match="Unsupported target format"):
            normalize_target_format("bmp")


class TestRunScenarios:
    """End-to-end pipeline runs on encoded inputs."""

    def test_mirror_left_on_gif(self, gif_bytes):
        """A 5-wide GIF mirrored left comes back 4 wide with the same timing."""
        data = gif_bytes(n=3, size=(5, 4), durations_ms=70, loop=4)

        result = run(data, {"kind": "mirror", "axis": "left"})

        assert isinstance(result, TransformResult)
        assert result.content_type == "image/gif"
        assert (result.width, result.height) == (4, 4)
        assert result.frame_count == 3

        output = decode(result.buffer)
        assert output.frame_count == 3
        assert output.delays == [7, 7, 7]
        assert output.loop_count == 4
        for frame in output.frames:
            np.testing.assert_array_equal(frame.pixels, frame.pixels[:, ::-1])

    def test_speed_up_gif(self, gif_bytes):
        """x2 on 100ms frames halves every delay."""
        result = run(gif_bytes(n=4), TransformRequest("speed", factor=2))

        output = decode(result.buffer)
        assert output.frame_count == 4
        assert output.delays == [5, 5, 5, 5]

    def test_speed_merges_short_frames(self, gif_bytes):
        """x2 on 20ms frames keeps only the first and last frame."""
        result = run(gif_bytes(n=4, durations_ms=20), {"kind": "speed", "factor": 2})

        output = decode(result.buffer)
        assert result.frame_count == 2
        assert output.delays == [2, 2]
        assert tuple(output.frames[0].pixels[0, 0]) == (255, 0, 0, 255)
        assert tuple(output.frames[1].pixels[0, 0]) == (255, 255, 0, 255)

    def test_reverse_gif(self, gif_bytes):
        """Reverse plays frames backwards with their own delays."""
        data = gif_bytes(n=3, durations_ms=[50, 100, 150])

        output = decode(run(data, {"kind": "reverse"}).buffer)

        assert output.delays == [15, 10, 5]
        assert tuple(output.frames[0].pixels[0, 0]) == (0, 0, 255, 255)
        assert tuple(output.frames[2].pixels[0, 0]) == (255, 0, 0, 255)

    def test_play_once_gif_stays_play_once(self, gif_bytes):
        """A GIF without a loop extension is not turned into an endless loop."""
        result = run(gif_bytes(n=3, loop=None), {"kind": "reverse"})

        assert b"NETSCAPE2.0" not in result.buffer
        assert decode(result.buffer).loop_count is None

    def test_lossless_webp_mirror_is_exact(self):
        """Mirroring a lossless WebP keeps it lossless and pixel exact."""
        rng = np.random.default_rng(11)
        pixels = rng.integers(0, 256, size=(6, 8, 4), dtype=np.uint8)
        pixels[..., 3] = 255
        buffer = io.BytesIO()
        Image.fromarray(pixels).save(buffer, format="WEBP", lossless=True)

        result = run(buffer.getvalue(), {"kind": "mirror", "axis": "left"})

        assert result.content_type == "image/webp"
        output = decode(result.buffer)
        assert output.lossless is True
        np.testing.assert_array_equal(output.frames[0].pixels, mirror_frame(pixels, "left"))

    def test_webp_stays_webp(self, webp_bytes):
        """Animated WebP in, animated WebP out."""
        result = run(webp_bytes(n=3), {"kind": "reverse"})

        assert result.content_type == "image/webp"
        output = decode(result.buffer)
        assert output.format is ImageFormat.WEBP
        assert output.frame_count == 3

    def test_explicit_webp_target_for_gif(self, animated_gif):
        """A GIF can be converted to an animated WebP on request."""
        result = run(animated_gif, {"kind": "reverse"}, target_format="webp")

        assert result.content_type == "image/webp"
        assert decode(result.buffer).frame_count == 4

    def test_explicit_png_target_for_animation(self, animated_gif):
        """A still target keeps only the first transformed frame."""
        result = run(animated_gif, {"kind": "reverse"}, target_format="png")

        assert result.content_type == "image/png"
        assert result.frame_count == 1
        output = decode(result.buffer)
        assert tuple(output.frames[0].pixels[0, 0]) == (255, 255, 0, 255)

    def test_animated_png_falls_back_to_still(self, apng_bytes):
        """Animated PNG input is transformed but written as a still PNG."""
        result = run(apng_bytes, {"kind": "mirror", "axis": "top"})

        assert result.content_type == "image/png"
        assert result.frame_count == 1

    def test_static_speed_returns_input(self, png_bytes):
        """Speed on a still PNG hands back the original bytes."""
        result = run(png_bytes, {"kind": "speed", "factor": 3})

        assert result.buffer == png_bytes
        assert result.content_type == "image/png"
        assert (result.width, result.height) == (7, 5)

    def test_static_reverse_returns_input(self, jpeg_bytes):
        """Reverse on a still JPEG hands back the original bytes."""
        result = run(jpeg_bytes, {"kind": "reverse"})

        assert result.buffer == jpeg_bytes
        assert result.content_type == "image/jpeg"

    def test_static_mirror_png(self, png_bytes):
        """Mirror on a still PNG is a real transform, written as PNG."""
        result = run(png_bytes, {"kind": "mirror", "axis": "right"})

        assert result.content_type == "image/png"
        assert (result.width, result.height) == (6, 5)
        output = decode(result.buffer)
        pixels = output.frames[0].pixels
        np.testing.assert_array_equal(pixels, pixels[:, ::-1])

    def test_unwritable_still_becomes_png(self, bmp_bytes):
        """A BMP input cannot be written back and becomes PNG."""
        result = run(bmp_bytes, {"kind": "reverse"})

        assert result.content_type == "image/png"
        assert Image.open(io.BytesIO(result.buffer)).format == "PNG"

    def test_as_dict(self, animated_gif):
        """The host-facing dict carries buffer and contentType."""
        payload = run(animated_gif, {"kind": "reverse"}).as_dict()
        assert set(payload) == {"buffer", "contentType"}
        assert payload["contentType"] == "image/gif"


class TestRunErrors:
    """Error paths of run()."""

    @pytest.mark.fast
    def test_invalid_request_never_decodes(self, animated_gif):
        """Parameter errors surface before the input is decoded."""
        with patch("framewarp.codec.decode") as mock_decode:
            with pytest.raises(InvalidArgumentError):
                run(animated_gif, {"kind": "speed", "factor": 0})
            with pytest.raises(InvalidArgumentError):
                run(animated_gif, {"kind": "mirror"})
            with pytest.raises(InvalidArgumentError):
                run(animated_gif, {"kind": "reverse"}, target_format="tiff")
            mock_decode.assert_not_called()

    @pytest.mark.fast
    def test_unsupported_descriptor_type(self, animated_gif):
        """Only requests and mappings are accepted."""
        with pytest.raises(InvalidArgumentError, match="Unsupported transform descriptor"):
            run(animated_gif, "reverse")

    @pytest.mark.fast
    def test_garbage_input(self):
        """Scenario: three random bytes fail with DecodeError."""
        with pytest.raises(DecodeError):
            run(b"\x00\x01\x02", {"kind": "reverse"})

    def test_limits_are_applied(self, gif_bytes):
        """The configured budget is enforced by run()."""
        config = PipelineConfig(limits=LimitsConfig(MAX_FRAMES=3))
        with pytest.raises(ResourceLimitExceeded):
            run(gif_bytes(n=4), {"kind": "reverse"}, config=config)

    def test_explicit_jpeg_with_alpha_fails(self, png_bytes):
        """An explicitly requested JPEG is never silently degraded."""
        with pytest.raises(EncodeError, match="transparent"):
            run(png_bytes, {"kind": "mirror", "axis": "left"}, target_format="jpeg")

    def test_cancellation_propagates(self, gif_bytes):
        """A pre-set cancel event aborts the transform."""
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelled):
            run(gif_bytes(n=4), {"kind": "mirror", "axis": "left"}, cancel_event=cancel)

    def test_parallel_config_is_used(self, gif_bytes):
        """A pooled mirror gives the same output as a serial one."""
        data = gif_bytes(n=8, size=(9, 6))
        pooled = PipelineConfig(parallel=ParallelConfig(max_workers=4, min_frames=2))
        serial = PipelineConfig(parallel=ParallelConfig(enabled=False))

        a = run(data, {"kind": "mirror", "axis": "right"}, config=pooled)
        b = run(data, {"kind": "mirror", "axis": "right"}, config=serial)

        assert a.buffer == b.buffer


class TestEncodeFallback:
    """Tests for the inferred-still PNG fallback."""

    @pytest.mark.fast
    def test_inferred_jpeg_degrades_to_png(self, make_image, solid_rgba):
        """A transparent frame inferred as JPEG is written as PNG instead."""
        image = make_image([solid_rgba((1, 2, 3, 0))], source_format="jpeg")

        buffer, output = _encode(image, StillOutput("jpeg"), False, EncodeConfig())

        assert output == StillOutput("png")
        assert Image.open(io.BytesIO(buffer)).format == "PNG"

    @pytest.mark.fast
    def test_explicit_jpeg_is_not_degraded(self, make_image, solid_rgba):
        """An explicit target propagates the encoder error."""
        image = make_image([solid_rgba((1, 2, 3, 0))])
        with pytest.raises(EncodeError):
            _encode(image, StillOutput("jpeg"), True, EncodeConfig())

    @pytest.mark.fast
    def test_animated_errors_are_not_degraded(self, make_image, solid_rgba):
        """Animated encoder failures propagate."""
        image = make_image([solid_rgba((1, 1, 1)), solid_rgba((2, 2, 2))])
        with patch.object(codec, "encode", side_effect=EncodeError("boom")):
            with pytest.raises(EncodeError, match="boom"):
                _encode(image, GifOutput(delays=(1, 1)), False, EncodeConfig())
