"""
Video Encoder Sink Tests
========================

Tests for pixel conversion and the encoder sink lifecycle.
"""

from fractions import Fraction

import cv2
import numpy as np
import pytest

from temporal_composite.compositing.encoder import SinkState, VideoEncoderSink, to_pixel_buffer
from temporal_composite.errors import (
    CompositeRenderError,
    EncoderAppendError,
    EncoderConfigurationError,
    EncoderFinalizationError,
    PixelBufferError,
)


class TestPixelBuffer:
    """Conversion to BGR uint8 at canvas size."""

    def test_float_to_uint8(self):
        """Verify float images convert to BGR uint8."""
        image = np.full((4, 6, 3), 0.5, dtype=np.float32)
        pixels = to_pixel_buffer(image, (6, 4))

        assert pixels.dtype == np.uint8
        assert pixels.shape == (4, 6, 3)
        assert pixels[0, 0, 0] == 128

    def test_out_of_range_clipped(self):
        """Verify values above one are clipped."""
        image = np.full((2, 2, 3), 1.7, dtype=np.float32)
        assert to_pixel_buffer(image, (2, 2)).max() == 255

    def test_resized_to_canvas(self):
        """Verify images are resized to the canvas."""
        image = np.zeros((10, 10, 4), dtype=np.float32)
        assert to_pixel_buffer(image, (4, 2)).shape == (2, 4, 3)

    def test_non_finite_rejected(self):
        """Verify NaN images are rejected."""
        image = np.full((2, 2, 3), np.nan, dtype=np.float32)
        with pytest.raises(PixelBufferError):
            to_pixel_buffer(image, (2, 2))

    def test_empty_rejected(self):
        """Verify empty images are rejected."""
        with pytest.raises(PixelBufferError):
            to_pixel_buffer(np.zeros((0, 0, 3), dtype=np.float32), (2, 2))


class TestVideoEncoderSink:
    """Sink lifecycle against a recording writer."""

    def test_appends_in_order(self, tmp_path, fake_writer_factory):
        """Verify frames are written in order at n / fps."""
        factory, writers = fake_writer_factory()
        sink = VideoEncoderSink(tmp_path / "out.mp4", fps=60, queue_depth=2, writer_factory=factory)
        sink.start((8, 6))

        times = [sink.append(np.full((6, 8, 3), i / 5, dtype=np.float32)) for i in range(5)]
        assert sink.finish() == SinkState.FINISHED_SUCCESS

        assert times == [Fraction(i, 60) for i in range(5)]
        assert [int(f[0, 0, 0]) for f in writers[0].frames] == [0, 51, 102, 153, 204]
        assert sink.metrics()["frames_written"] == 5

    def test_start_overwrites_existing_output(self, tmp_path, fake_writer_factory):
        """Verify an existing output file is replaced."""
        output = tmp_path / "out.mp4"
        output.write_bytes(b"old render")
        factory, _ = fake_writer_factory()

        sink = VideoEncoderSink(output, fps=30, writer_factory=factory)
        sink.start((4, 4))
        sink.append(np.zeros((4, 4, 3), dtype=np.float32))
        sink.finish()

        assert output.read_bytes() != b"old render"

    def test_writer_not_opened(self, tmp_path, fake_writer_factory):
        """Verify an unopenable writer fails start."""
        factory, _ = fake_writer_factory(opened=False)
        sink = VideoEncoderSink(tmp_path / "out.mp4", fps=30, writer_factory=factory)

        with pytest.raises(EncoderConfigurationError):
            sink.start((4, 4))
        assert sink.state == SinkState.FINISHED_ERROR

    @pytest.mark.parametrize("fps,codec", [(0, "mp4v"), (30, "h264x")])
    def test_invalid_configuration(self, tmp_path, fps, codec):
        """Verify bad fps or codec values are rejected."""
        with pytest.raises(EncoderConfigurationError):
            VideoEncoderSink(tmp_path / "out.mp4", fps=fps, codec=codec)

    def test_append_before_start(self, tmp_path):
        """Verify append requires a started sink."""
        sink = VideoEncoderSink(tmp_path / "out.mp4", fps=30)
        with pytest.raises(EncoderAppendError):
            sink.append(np.zeros((4, 4, 3), dtype=np.float32))

    def test_writer_failure_aborts(self, tmp_path, fake_writer_factory):
        """Verify a writer failure aborts and removes the output."""
        factory, _ = fake_writer_factory(fail_after=2)
        output = tmp_path / "out.mp4"

        with pytest.raises(CompositeRenderError):
            with VideoEncoderSink(output, fps=30, queue_depth=1, writer_factory=factory) as sink:
                sink.start((4, 4))
                for _ in range(10):
                    sink.append(np.zeros((4, 4, 3), dtype=np.float32))
                sink.finish()

        assert sink.state == SinkState.FINISHED_ERROR
        assert not output.exists()

    def test_finish_twice(self, tmp_path, fake_writer_factory):
        """Verify finishing twice is an error."""
        factory, _ = fake_writer_factory()
        sink = VideoEncoderSink(tmp_path / "out.mp4", fps=30, writer_factory=factory)
        sink.start((4, 4))
        sink.append(np.zeros((4, 4, 3), dtype=np.float32))
        sink.finish()

        with pytest.raises(EncoderFinalizationError):
            sink.finish()

    def test_abort_removes_partial_output(self, tmp_path, fake_writer_factory):
        """Verify abort releases the writer and deletes the file."""
        factory, writers = fake_writer_factory()
        output = tmp_path / "out.mp4"
        sink = VideoEncoderSink(output, fps=30, writer_factory=factory)
        sink.start((4, 4))
        sink.append(np.zeros((4, 4, 3), dtype=np.float32))

        sink.abort()

        assert writers[0].released
        assert not output.exists()
        assert sink.state == SinkState.FINISHED_ERROR

    def test_real_mp4v_output(self, tmp_path):
        """Verify a real mp4v file is readable back."""
        output = tmp_path / "real.mp4"
        sink = VideoEncoderSink(output, fps=30)
        sink.start((32, 24))
        for i in range(6):
            sink.append(np.full((24, 32, 3), i / 6, dtype=np.float32))
        sink.finish()

        assert output.stat().st_size > 0
        capture = cv2.VideoCapture(str(output))
        ok, frame = capture.read()
        capture.release()
        assert ok
        assert frame.shape == (24, 32, 3)


class TestModuleSource:
    """Module source hygiene."""

    def test_compiles_without_warnings(self):
        """Verify the encoder module compiles with warnings treated as errors."""
        import inspect
        import warnings

        from temporal_composite.compositing import encoder

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(inspect.getsource(encoder), encoder.__file__, "exec")
