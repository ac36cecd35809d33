"""
Video Encoder Sink
==================

Appends composite images to a video container at fixed frame intervals.

Lifecycle:
    UNINITIALIZED --start()--> WRITING --finish()--> FINISHED_SUCCESS
                                 |
                                 +--(error)--> FINISHED_ERROR

    - start() fails immediately with EncoderConfigurationError when the
      container/codec/size combination cannot be opened
    - append() converts the image to the fixed pixel format (BGR uint8,
      canvas size) and waits until the sink is ready for more data; a
      background thread feeds the cv2.VideoWriter from a bounded queue,
      which is what throttles the compositing loop
    - finish() checks the terminal status explicitly and raises
      EncoderFinalizationError with the writer diagnostic on failure
    - abort() releases the writer and deletes the partial output

Presentation times are assigned by the sink: frame n is shown at n / fps.
Frames are never skipped; any failure aborts the whole render.
"""

import logging
import queue
import threading
import time
from enum import Enum
from fractions import Fraction
from pathlib import Path
from typing import Any, Callable, Optional, Tuple, Union

import cv2
import numpy as np

from temporal_composite.errors import (
    EncoderAppendError,
    EncoderConfigurationError,
    EncoderFinalizationError,
    PixelBufferError,
)
from temporal_composite.extraction.source import frame_rate_fraction


logger = logging.getLogger(__name__)


# (path, fourcc, fps, (width, height)) -> cv2.VideoWriter-like object
WriterFactory = Callable[[str, int, float, Tuple[int, int]], Any]


class SinkState(str, Enum):
    """Encoder sink lifecycle states."""

    UNINITIALIZED = "uninitialized"
    WRITING = "writing"
    FINISHED_SUCCESS = "finished_success"
    FINISHED_ERROR = "finished_error"


def to_pixel_buffer(image: np.ndarray, canvas_size: Tuple[int, int]) -> np.ndarray:
    """
    Convert a composite image to the encoder pixel format.

    Args:
        image: float image in [0, 1] or uint8 image; 1, 3 or 4 channels
        canvas_size: Output (width, height)

    Returns:
        Contiguous BGR uint8 array (height, width, 3)

    Raises:
        PixelBufferError: If the image cannot be converted
    """
    width, height = canvas_size
    try:
        if image.size == 0:
            raise ValueError("empty image")

        if image.dtype == np.uint8:
            pixels = image
        else:
            if not np.all(np.isfinite(image)):
                raise ValueError("image contains non-finite values")
            pixels = np.rint(np.clip(image * 255.0, 0.0, 255.0)).astype(np.uint8)

        if pixels.ndim == 2 or pixels.shape[2] == 1:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
        elif pixels.shape[2] == 4:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_BGRA2BGR)
        elif pixels.shape[2] != 3:
            raise ValueError(f"unsupported channel count {pixels.shape[2]}")

        if pixels.shape[1] != width or pixels.shape[0] != height:
            pixels = cv2.resize(pixels, (width, height), interpolation=cv2.INTER_AREA)

        return np.ascontiguousarray(pixels)
    except (cv2.error, ValueError, TypeError, MemoryError) as e:
        raise PixelBufferError(f"Pixel buffer creation failed: {e}") from e


def _default_writer_factory(path: str, fourcc: int, fps: float, size: Tuple[int, int]):
    return cv2.VideoWriter(path, fourcc, fps, size)


class VideoEncoderSink:
    """
    Sequential video writer with readiness backpressure.

    Exactly one compositing loop appends to a sink; no two sinks may
    target the same output path.

    Attributes:
        output_path: Output video file
        fps: Output frame rate
        state: Current lifecycle state
        frames_appended: Frames accepted by append()

    Example:
        sink = VideoEncoderSink(path, fps=60)
        sink.start((width, height))
        for image in composites:
            sink.append(image)
        sink.finish()
    """

    def __init__(
        self,
        output_path: Union[str, Path],
        fps: float,
        codec: str = "mp4v",
        queue_depth: int = 4,
        poll_interval: float = 0.01,
        writer_factory: Optional[WriterFactory] = None,
    ) -> None:
        """
        Initialize encoder sink.

        Args:
            output_path: Output video file, overwritten on start()
            fps: Output frame rate
            codec: FourCC code
            queue_depth: Frames buffered ahead of the writer thread
            poll_interval: Sleep between readiness polls
            writer_factory: Override for cv2.VideoWriter construction
        """
        if fps <= 0:
            raise EncoderConfigurationError(f"fps must be positive, got {fps}")
        if len(codec) != 4:
            raise EncoderConfigurationError(f"codec must be a FourCC, got {codec!r}")
        if queue_depth < 1:
            raise ValueError("queue_depth must be >= 1")

        self.output_path = Path(output_path)
        self.fps = fps
        self.codec = codec
        self.poll_interval = poll_interval
        self._writer_factory = writer_factory or _default_writer_factory
        self._frame_duration = 1 / frame_rate_fraction(fps)

        self.state = SinkState.UNINITIALIZED
        self.canvas_size: Optional[Tuple[int, int]] = None
        self.frames_appended = 0
        self._frames_written = 0

        self._writer = None
        self._queue: "queue.Queue[Optional[np.ndarray]]" = queue.Queue(maxsize=queue_depth)
        self._thread: Optional[threading.Thread] = None
        self._worker_error: Optional[BaseException] = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, canvas_size: Tuple[int, int]) -> None:
        """
        Open the output container.

        Args:
            canvas_size: (width, height) taken from the first frame

        Raises:
            EncoderConfigurationError: If the writer cannot be opened
        """
        if self.state != SinkState.UNINITIALIZED:
            raise EncoderConfigurationError(f"Sink already started (state={self.state.value})")

        width, height = canvas_size
        if width <= 0 or height <= 0:
            self.state = SinkState.FINISHED_ERROR
            raise EncoderConfigurationError(f"Invalid canvas size {width}x{height}")

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        if self.output_path.exists():
            logger.info(f"Overwriting existing output {self.output_path}")
            self.output_path.unlink()

        fourcc = cv2.VideoWriter_fourcc(*self.codec)
        writer = self._writer_factory(str(self.output_path), fourcc, float(self.fps), (width, height))
        if writer is None or not writer.isOpened():
            self.state = SinkState.FINISHED_ERROR
            raise EncoderConfigurationError(
                f"Cannot open {self.codec} writer for {self.output_path} "
                f"at {width}x{height}@{self.fps}fps"
            )

        self._writer = writer
        self.canvas_size = (width, height)
        self.state = SinkState.WRITING
        self._thread = threading.Thread(target=self._worker_loop, name="encoder-sink", daemon=True)
        self._thread.start()

        logger.info(
            f"VideoEncoderSink started: {self.output_path}, "
            f"{width}x{height}@{self.fps}fps, codec={self.codec}"
        )

    def _worker_loop(self) -> None:
        try:
            while True:
                pixels = self._queue.get()
                if pixels is None:
                    break
                self._writer.write(pixels)
                self._frames_written += 1
        except Exception as exc:
            self._worker_error = exc
            logger.error(f"Encoder writer thread failed: {exc}")

    @property
    def is_ready_for_more_data(self) -> bool:
        """Whether append() can enqueue without waiting."""
        return (
            self.state == SinkState.WRITING
            and self._worker_error is None
            and not self._queue.full()
        )

    def presentation_time(self, frame_number: int) -> Fraction:
        """Presentation time of frame ``frame_number`` in seconds."""
        return frame_number * self._frame_duration

    def append(self, image: np.ndarray) -> Fraction:
        """
        Append one frame at the next presentation time.

        Args:
            image: Composite image (float in [0, 1] or uint8)

        Returns:
            Presentation time assigned to the frame

        Raises:
            PixelBufferError: If conversion to the pixel format fails
            EncoderAppendError: If the sink is not writing or the writer failed
        """
        if self.state != SinkState.WRITING:
            raise EncoderAppendError(f"Cannot append in state {self.state.value}")

        pixels = to_pixel_buffer(image, self.canvas_size)

        while not self.is_ready_for_more_data:
            if self._worker_error is not None:
                raise EncoderAppendError(
                    f"Writer failed after {self._frames_written} frames: {self._worker_error}"
                ) from self._worker_error
            time.sleep(self.poll_interval)

        presentation_time = self.presentation_time(self.frames_appended)
        self._queue.put_nowait(pixels)
        self.frames_appended += 1
        return presentation_time

    def _stop_worker(self) -> None:
        if self._thread is None:
            return
        while self._thread.is_alive():
            try:
                self._queue.put(None, timeout=self.poll_interval)
                break
            except queue.Full:
                continue
        self._thread.join()
        self._thread = None

    def finish(self) -> SinkState:
        """
        Flush, close and verify the output.

        Returns:
            SinkState.FINISHED_SUCCESS

        Raises:
            EncoderFinalizationError: If the terminal status is not success
        """
        if self.state != SinkState.WRITING:
            raise EncoderFinalizationError(
                "Cannot finish sink", diagnostic=f"state={self.state.value}"
            )

        self._stop_worker()
        self._writer.release()

        diagnostic = self._finalization_diagnostic()
        if diagnostic:
            self.state = SinkState.FINISHED_ERROR
            raise EncoderFinalizationError("Video writing failed", diagnostic=diagnostic)

        self.state = SinkState.FINISHED_SUCCESS
        logger.info(
            f"Video writing finished at {self.output_path} "
            f"({self._frames_written} frames)"
        )
        return self.state

    def _finalization_diagnostic(self) -> str:
        if self._worker_error is not None:
            return f"writer thread error: {self._worker_error!r}"
        if self._frames_written != self.frames_appended:
            return f"wrote {self._frames_written} of {self.frames_appended} frames"
        if not self.output_path.exists():
            return "output file was not created"
        if self.output_path.stat().st_size == 0:
            return "output file is empty"
        return ""

    def abort(self) -> None:
        """Stop writing and delete the partial output."""
        if self.state in (SinkState.FINISHED_SUCCESS, SinkState.UNINITIALIZED):
            return
        self._stop_worker()
        if self._writer is not None:
            self._writer.release()
            self._writer = None
        if self.output_path.exists():
            self.output_path.unlink()
            logger.info(f"Removed partial output {self.output_path}")
        self.state = SinkState.FINISHED_ERROR

    def __enter__(self) -> "VideoEncoderSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()

    def metrics(self) -> dict:
        return {
            "state": self.state.value,
            "frames_appended": self.frames_appended,
            "frames_written": self._frames_written,
            "queued": self._queue.qsize(),
        }
