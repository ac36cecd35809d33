"""
Frame Sampler / Extractor
=========================

Walks a source video at a fixed stride and feeds accepted frames into the
FrameBuffer for the persistence writer.

Sampling:
    total   = floor(frame_rate * duration)
    indexes = 0, stride, 2*stride, ... < total
    t_i     = index_i / frame_rate          (rational, frame-accurate)

    The ordinal index of a sample is its position in this sequence.

Per-sample loop:
    1. Check cancellation (once per iteration)
    2. Park while paused
    3. Wait for a free buffer slot (backpressure from disk writes)
    4. Extract the raster; a transient failure skips the sample
    5. Compare its lossless PNG encoding with the previously accepted
       frame; an identical frame is discarded and its index is not reused
    6. Buffer the frame and hand it to the persistence writer
    7. Report progress

Dedup Limitation:
    Only adjacent accepted frames are compared. Duplicates separated by a
    different frame are kept.
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from temporal_composite.config import ExtractionConfig
from temporal_composite.errors import FrameExtractionError, ImageCodecError, NoFramesError
from temporal_composite.extraction.buffer import FrameBuffer
from temporal_composite.extraction.image_codec import encode_png
from temporal_composite.extraction.persistence import PersistenceWriter
from temporal_composite.extraction.source import VideoSource, frame_rate_fraction
from temporal_composite.models.frame import FrameSample, PersistedFrame


logger = logging.getLogger(__name__)


# progress callback: (fraction_complete, status)
ProgressCallback = Callable[[float, str], None]


def total_frame_count(frame_rate: float, duration: float) -> int:
    """Number of source frames: floor(frame_rate * duration)."""
    if frame_rate <= 0 or duration <= 0:
        return 0
    return int(math.floor(frame_rate * duration))


def sample_indices(total: int, stride: int) -> range:
    """
    Source frame indexes visited with the given stride.

    len(sample_indices(total, stride)) == ceil(total / stride)
    """
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")
    return range(0, max(total, 0), stride)


def build_samples(source: VideoSource, stride: int) -> List[FrameSample]:
    """
    Compute the ordered sample list for a source.

    Args:
        source: Video source
        stride: Sampling stride (>= 1)

    Returns:
        FrameSamples with dense ordinal indexes starting at 0

    Raises:
        NoFramesError: If the source yields zero frames
    """
    frame_rate = source.nominal_frame_rate
    total = total_frame_count(frame_rate, source.duration)
    if total == 0:
        raise NoFramesError("No frames to process.")

    rate = frame_rate_fraction(frame_rate)
    return [
        FrameSample(ordinal_index=i, timestamp=frame_index / rate, source_ref=source.uri)
        for i, frame_index in enumerate(sample_indices(total, stride))
    ]


@dataclass
class ExtractionResult:
    """
    Outcome of one extraction run.

    Attributes:
        total_samples: Samples scheduled
        attempted: Samples the loop reached before finishing or cancelling
        accepted: Samples buffered and handed to the writer
        duplicates: Samples discarded as identical to the previous frame
        extraction_failures: Samples skipped because extraction failed
        persisted: PersistedFrames written, ordered by ordinal index
        cancelled: Whether the run was cancelled
    """

    total_samples: int
    attempted: int = 0
    accepted: int = 0
    duplicates: int = 0
    extraction_failures: int = 0
    persisted: List[PersistedFrame] = field(default_factory=list)
    cancelled: bool = False

    @property
    def write_failures(self) -> int:
        """Accepted frames that never reached the store."""
        return self.accepted - len(self.persisted)

    def to_dict(self) -> dict:
        return {
            "total_samples": self.total_samples,
            "attempted": self.attempted,
            "accepted": self.accepted,
            "duplicates": self.duplicates,
            "extraction_failures": self.extraction_failures,
            "persisted": len(self.persisted),
            "write_failures": self.write_failures,
            "cancelled": self.cancelled,
        }


class FrameExtractor:
    """
    Single-producer extraction loop.

    The loop is strictly sequential; the FrameBuffer is the only state it
    shares with the persistence writer.

    Example:
        extractor = FrameExtractor(source, buffer, writer, ExtractionConfig())
        result = extractor.run(build_samples(source, stride=2))
    """

    def __init__(
        self,
        source: VideoSource,
        buffer: FrameBuffer,
        writer: PersistenceWriter,
        config: Optional[ExtractionConfig] = None,
        cancel_event: Optional[threading.Event] = None,
        resume_event: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Initialize extractor.

        Args:
            source: Video source to sample
            buffer: Bounded buffer shared with the writer
            writer: Persistence writer draining the buffer
            config: Extraction settings
            cancel_event: Set to request cancellation (terminal)
            resume_event: Cleared while paused, set while running
            on_progress: Non-blocking progress callback
        """
        self.source = source
        self.buffer = buffer
        self.writer = writer
        self.config = config or ExtractionConfig()
        self.cancel_event = cancel_event or threading.Event()
        self.resume_event = resume_event
        self.on_progress = on_progress

        self._last_accepted_png: Optional[bytes] = None

    def _wait_if_paused(self) -> None:
        if self.resume_event is None:
            return
        while not self.resume_event.wait(self.config.poll_interval_seconds):
            if self.cancel_event.is_set():
                return

    def _wait_for_buffer_space(self) -> bool:
        """Block until a slot is free. False if cancelled while waiting."""
        while not self.buffer.wait_for_space(self.config.poll_interval_seconds):
            if self.cancel_event.is_set():
                return False
        return True

    def _is_duplicate(self, encoded: bytes) -> bool:
        return self._last_accepted_png is not None and encoded == self._last_accepted_png

    def _report(self, done: int, total: int) -> None:
        if self.on_progress is not None:
            self.on_progress(done / total, f"Processing frame {done} of {total}")
        if done % self.config.log_every_n_frames == 0:
            logger.info(
                f"Extraction progress: {done}/{total}, "
                f"buffer={self.buffer.current_count}/{self.buffer.capacity}"
            )

    def run(self, samples: List[FrameSample]) -> ExtractionResult:
        """
        Extract every sample, then wait for outstanding writes.

        Args:
            samples: Output of build_samples()

        Returns:
            ExtractionResult; ``cancelled`` is set when the loop exited early
        """
        total = len(samples)
        result = ExtractionResult(total_samples=total)
        self._last_accepted_png = None

        for sample in samples:
            if self.cancel_event.is_set():
                result.cancelled = True
                break

            self._wait_if_paused()
            if self.cancel_event.is_set() or not self._wait_for_buffer_space():
                result.cancelled = True
                break

            result.attempted += 1
            self._process_sample(sample, result)
            self._report(result.attempted, total)

        result.persisted = self.writer.drain()
        logger.info(f"Extraction finished: {result.to_dict()}")
        return result

    def _process_sample(self, sample: FrameSample, result: ExtractionResult) -> None:
        index = sample.ordinal_index
        try:
            image = self.source.frame_at(sample.timestamp)
        except FrameExtractionError as e:
            logger.warning(f"Error extracting frame at {sample.seconds:.3f}s: {e}")
            result.extraction_failures += 1
            return

        if self.config.deduplicate:
            try:
                encoded = encode_png(image)
            except ImageCodecError as e:
                logger.warning(f"Skipping unencodable frame {index}: {e}")
                result.extraction_failures += 1
                return
            if self._is_duplicate(encoded):
                logger.debug(f"Skipping duplicate frame {index}")
                result.duplicates += 1
                return
            self._last_accepted_png = encoded

        self.buffer.set(index, image)
        self.writer.submit(sample)
        result.accepted += 1
