"""
Extraction Module
=================

Video -> deduplicated, disk-persisted frame sequence.

This module provides:
    - VideoSource / OpenCVVideoSource: Frame-accurate raster access
    - FrameBuffer: Thread-safe bounded index -> image store
    - FrameExtractor: Sampling loop with dedup, backpressure, cancellation
    - PersistenceWriter: Background JPEG + thumbnail writer

Example:
    from temporal_composite.extraction import (
        FrameBuffer, FrameExtractor, PersistenceWriter, build_samples,
    )

    buffer = FrameBuffer(capacity=10)
    writer = PersistenceWriter(storage, buffer, store)
    extractor = FrameExtractor(source, buffer, writer)
    result = extractor.run(build_samples(source, stride=1))
    writer.close()
"""

from temporal_composite.extraction.buffer import FrameBuffer
from temporal_composite.extraction.persistence import PersistenceWriter
from temporal_composite.extraction.sampler import (
    ExtractionResult,
    FrameExtractor,
    build_samples,
    sample_indices,
    total_frame_count,
)
from temporal_composite.extraction.source import OpenCVVideoSource, VideoSource, display_size


__all__ = [
    "FrameBuffer",
    "PersistenceWriter",
    "ExtractionResult",
    "FrameExtractor",
    "build_samples",
    "sample_indices",
    "total_frame_count",
    "OpenCVVideoSource",
    "VideoSource",
    "display_size",
]
