"""
Compositing Module
==================

Persisted frame sequence -> temporal-composite video.

This module provides:
    - FrameLoader: Position-addressed, canvas-conformed image loading
    - RingCompositor: Distance-weighted additive blend of a frame window
    - ToneMapper: Peak-clamping safety net after the light budget
    - VideoEncoderSink: Backpressured cv2.VideoWriter sink

DESIGN RULES:
    - Read-only over frame metadata and image files
    - All-or-nothing: any per-frame failure aborts the render
"""

from temporal_composite.compositing.encoder import SinkState, VideoEncoderSink, to_pixel_buffer
from temporal_composite.compositing.loader import FrameLoader
from temporal_composite.compositing.ring import (
    RingCompositor,
    budget_scale,
    build_rings,
    ring_weight,
    ring_weights,
    total_weight,
)
from temporal_composite.compositing.tonemap import ToneMapper, measure_peak


__all__ = [
    "SinkState",
    "VideoEncoderSink",
    "to_pixel_buffer",
    "FrameLoader",
    "RingCompositor",
    "budget_scale",
    "build_rings",
    "ring_weight",
    "ring_weights",
    "total_weight",
    "ToneMapper",
    "measure_peak",
]
