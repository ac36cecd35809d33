"""
Ring Compositor
===============

Blends a symmetric window of neighbour frames around a center frame.

Rings:
    ring 0 = frame[c]
    ring d = frame[c-d] + frame[c+d]     (additive, either side may be absent)

Weights:
    weight(d) = 1 / (d + 1)^gamma        (strictly decreasing for gamma > 0)

Light budget:
    total_weight = sum_d weight(d) * frames_in_ring(d)
    budget_scale = min(target_peak / total_weight, 1)

    Every input channel is <= 1, so the blended image can never exceed
    sum_d weight(d) * budget_scale * frames_in_ring(d) = min(total_weight,
    target_peak) <= target_peak. The tone mapper handles content that
    breaks this bound anyway.

Compositing:
    acc = black
    for d from ring_count down to 0:
        acc += ring(d) * weight(d) * budget_scale

Rings are built sequentially from a position loader; one output frame
touches at most 2*ring_count+1 source images.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from temporal_composite.models.composite import CompositeFrame, CompositeWindowSpec, RingImage


logger = logging.getLogger(__name__)


# position -> float32 image in [0, 1], or None when absent
ImageLoader = Callable[[int], Optional[np.ndarray]]


def ring_weight(distance: int, gamma: float = 1.0) -> float:
    """Weight of the ring at ``distance``: 1 / (distance + 1)^gamma."""
    if distance < 0:
        raise ValueError(f"distance must be >= 0, got {distance}")
    return 1.0 / float(distance + 1) ** gamma


def ring_weights(ring_count: int, gamma: float = 1.0) -> Tuple[float, ...]:
    """Weights for distances 0..ring_count."""
    return tuple(ring_weight(d, gamma) for d in range(ring_count + 1))


def total_weight(rings: Sequence[RingImage], gamma: float = 1.0) -> float:
    """Theoretical peak of the unscaled blend: sum of weight * frames present."""
    return sum(ring_weight(r.distance, gamma) * r.frame_count for r in rings)


def budget_scale(weight_sum: float, target_peak: float = 1.0) -> float:
    """
    Static light-budget scale: min(target_peak / weight_sum, 1).

    Returns 1.0 for an empty window.
    """
    if weight_sum <= 0:
        return 1.0
    return min(target_peak / weight_sum, 1.0)


def build_ring(center: int, distance: int, load: ImageLoader) -> Optional[RingImage]:
    """
    Merge the frames at center +/- distance.

    Returns:
        RingImage, or None when neither frame is present
    """
    if distance == 0:
        positions = [center]
    else:
        positions = [center - distance, center + distance]

    blended: Optional[np.ndarray] = None
    count = 0
    for position in positions:
        if position < 0:
            continue
        image = load(position)
        if image is None:
            continue
        if blended is None:
            blended = image.astype(np.float32, copy=True)
        else:
            if image.shape != blended.shape:
                raise ValueError(
                    f"Frame {position} shape {image.shape} does not match ring shape {blended.shape}"
                )
            blended += image
        count += 1

    if blended is None:
        return None
    return RingImage(distance=distance, blended_pixels=blended, frame_count=count)


def build_rings(spec: CompositeWindowSpec, load: ImageLoader) -> List[RingImage]:
    """All present rings for ``spec``, ordered by distance."""
    rings = []
    for distance in range(spec.ring_count + 1):
        ring = build_ring(spec.center_index, distance, load)
        if ring is not None:
            rings.append(ring)
    return rings


class RingCompositor:
    """
    Produces one CompositeFrame per center index.

    Attributes:
        load: Position -> image loader (e.g. a FrameLoader)

    Example:
        compositor = RingCompositor(loader)
        spec = CompositeWindowSpec(center_index=100, ring_count=4)
        frame = compositor.compose(spec)
    """

    def __init__(self, load: ImageLoader) -> None:
        self.load = load

    def compose(self, spec: CompositeWindowSpec) -> Optional[CompositeFrame]:
        """
        Blend the window described by ``spec``.

        Args:
            spec: Window parameters

        Returns:
            CompositeFrame before tone mapping, or None if no frame in
            the window could be loaded
        """
        weights = ring_weights(spec.ring_count, spec.gamma)
        accumulator: Optional[np.ndarray] = None
        present: List[Tuple[int, int]] = []

        rings = build_rings(spec, self.load)
        if not rings:
            logger.warning(f"No frames available around center {spec.center_index}")
            return None

        scale = budget_scale(total_weight(rings, spec.gamma), spec.target_peak)

        # farthest ring first
        for ring in sorted(rings, key=lambda r: r.distance, reverse=True):
            if accumulator is None:
                accumulator = np.zeros_like(ring.blended_pixels, dtype=np.float32)
            accumulator += ring.blended_pixels * np.float32(weights[ring.distance] * scale)
            present.append((ring.distance, ring.frame_count))

        logger.debug(
            f"Composite center={spec.center_index}: rings={present}, "
            f"budget_scale={scale:.4f}"
        )

        return CompositeFrame(
            ordinal_index=spec.center_index,
            pixels=accumulator,
            ring_weights=weights,
            budget_scale=scale,
        )
