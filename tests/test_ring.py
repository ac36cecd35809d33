"""
Ring Compositor Tests
=====================

Tests for ring weights, the light budget and the window blend.
"""

import random

import numpy as np
import pytest

from temporal_composite.compositing.ring import (
    RingCompositor,
    budget_scale,
    build_ring,
    build_rings,
    ring_weight,
    ring_weights,
    total_weight,
)
from temporal_composite.models.composite import CompositeWindowSpec


def _loader(images):
    """Loader over a list of images; out-of-range positions are absent."""
    def load(position):
        if 0 <= position < len(images):
            return images[position]
        return None
    return load


def _constant(value: float, shape=(4, 5, 3)) -> np.ndarray:
    return np.full(shape, value, dtype=np.float32)


class TestWeights:
    """Ring weight falloff."""

    def test_harmonic_weights(self):
        """Verify gamma 1 gives harmonic weights."""
        weights = ring_weights(4, gamma=1.0)
        assert weights == pytest.approx([1.0, 0.5, 1 / 3, 0.25, 0.2])

    @pytest.mark.parametrize("gamma", [0.25, 1.0, 2.0, 3.5])
    def test_strictly_decreasing(self, gamma):
        """Verify weights decrease with distance."""
        weights = ring_weights(10, gamma)
        assert all(a > b for a, b in zip(weights, weights[1:]))

    def test_negative_distance(self):
        """Verify a negative distance is rejected."""
        with pytest.raises(ValueError):
            ring_weight(-1)

    def test_budget_scale(self):
        """Verify the budget scale normalises the weight sum."""
        assert budget_scale(4.0, 1.0) == pytest.approx(0.25)
        assert budget_scale(0.5, 1.0) == 1.0
        assert budget_scale(0.0, 1.0) == 1.0


class TestRings:
    """Merging frames at +/- distance."""

    def test_center_ring(self):
        """Verify the centre ring holds the current frame alone."""
        ring = build_ring(0, 0, _loader([_constant(0.3)]))
        assert ring.frame_count == 1
        np.testing.assert_allclose(ring.blended_pixels, 0.3)

    def test_pair_is_additive(self):
        """Verify a ring adds both neighbours."""
        images = [_constant(0.1), _constant(0.0), _constant(0.2)]
        ring = build_ring(1, 1, _loader(images))
        assert ring.frame_count == 2
        np.testing.assert_allclose(ring.blended_pixels, 0.3, rtol=1e-6)

    def test_one_sided_at_edge(self):
        """Verify a ring at the sequence edge is one-sided."""
        images = [_constant(0.1), _constant(0.2), _constant(0.4)]
        ring = build_ring(0, 2, _loader(images))
        assert ring.frame_count == 1
        np.testing.assert_allclose(ring.blended_pixels, 0.4)

    def test_absent_ring(self):
        """Verify a ring with no neighbours is absent."""
        assert build_ring(0, 3, _loader([_constant(0.1)])) is None

    def test_ring_does_not_mutate_source(self):
        """Verify building a ring leaves the source frames untouched."""
        images = [_constant(0.1), _constant(0.1), _constant(0.1)]
        build_ring(1, 1, _loader(images))
        np.testing.assert_allclose(images[0], 0.1)

    def test_shape_mismatch(self):
        """Verify mismatched frame shapes are rejected."""
        images = [_constant(0.1), _constant(0.1), _constant(0.1, shape=(2, 2, 3))]
        with pytest.raises(ValueError):
            build_ring(1, 1, _loader(images))

    def test_build_rings_near_start(self):
        """Verify ring construction near the first frame."""
        images = [_constant(0.1) for _ in range(10)]
        rings = build_rings(CompositeWindowSpec(center_index=1, ring_count=3), _loader(images))
        assert [(r.distance, r.frame_count) for r in rings] == [(0, 1), (1, 2), (2, 1), (3, 1)]


class TestRingCompositor:
    """Full window blend."""

    def test_single_frame_passes_through(self):
        """Verify a single frame composes to itself."""
        compositor = RingCompositor(_loader([_constant(0.6)]))
        frame = compositor.compose(CompositeWindowSpec(center_index=0, ring_count=8))

        assert frame.budget_scale == 1.0
        np.testing.assert_allclose(frame.pixels, 0.6)

    def test_harmonic_window_scaled_to_budget(self):
        """Verify the blended window is scaled to the light budget."""
        images = [_constant(1.0) for _ in range(9)]
        compositor = RingCompositor(_loader(images))
        frame = compositor.compose(CompositeWindowSpec(center_index=4, ring_count=4, gamma=1.0))

        expected_total = 1.0 + 2 * (0.5 + 1 / 3 + 0.25 + 0.2)
        assert frame.budget_scale == pytest.approx(1.0 / expected_total)
        np.testing.assert_allclose(frame.pixels, 1.0, rtol=1e-5)
        assert frame.ring_weights == pytest.approx([1.0, 0.5, 1 / 3, 0.25, 0.2])

    def test_weights_favour_center(self):
        """Verify the centre frame dominates the blend."""
        images = [_constant(0.0) for _ in range(5)]
        images[2] = _constant(1.0)
        compositor = RingCompositor(_loader(images))
        centered = compositor.compose(CompositeWindowSpec(center_index=2, ring_count=2))
        offset = compositor.compose(CompositeWindowSpec(center_index=3, ring_count=2))

        assert centered.pixels.max() > offset.pixels.max()

    def test_empty_window(self):
        """Verify an empty window composes to None."""
        compositor = RingCompositor(_loader([]))
        assert compositor.compose(CompositeWindowSpec(center_index=0)) is None

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_blend_never_exceeds_budget(self, seed):
        """Verify random windows never exceed the light budget."""
        rng = np.random.default_rng(seed)
        count = 12
        images = [rng.random((6, 7, 3), dtype=np.float32) for _ in range(count)]
        compositor = RingCompositor(_loader(images))

        params = random.Random(seed)
        for _ in range(10):
            spec = CompositeWindowSpec(
                center_index=params.randrange(count),
                ring_count=params.randint(0, 6),
                gamma=params.uniform(0.2, 3.0),
                target_peak=params.uniform(0.3, 1.5),
            )
            frame = compositor.compose(spec)
            rings = build_rings(spec, compositor.load)
            assert frame.budget_scale * total_weight(rings, spec.gamma) <= spec.target_peak + 1e-6
            assert float(frame.pixels.max()) <= spec.target_peak + 1e-5
