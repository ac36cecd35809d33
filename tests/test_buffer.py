"""
Frame Buffer Tests
==================

Tests for the bounded FrameBuffer shared by extractor and writer.
"""

import random
import threading

import numpy as np
import pytest

from temporal_composite.errors import BufferFullError
from temporal_composite.extraction.buffer import FrameBuffer


def _image(value: int = 0) -> np.ndarray:
    return np.full((4, 4, 3), value, dtype=np.uint8)


class TestFrameBuffer:
    """Basic set/get/remove behaviour."""

    def test_default_capacity(self):
        """Verify the default capacity is ten frames."""
        assert FrameBuffer().capacity == 10

    def test_invalid_capacity(self):
        """Verify a non-positive capacity is rejected."""
        with pytest.raises(ValueError):
            FrameBuffer(capacity=0)

    def test_set_get_remove(self):
        """Verify a stored image can be read back and removed."""
        buffer = FrameBuffer(capacity=2)
        buffer.set(3, _image(3))

        assert buffer.contains(3)
        assert buffer.get(3).pixels[0, 0, 0] == 3
        assert buffer.current_count == 1

        buffer.remove(3)
        assert buffer.get(3) is None
        assert buffer.current_count == 0

    def test_remove_absent_is_noop(self):
        """Verify removing an absent index changes nothing."""
        buffer = FrameBuffer(capacity=2)
        buffer.remove(42)
        assert buffer.metrics()["total_removed"] == 0

    def test_full_buffer_rejects_new_index(self):
        """Verify a full buffer refuses a new index."""
        buffer = FrameBuffer(capacity=2)
        buffer.set(0, _image())
        buffer.set(1, _image())

        with pytest.raises(BufferFullError):
            buffer.set(2, _image())
        assert buffer.current_count == 2

    def test_full_buffer_allows_overwrite(self):
        """Verify a full buffer still accepts a resident index."""
        buffer = FrameBuffer(capacity=1)
        buffer.set(0, _image(1))
        buffer.set(0, _image(2))
        assert buffer.get(0).pixels[0, 0, 0] == 2

    def test_clear(self):
        """Verify clear empties the buffer and reports the count."""
        buffer = FrameBuffer(capacity=3)
        buffer.set(0, _image())
        buffer.set(1, _image())
        assert buffer.clear() == 2
        assert buffer.current_count == 0


class TestBackpressure:
    """Waiting for space while the buffer is full."""

    def test_wait_for_space_times_out(self):
        """Verify waiting on a full buffer times out."""
        buffer = FrameBuffer(capacity=1)
        buffer.set(0, _image())
        assert buffer.wait_for_space(timeout=0.01) is False

    def test_remove_wakes_waiter(self):
        """Verify a removal wakes a waiting producer."""
        buffer = FrameBuffer(capacity=1)
        buffer.set(0, _image())

        timer = threading.Timer(0.05, buffer.remove, args=(0,))
        timer.start()
        try:
            assert buffer.wait_for_space(timeout=5.0) is True
        finally:
            timer.join()

    def test_wait_until_empty(self):
        """Verify waiting for an empty buffer."""
        buffer = FrameBuffer(capacity=2)
        assert buffer.wait_until_empty(timeout=0.01) is True
        buffer.set(0, _image())
        assert buffer.wait_until_empty(timeout=0.01) is False


class TestCapacityInvariant:
    """Resident count never exceeds capacity under arbitrary operations."""

    @pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
    def test_random_operations(self, seed):
        """Verify the resident count tracks a model set and stays within capacity."""
        rng = random.Random(seed)
        capacity = rng.randint(1, 10)
        buffer = FrameBuffer(capacity=capacity)
        resident = set()

        for _ in range(500):
            index = rng.randint(0, 30)
            if rng.random() < 0.6:
                if index not in resident and len(resident) >= capacity:
                    with pytest.raises(BufferFullError):
                        buffer.set(index, _image())
                else:
                    buffer.set(index, _image())
                    resident.add(index)
            else:
                buffer.remove(index)
                resident.discard(index)

            assert buffer.current_count == len(resident)
            assert buffer.current_count <= capacity

        assert buffer.metrics()["high_water_mark"] <= capacity
