"""
Frame Loader Tests
==================

Tests for position-addressed loading of persisted frames.
"""

import cv2
import numpy as np

from temporal_composite.compositing.loader import FrameLoader, to_float_image
from temporal_composite.models.frame import PersistedFrame


def _persist(storage, store, index, image):
    path = storage.image_path(index)
    cv2.imwrite(str(path), image)
    frame = PersistedFrame(
        ordinal_index=index,
        frame_name=storage.frame_name(index),
        image_relative_path=storage.relative_path(path),
    )
    store.insert(frame)
    return frame


class TestFrameLoader:
    """Loading, conforming and caching."""

    def test_positions_follow_store_order(self, storage, frame_store):
        """Verify positions follow ordinal order and collapse gaps."""
        for index in (0, 5, 9):
            _persist(storage, frame_store, index, np.full((8, 8, 3), index * 20, dtype=np.uint8))

        loader = FrameLoader.from_store(frame_store, storage)

        assert len(loader) == 3
        assert abs(float(loader.load(1)[0, 0, 0]) - 100 / 255) < 3 / 255
        assert loader.load(3) is None
        assert loader.load(-1) is None

    def test_conforms_to_canvas(self, storage, frame_store):
        """Verify loaded frames are conformed to the canvas size."""
        _persist(storage, frame_store, 0, np.zeros((10, 20, 3), dtype=np.uint8))
        loader = FrameLoader.from_store(frame_store, storage, canvas_size=(8, 4))

        image = loader.load(0)
        assert image.shape == (4, 8, 3)
        assert image.dtype == np.float32

    def test_unreadable_frame(self, storage, frame_store):
        """Verify an unreadable frame loads as None."""
        frame_store.insert(
            PersistedFrame(ordinal_index=0, frame_name="x.jpg", image_relative_path="demo/x.jpg")
        )
        loader = FrameLoader.from_store(frame_store, storage)

        assert loader.load(0) is None
        assert loader.load_native(0) is None

    def test_cache_bounded_and_reused(self, storage, frame_store):
        """Verify the cache is bounded and reused."""
        for index in range(6):
            _persist(storage, frame_store, index, np.zeros((4, 4, 3), dtype=np.uint8))
        loader = FrameLoader.from_store(frame_store, storage, cache_size=3)

        for position in (0, 1, 2, 1, 2, 3, 4, 5):
            loader(position)

        assert loader.resident_count == 3
        assert loader.metrics()["loads"] == 6

    def test_to_float_image_channels(self):
        """Verify channel handling when converting to float."""
        gray = np.full((2, 2), 255, dtype=np.uint8)
        bgra = np.zeros((2, 2, 4), dtype=np.uint8)

        assert to_float_image(gray).shape == (2, 2, 3)
        assert to_float_image(bgra).shape == (2, 2, 3)
        assert to_float_image(gray).max() == 1.0
