"""
Frame Buffer
=============

Thread-safe bounded index -> image store between the extractor and the
persistence writer.

This module provides the FrameBuffer class, the only shared state of the
extraction pipeline. The extractor (producer) inserts decoded frames and
the persistence writer (consumer) removes them once they are on disk.

Design Rules:
    - Fixed capacity; a NEW index is never inserted past it
    - No automatic eviction: every image leaves only through remove(),
      after it has been durably written
    - Producers wait for space with a bounded timeout so cancellation
      checks stay responsive under backpressure
    - Does NOT process or modify images
"""

import logging
import threading
from typing import Dict, Optional

import numpy as np

from temporal_composite.errors import BufferFullError
from temporal_composite.models.frame import BufferedImage


logger = logging.getLogger(__name__)


class FrameBuffer:
    """
    Thread-safe bounded store of decoded frames keyed by ordinal index.

    Unlike an LRU cache, nothing is ever dropped implicitly: an evicted
    frame would be a frame that never reaches disk.

    Attributes:
        capacity: Maximum number of resident images
        current_count: Number of resident images

    Example:
        buffer = FrameBuffer(capacity=10)

        # Producer
        while not buffer.wait_for_space(timeout=0.01):
            if cancelled:
                break
        buffer.set(index, image)

        # Consumer, after the image is written
        buffer.remove(index)
    """

    def __init__(self, capacity: int = 10) -> None:
        """
        Initialize frame buffer.

        Args:
            capacity: Maximum images resident at once. Must be >= 1.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._images: Dict[int, BufferedImage] = {}
        self._cond = threading.Condition()
        self._total_set: int = 0
        self._total_removed: int = 0
        self._high_water_mark: int = 0

    @property
    def capacity(self) -> int:
        """Maximum buffer size."""
        return self._capacity

    @property
    def current_count(self) -> int:
        """Current number of resident images."""
        with self._cond:
            return len(self._images)

    def set(self, index: int, image: np.ndarray) -> None:
        """
        Insert or overwrite the image stored under ``index``.

        Args:
            index: Ordinal index of the frame
            image: Decoded image

        Raises:
            BufferFullError: If ``index`` is new and the buffer is full
        """
        with self._cond:
            if index not in self._images and len(self._images) >= self._capacity:
                raise BufferFullError(
                    f"FrameBuffer full ({self._capacity}), cannot insert index {index}"
                )
            self._images[index] = BufferedImage(ordinal_index=index, pixels=image)
            self._total_set += 1
            self._high_water_mark = max(self._high_water_mark, len(self._images))

    def get(self, index: int) -> Optional[BufferedImage]:
        """BufferedImage stored under ``index``, or None."""
        with self._cond:
            return self._images.get(index)

    def contains(self, index: int) -> bool:
        """Whether an image is stored under ``index``."""
        with self._cond:
            return index in self._images

    def remove(self, index: int) -> None:
        """
        Free the slot for ``index`` and wake any waiting producer.

        Removing an absent index is a no-op.
        """
        with self._cond:
            if self._images.pop(index, None) is not None:
                self._total_removed += 1
                self._cond.notify_all()

    def clear(self) -> int:
        """
        Drop every resident image.

        Returns:
            Number of images cleared.
        """
        with self._cond:
            cleared = len(self._images)
            self._images.clear()
            self._cond.notify_all()
        if cleared:
            logger.warning(f"FrameBuffer cleared with {cleared} unwritten images")
        return cleared

    def wait_for_space(self, timeout: Optional[float] = None) -> bool:
        """
        Block until at least one slot is free.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            True if a slot is free, False if the timeout elapsed first.
        """
        with self._cond:
            return self._cond.wait_for(
                lambda: len(self._images) < self._capacity,
                timeout=timeout,
            )

    def wait_until_empty(self, timeout: Optional[float] = None) -> bool:
        """Block until every resident image has been removed."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._images, timeout=timeout)

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with size, capacity, total_set, total_removed, high_water_mark
        """
        with self._cond:
            return {
                "size": len(self._images),
                "capacity": self._capacity,
                "total_set": self._total_set,
                "total_removed": self._total_removed,
                "high_water_mark": self._high_water_mark,
            }
